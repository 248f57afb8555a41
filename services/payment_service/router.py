from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db

from .gateway import PaymentGateway, get_payment_gateway
from .service import PaymentService

router = APIRouter(prefix="/api/webhooks", tags=["Payments"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="stripe-signature"),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
):
    # The signature covers the exact bytes Stripe sent, so read the raw body
    payload = await request.body()
    event = gateway.parse_webhook(payload, stripe_signature)
    await PaymentService.handle_event(db, event)
    return {"received": True}
