from typing import Optional, Tuple

import structlog
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import utcnow
from shared.errors import InvalidState, UpstreamUnavailable
from shared.observability import lod400_webhook_events_total
from shared.security import SYSTEM, Principal
from services.order_service.lifecycle import OrderStatus, TransitionEvent
from services.order_service.models import Order
from services.order_service.repository import OrderRepository
from services.order_service.service import OrderService

from .gateway import CheckoutCompleted, CheckoutExpired, CheckoutSession, PaymentEvent, PaymentGateway

logger = structlog.get_logger(__name__)

NOT_CONFIGURED_MESSAGE = "Payment system not configured"


class PaymentService:
    @staticmethod
    async def start_checkout(
        db: AsyncSession,
        gateway: PaymentGateway,
        order_id: str,
        principal: Principal,
        base_url: str,
    ) -> CheckoutSession:
        order = await OrderService.get_owned_order(db, order_id, principal)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidState("Order is not pending payment")
        if not gateway.configured:
            raise UpstreamUnavailable(NOT_CONFIGURED_MESSAGE)

        return await PaymentService._open_session(db, gateway, order, principal, base_url)

    @staticmethod
    async def create_order_with_checkout(
        db: AsyncSession,
        gateway: PaymentGateway,
        principal: Principal,
        sheet_count: int,
        base_url: str,
    ) -> Tuple[Order, Optional[str], Optional[str]]:
        """
        Add-in flow: create the order and hand back a checkout URL in one call.
        The order is kept even when payments are not configured.
        """
        order = await OrderService.create_order(db, principal, sheet_count, channel="addin")
        if not gateway.configured:
            logger.warning("checkout_skipped_unconfigured", order_id=order.id)
            return order, None, NOT_CONFIGURED_MESSAGE

        session = await PaymentService._open_session(db, gateway, order, principal, base_url)
        order = await OrderService.get_order(db, order.id)
        return order, session.url, None

    @staticmethod
    async def _open_session(
        db: AsyncSession,
        gateway: PaymentGateway,
        order: Order,
        principal: Principal,
        base_url: str,
    ) -> CheckoutSession:
        order_id = order.id
        # stripe's client is synchronous
        session = await run_in_threadpool(
            gateway.create_checkout_session,
            order_id,
            order.user_id,
            order.sheet_count,
            order.total_price_sar,
            base_url,
            principal.email,
        )
        await OrderRepository.update_fields(db, order_id, utcnow(), stripe_session_id=session.session_id)
        await db.commit()
        return session

    # --- WEBHOOK ---

    @staticmethod
    async def handle_event(db: AsyncSession, event: PaymentEvent) -> None:
        lod400_webhook_events_total.labels(kind=event.kind).inc()
        logger.info("webhook_received", event_id=event.event_id, kind=event.kind)

        if isinstance(event, CheckoutCompleted):
            await PaymentService._payment_completed(db, event)
        elif isinstance(event, CheckoutExpired):
            logger.info("checkout_session_expired", order_id=event.order_id, stripe_session_id=event.session_id)
        else:
            logger.info("webhook_event_ignored", event_id=event.event_id, event_type=event.event_type)

    @staticmethod
    async def _payment_completed(db: AsyncSession, event: CheckoutCompleted) -> None:
        if not event.order_id:
            logger.warning("webhook_missing_order_id", event_id=event.event_id)
            return

        order = await OrderRepository.get_order(db, event.order_id)
        if order is None:
            # Acknowledge anyway: Stripe would otherwise keep redelivering
            logger.warning("webhook_order_not_found", event_id=event.event_id, order_id=event.order_id)
            return

        payment_fields = {}
        if event.payment_intent_id:
            payment_fields["stripe_payment_intent_id"] = event.payment_intent_id
        if event.session_id and not order.stripe_session_id:
            payment_fields["stripe_session_id"] = event.session_id

        order_id = order.id
        transition = await OrderService.advance(
            db, order, TransitionEvent.PAYMENT_CONFIRMED, SYSTEM, extra_values=payment_fields
        )
        if transition is None:
            # Redelivery: only fill payment references that are still missing
            current = await OrderService.get_order(db, order_id)
            missing = {
                field: value
                for field, value in payment_fields.items()
                if getattr(current, field) is None
            }
            if missing:
                await OrderRepository.update_fields(db, order_id, utcnow(), **missing)
        await db.commit()

        logger.info(
            "order_payment_completed",
            order_id=order_id,
            stripe_payment_intent_id=event.payment_intent_id,
            replayed=transition is None,
        )
