"""
Stripe gateway: creates hosted Checkout Sessions and authenticates webhooks.

Webhook payloads are verified once here and decoded into one of three typed
events, so nothing downstream re-parses raw Stripe JSON.
"""
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal, Optional, Union

import stripe
import structlog
from pydantic import BaseModel

from shared.config import settings
from shared.errors import InvalidWebhook, UpstreamUnavailable

logger = structlog.get_logger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 300


@dataclass
class CheckoutSession:
    session_id: str
    url: str


# --- WEBHOOK EVENTS ---

class CheckoutCompleted(BaseModel):
    kind: Literal["checkout_completed"] = "checkout_completed"
    event_id: str
    session_id: Optional[str] = None
    order_id: Optional[str] = None
    payment_intent_id: Optional[str] = None


class CheckoutExpired(BaseModel):
    kind: Literal["checkout_expired"] = "checkout_expired"
    event_id: str
    session_id: Optional[str] = None
    order_id: Optional[str] = None


class OtherEvent(BaseModel):
    kind: Literal["other"] = "other"
    event_id: str
    event_type: str


PaymentEvent = Union[CheckoutCompleted, CheckoutExpired, OtherEvent]


def decode_event(event: dict) -> PaymentEvent:
    """Map a verified Stripe event dict onto the typed union."""
    event_id = event.get("id") or "unknown"
    event_type = event.get("type") or "unknown"
    session = (event.get("data") or {}).get("object") or {}
    metadata = session.get("metadata") or {}

    if event_type == "checkout.session.completed":
        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")
        return CheckoutCompleted(
            event_id=event_id,
            session_id=session.get("id"),
            order_id=metadata.get("orderId"),
            payment_intent_id=payment_intent,
        )
    if event_type == "checkout.session.expired":
        return CheckoutExpired(
            event_id=event_id,
            session_id=session.get("id"),
            order_id=metadata.get("orderId"),
        )
    return OtherEvent(event_id=event_id, event_type=event_type)


# --- GATEWAYS ---

class PaymentGateway(ABC):

    @property
    @abstractmethod
    def configured(self) -> bool:
        ...

    @abstractmethod
    def create_checkout_session(
        self,
        order_id: str,
        user_id: str,
        sheet_count: int,
        total_price_sar: int,
        base_url: str,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        ...

    @abstractmethod
    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        ...


class StripePaymentGateway(PaymentGateway):
    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str], tolerance: int = WEBHOOK_TOLERANCE_SECONDS):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def create_checkout_session(
        self,
        order_id: str,
        user_id: str,
        sheet_count: int,
        total_price_sar: int,
        base_url: str,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        if not self.configured:
            raise UpstreamUnavailable("Payment system not configured")

        base_url = base_url.rstrip("/")
        params = dict(
            api_key=self.secret_key,
            mode="payment",
            payment_method_types=["card"],
            line_items=[
                {
                    "price_data": {
                        "currency": settings.STRIPE_CURRENCY,
                        "product_data": {
                            "name": f"LOD 400 Sheet Upgrade ({sheet_count} sheets)",
                            "description": f"Professional LOD 300 to LOD 400 model upgrade for {sheet_count} sheets",
                        },
                        # Stripe amounts are in the minor unit (halalas)
                        "unit_amount": total_price_sar * 100,
                    },
                    "quantity": 1,
                }
            ],
            success_url=f"{base_url}/?payment=success&order={order_id}",
            cancel_url=f"{base_url}/?payment=cancelled&order={order_id}",
            metadata={"orderId": order_id, "userId": user_id},
        )
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            logger.error("checkout_failed", order_id=order_id, error=str(e), error_type=type(e).__name__)
            raise UpstreamUnavailable("Failed to create checkout session") from e

        logger.info("checkout_created", order_id=order_id, stripe_session_id=session.id)
        return CheckoutSession(session_id=session.id, url=session.url)

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        if not signature or not self.webhook_secret:
            raise InvalidWebhook("Missing signature or secret")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidWebhook("Webhook payload is not valid UTF-8") from e

        # Verify signature BEFORE parsing
        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning("webhook_signature_invalid", error=str(e))
            raise InvalidWebhook("Webhook signature verification failed") from e

        try:
            event = json.loads(body)
        except ValueError as e:
            raise InvalidWebhook("Webhook payload is not valid JSON") from e
        if not isinstance(event, dict):
            raise InvalidWebhook("Webhook payload is not an event object")

        return decode_event(event)


@lru_cache(maxsize=1)
def _default_gateway() -> StripePaymentGateway:
    return StripePaymentGateway(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency; tests swap it through app.dependency_overrides."""
    return _default_gateway()
