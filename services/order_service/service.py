from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import utcnow
from shared.errors import ConcurrentTransition, Forbidden, InvalidTransition, NotFound, PreconditionUnmet
from shared.observability import lod400_order_transitions_total, lod400_orders_created_total
from shared.security import Principal

from .lifecycle import (
    TRANSITIONS,
    FileRole,
    OrderStatus,
    Transition,
    TransitionEvent,
    decide_transition,
    is_replay,
    planned_values,
)
from .models import Order
from .repository import OrderRepository

logger = structlog.get_logger(__name__)

# Conditional-write attempts before a lost race is reported
TRANSITION_ATTEMPTS = 3


def has_output_file(order: Order) -> bool:
    return any(f.file_type == FileRole.OUTPUT.value for f in order.files)


class OrderService:
    @staticmethod
    async def create_order(db: AsyncSession, principal: Principal, sheet_count: int, channel: str = "web") -> Order:
        if sheet_count < settings.MIN_SHEET_COUNT or sheet_count > settings.MAX_SHEET_COUNT:
            raise PreconditionUnmet(
                f"Sheet count must be between {settings.MIN_SHEET_COUNT} and {settings.MAX_SHEET_COUNT}"
            )

        order = Order(
            user_id=principal.user_id,
            sheet_count=sheet_count,
            total_price_sar=sheet_count * settings.PRICE_PER_SHEET_SAR,
            status=OrderStatus.PENDING.value,
        )
        order = await OrderRepository.create_order(db, order)
        lod400_orders_created_total.labels(channel=channel).inc()
        logger.info(
            "order_created",
            order_id=order.id,
            user_id=order.user_id,
            sheet_count=sheet_count,
            total_price_sar=order.total_price_sar,
            channel=channel,
        )
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str) -> Order:
        order = await OrderRepository.get_order(db, order_id)
        if not order:
            raise NotFound("Order not found")
        return order

    @staticmethod
    async def get_order_for(db: AsyncSession, order_id: str, principal: Principal) -> Order:
        """Owner or admin may read."""
        order = await OrderService.get_order(db, order_id)
        if not principal.owns(order.user_id) and not principal.is_admin:
            raise Forbidden()
        return order

    @staticmethod
    async def get_owned_order(db: AsyncSession, order_id: str, principal: Principal) -> Order:
        order = await OrderService.get_order(db, order_id)
        if not principal.owns(order.user_id):
            raise Forbidden()
        return order

    @staticmethod
    async def list_orders_for(db: AsyncSession, principal: Principal) -> List[Order]:
        return await OrderRepository.list_by_user(db, principal.user_id)

    @staticmethod
    async def list_all_orders(db: AsyncSession) -> List[Order]:
        return await OrderRepository.list_all(db)

    # --- LIFECYCLE ---

    @staticmethod
    async def request_transition(
        db: AsyncSession,
        order: Order,
        event: TransitionEvent,
        actor: Principal,
        now: Optional[datetime] = None,
        extra_values: Optional[dict] = None,
    ) -> Transition:
        """
        Validate `event` against the order and write it with a single conditional
        UPDATE. Raises InvalidTransition / Forbidden / PreconditionUnmet from the
        engine, or ConcurrentTransition if the row moved underneath us.
        Does not commit: callers commit together with any rows they stage.
        """
        now = now or utcnow()
        transition = decide_transition(
            OrderStatus(order.status),
            event,
            actor,
            order.user_id,
            has_output_file=has_output_file(order),
        )

        values = planned_values(transition, now)
        if extra_values:
            values.update(extra_values)

        applied = await OrderRepository.apply_transition(db, order.id, transition, now, values)
        if not applied:
            raise ConcurrentTransition(
                f"Order {order.id} left status '{transition.source.value}' before the update"
            )

        lod400_order_transitions_total.labels(event=event.value, outcome="applied").inc()
        logger.info(
            "order_transitioned",
            order_id=order.id,
            lifecycle_event=event.value,
            from_status=transition.source.value,
            to_status=transition.target.value,
            actor_kind=actor.kind,
            actor_id=actor.user_id,
        )
        return transition

    @staticmethod
    async def advance(
        db: AsyncSession,
        order: Order,
        event: TransitionEvent,
        actor: Principal,
        now: Optional[datetime] = None,
        extra_values: Optional[dict] = None,
    ) -> Optional[Transition]:
        """
        request_transition for retry-prone paths (upload confirm, webhook,
        mark complete). If the order already reached what `event` would
        produce, returns None instead of raising; the caller reports success.

        A lost race is retried against the fresh row while `event` still
        applies to it (two admins confirming deliverables both land).
        """
        order_id = order.id
        sources = TRANSITIONS[event].sources
        for attempt in range(1, TRANSITION_ATTEMPTS + 1):
            try:
                return await OrderService.request_transition(db, order, event, actor, now, extra_values)
            except InvalidTransition as exc:
                await db.rollback()
                current = await OrderRepository.get_order(db, order_id)
                if current is None:
                    raise
                status = OrderStatus(current.status)
                if isinstance(exc, ConcurrentTransition) and status in sources and attempt < TRANSITION_ATTEMPTS:
                    logger.info(
                        "order_transition_retried",
                        order_id=order_id,
                        lifecycle_event=event.value,
                        status=current.status,
                        attempt=attempt,
                    )
                    order = current
                    continue
                if is_replay(status, event):
                    lod400_order_transitions_total.labels(event=event.value, outcome="replayed").inc()
                    logger.info(
                        "order_transition_replayed",
                        order_id=order_id,
                        lifecycle_event=event.value,
                        status=current.status,
                    )
                    return None
                lod400_order_transitions_total.labels(event=event.value, outcome="rejected").inc()
                raise

    @staticmethod
    async def mark_complete(db: AsyncSession, order_id: str, principal: Principal) -> tuple:
        order = await OrderService.get_order(db, order_id)
        transition = await OrderService.advance(db, order, TransitionEvent.MARKED_COMPLETE, principal)
        await db.commit()

        order = await OrderService.get_order(db, order_id)
        if transition is not None:
            owner_email = order.user.email if order.user else None
            logger.info("order_completed", order_id=order.id, client_email=owner_email)
        return order, transition is None

    @staticmethod
    async def override_status(
        db: AsyncSession,
        order_id: str,
        status: OrderStatus,
        principal: Principal,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Admin escape hatch outside the transition table. It may move an order to
        any status, backwards included; milestones are filled if still empty and
        never cleared.
        """
        if not principal.is_admin:
            raise Forbidden("Admin access required")
        order = await OrderService.get_order(db, order_id)
        previous = order.status
        now = utcnow()

        notes = None
        if reason:
            line = f"[{now.strftime('%Y-%m-%d %H:%M')} status override {previous} -> {status.value}] {reason}"
            notes = f"{order.notes}\n{line}" if order.notes else line

        await OrderRepository.force_status(db, order.id, status, now, notes=notes)
        await db.commit()

        lod400_order_transitions_total.labels(event="override", outcome="applied").inc()
        logger.warning(
            "status_override_applied",
            order_id=order_id,
            from_status=previous,
            to_status=status.value,
            admin_id=principal.user_id,
            reason=reason,
        )
        return await OrderService.get_order(db, order_id)

    @staticmethod
    async def update_notes(db: AsyncSession, order_id: str, notes: Optional[str]) -> Order:
        await OrderService.get_order(db, order_id)
        await OrderRepository.update_fields(db, order_id, utcnow(), notes=notes)
        await db.commit()
        return await OrderService.get_order(db, order_id)

    @staticmethod
    async def list_clients(db: AsyncSession) -> List[dict]:
        rows = await OrderRepository.clients_with_stats(db)
        return [
            {
                "id": user.id,
                "email": user.email,
                "first_name": user.first_name,
                "last_name": user.last_name,
                "created_at": user.created_at,
                "order_count": int(order_count or 0),
                "total_spent": int(total_spent or 0),
            }
            for user, order_count, total_spent in rows
        ]
