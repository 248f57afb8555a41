from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from services.auth_service.models import User

from .lifecycle import MILESTONES, OrderStatus, Transition
from .models import Order, OrderFile


class OrderRepository:
    @staticmethod
    async def create_order(db: AsyncSession, order: Order) -> Order:
        db.add(order)
        await db.commit()
        await db.refresh(order)
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str) -> Optional[Order]:
        # populate_existing: a conditional UPDATE may have changed the row behind the identity map
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_by_user(db: AsyncSession, user_id: str) -> List[Order]:
        result = await db.execute(
            select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_all(db: AsyncSession) -> List[Order]:
        result = await db.execute(select(Order).order_by(Order.created_at.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def apply_transition(
        db: AsyncSession,
        order_id: str,
        transition: Transition,
        now: datetime,
        values: dict,
    ) -> bool:
        """
        UPDATE orders SET ... WHERE id = :id AND status = :expected.
        Returns False when another writer moved the order first. Does not commit.
        """
        values = dict(values)
        milestone = transition.milestone
        if milestone:
            column = getattr(Order, milestone)
            values[milestone] = func.coalesce(column, now)

        result = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == transition.source.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def force_status(db: AsyncSession, order_id: str, status: OrderStatus, now: datetime, notes=None) -> bool:
        """Unconditional status write for the admin override. Milestones are only ever filled, never cleared."""
        values = {"status": status.value, "updated_at": now}
        milestone = MILESTONES.get(status)
        if milestone:
            values[milestone] = func.coalesce(getattr(Order, milestone), now)
        if notes is not None:
            values["notes"] = notes

        result = await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def update_fields(db: AsyncSession, order_id: str, now: datetime, **fields) -> bool:
        result = await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(updated_at=now, **fields)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # --- FILES ---

    @staticmethod
    async def add_file(db: AsyncSession, file: OrderFile) -> OrderFile:
        """Stages the row; the caller commits together with the status change."""
        db.add(file)
        await db.flush()
        return file

    @staticmethod
    async def get_file(db: AsyncSession, file_id: str) -> Optional[OrderFile]:
        result = await db.execute(select(OrderFile).where(OrderFile.id == file_id))
        return result.scalars().first()

    # --- ADMIN REPORTING ---

    @staticmethod
    async def clients_with_stats(db: AsyncSession):
        spent = func.coalesce(
            func.sum(
                case(
                    (Order.status != OrderStatus.PENDING.value, Order.total_price_sar),
                    else_=0,
                )
            ),
            0,
        )
        result = await db.execute(
            select(
                User,
                func.count(Order.id).label("order_count"),
                spent.label("total_spent"),
            )
            .outerjoin(Order, Order.user_id == User.id)
            .where(User.is_admin.is_(False))
            .group_by(User.id)
            .order_by(User.created_at.desc())
        )
        return result.all()
