from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from shared.config.database import Base, new_id, utcnow
from services.auth_service.models import User  # noqa: F401  Order.user relationship target

from .lifecycle import OrderStatus


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("sheet_count >= 1", name="ck_orders_sheet_count_positive"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    sheet_count = Column(Integer, nullable=False)
    total_price_sar = Column(Integer, nullable=False)  # sheet_count * unit price, fixed at creation
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    stripe_session_id = Column(String(255), nullable=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", lazy="selectin")
    files = relationship(
        "OrderFile",
        back_populates="order",
        lazy="selectin",
        order_by="OrderFile.created_at",
    )


class OrderFile(Base):
    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    file_type = Column(String(10), nullable=False)  # input | output
    file_name = Column(String(512), nullable=False)
    file_size = Column(BigInteger, nullable=True)  # client-reported, advisory
    storage_key = Column(String(1024), nullable=False)
    mime_type = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    order = relationship("Order", back_populates="files")
