from datetime import datetime
from typing import List, Optional

from pydantic import Field

from shared.config import settings
from services.auth_service.schemas import CamelModel

from .lifecycle import OrderStatus


class OrderCreate(CamelModel):
    sheet_count: int = Field(ge=settings.MIN_SHEET_COUNT, le=settings.MAX_SHEET_COUNT)


class FileResponse(CamelModel):
    id: str
    order_id: str
    file_type: str
    file_name: str
    file_size: Optional[int] = None
    storage_key: str
    mime_type: Optional[str] = None
    created_at: Optional[datetime] = None


class OwnerSummary(CamelModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


class OrderResponse(CamelModel):
    id: str
    user_id: str
    sheet_count: int
    total_price_sar: int
    status: str
    stripe_session_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    uploaded_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class OrderWithFilesResponse(OrderResponse):
    files: List[FileResponse] = []
    user: Optional[OwnerSummary] = None


class AddinCreateOrderResponse(CamelModel):
    order: OrderResponse
    checkout_url: Optional[str] = None
    message: Optional[str] = None


class StatusOverride(CamelModel):
    status: OrderStatus
    reason: Optional[str] = Field(default=None, max_length=1000)


class NotesUpdate(CamelModel):
    notes: Optional[str] = Field(default=None, max_length=10000)


class CompleteResponse(CamelModel):
    success: bool = True
    status: str
    replayed: bool = False


class ClientSummary(CamelModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: Optional[datetime] = None
    order_count: int
    total_spent: int
