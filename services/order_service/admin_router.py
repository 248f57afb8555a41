"""
Admin endpoints: order queue, client report, deliverable handshake, client model download.
"""
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import get_db
from shared.security import Principal, limiter
from services.auth_service.dependencies import require_admin
from services.transfer_service.coordinator import TransferCoordinator
from services.transfer_service.gateway import StorageGateway, get_storage_gateway
from services.transfer_service.schemas import (
    DownloadUrlResponse,
    UploadCompleteRequest,
    UploadCompleteResponse,
    UploadUrlRequest,
    UploadUrlResponse,
)

from .lifecycle import FileRole
from .schemas import (
    ClientSummary,
    CompleteResponse,
    NotesUpdate,
    OrderResponse,
    OrderWithFilesResponse,
    StatusOverride,
)
from .service import OrderService

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/orders", response_model=List[OrderWithFilesResponse])
async def list_all_orders(
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_all_orders(db)


@router.get("/clients", response_model=List[ClientSummary])
async def list_clients(
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_clients(db)


@router.patch("/orders/{order_id}/status", response_model=OrderResponse)
async def override_order_status(
    order_id: str,
    payload: StatusOverride,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.override_status(db, order_id, payload.status, admin, payload.reason)


@router.patch("/orders/{order_id}/notes", response_model=OrderResponse)
async def update_order_notes(
    order_id: str,
    payload: NotesUpdate,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.update_notes(db, order_id, payload.notes)


# --- OUTPUT HANDSHAKE ---

@router.post("/orders/{order_id}/upload-url", response_model=UploadUrlResponse)
@limiter.limit(settings.UPLOAD_URL_RATE_LIMIT)
async def request_deliverable_upload_url(
    request: Request,
    order_id: str,
    payload: UploadUrlRequest,
    admin: Principal = Depends(require_admin),
    storage: StorageGateway = Depends(get_storage_gateway),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.get_order(db, order_id)
    url = TransferCoordinator.initiate(storage, order, admin, payload.file_name, FileRole.OUTPUT)
    return UploadUrlResponse(upload_url=url)


@router.post("/orders/{order_id}/upload-complete", response_model=UploadCompleteResponse)
async def deliverable_upload_complete(
    order_id: str,
    payload: UploadCompleteRequest,
    admin: Principal = Depends(require_admin),
    storage: StorageGateway = Depends(get_storage_gateway),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.get_order(db, order_id)
    result = await TransferCoordinator.confirm(
        db,
        storage,
        order,
        admin,
        FileRole.OUTPUT,
        payload.file_name,
        payload.file_size,
        payload.upload_url,
    )
    return UploadCompleteResponse(
        status=result.order.status,
        replayed=result.replayed,
        file_id=result.file.id if result.file else None,
    )


@router.post("/orders/{order_id}/complete", response_model=CompleteResponse)
async def mark_order_complete(
    order_id: str,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order, replayed = await OrderService.mark_complete(db, order_id, admin)
    return CompleteResponse(status=order.status, replayed=replayed)


# --- CLIENT MODEL ---

@router.get("/orders/{order_id}/model-download-url", response_model=DownloadUrlResponse)
@limiter.limit(settings.UPLOAD_URL_RATE_LIMIT)
async def request_model_download_url(
    request: Request,
    order_id: str,
    admin: Principal = Depends(require_admin),
    storage: StorageGateway = Depends(get_storage_gateway),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.get_order(db, order_id)
    link = TransferCoordinator.request_download(storage, order, admin, FileRole.INPUT)
    return DownloadUrlResponse(download_url=link.url, file_name=link.file_name)
