"""
Web dashboard endpoints (cookie session).
"""
from typing import List

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import get_db
from shared.errors import NotFound
from shared.security import Principal, limiter
from services.auth_service.dependencies import get_web_principal
from services.payment_service.gateway import PaymentGateway, get_payment_gateway
from services.payment_service.service import PaymentService
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
from .repository import OrderRepository
from .schemas import OrderCreate, OrderResponse, OrderWithFilesResponse
from .service import OrderService

router = APIRouter(prefix="/api", tags=["Orders"])


def public_base_url(request: Request) -> str:
    """Where Stripe sends the buyer back to after checkout."""
    return settings.PUBLIC_BASE_URL or str(request.base_url)


@router.get("/orders", response_model=List[OrderWithFilesResponse])
async def list_my_orders(
    principal: Principal = Depends(get_web_principal),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_orders_for(db, principal)


@router.post("/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    principal: Principal = Depends(get_web_principal),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.create_order(db, principal, payload.sheet_count, channel="web")


@router.get("/orders/{order_id}/checkout")
async def checkout(
    order_id: str,
    request: Request,
    principal: Principal = Depends(get_web_principal),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
):
    session = await PaymentService.start_checkout(db, gateway, order_id, principal, public_base_url(request))
    return RedirectResponse(session.url, status_code=status.HTTP_302_FOUND)


@router.get("/orders/{order_id}/status", response_model=OrderWithFilesResponse)
async def order_status(
    order_id: str,
    principal: Principal = Depends(get_web_principal),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.get_order_for(db, order_id, principal)


# --- INPUT HANDSHAKE ---

@router.post("/orders/{order_id}/upload-url", response_model=UploadUrlResponse)
@limiter.limit(settings.UPLOAD_URL_RATE_LIMIT)
async def request_upload_url(
    request: Request,
    order_id: str,
    payload: UploadUrlRequest,
    principal: Principal = Depends(get_web_principal),
    storage: StorageGateway = Depends(get_storage_gateway),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.get_order(db, order_id)
    url = TransferCoordinator.initiate(storage, order, principal, payload.file_name, FileRole.INPUT)
    return UploadUrlResponse(upload_url=url)


@router.post("/orders/{order_id}/upload-complete", response_model=UploadCompleteResponse)
async def upload_complete(
    order_id: str,
    payload: UploadCompleteRequest,
    principal: Principal = Depends(get_web_principal),
    storage: StorageGateway = Depends(get_storage_gateway),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.get_order(db, order_id)
    result = await TransferCoordinator.confirm(
        db,
        storage,
        order,
        principal,
        FileRole.INPUT,
        payload.file_name,
        payload.file_size,
        payload.upload_url,
    )
    return UploadCompleteResponse(
        status=result.order.status,
        replayed=result.replayed,
        file_id=result.file.id if result.file else None,
    )


# --- DOWNLOADS ---

@router.get("/orders/{order_id}/download-url", response_model=DownloadUrlResponse)
@limiter.limit(settings.UPLOAD_URL_RATE_LIMIT)
async def request_download_url(
    request: Request,
    order_id: str,
    principal: Principal = Depends(get_web_principal),
    storage: StorageGateway = Depends(get_storage_gateway),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.get_order(db, order_id)
    link = TransferCoordinator.request_download(storage, order, principal, FileRole.OUTPUT)
    return DownloadUrlResponse(download_url=link.url, file_name=link.file_name)


@router.get("/files/{file_id}/download")
async def download_file(
    file_id: str,
    principal: Principal = Depends(get_web_principal),
    storage: StorageGateway = Depends(get_storage_gateway),
    db: AsyncSession = Depends(get_db),
):
    file = await OrderRepository.get_file(db, file_id)
    if file is None:
        raise NotFound("File not found")
    order = await OrderService.get_order(db, file.order_id)
    link = TransferCoordinator.download_file(storage, order, file, principal)
    return RedirectResponse(link.url, status_code=status.HTTP_302_FOUND)
