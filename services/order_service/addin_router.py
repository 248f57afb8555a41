"""
Revit add-in endpoints (bearer token or legacy API key).

Same lifecycle and transfer operations as the web dashboard; only the
credential differs.
"""
from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import get_db
from shared.security import Principal, limiter
from services.auth_service.dependencies import get_addin_principal
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
from .router import public_base_url
from .schemas import AddinCreateOrderResponse, OrderCreate, OrderResponse, OrderWithFilesResponse
from .service import OrderService

router = APIRouter(prefix="/api/addin", tags=["Revit Add-in"])


@router.get("/orders", response_model=List[OrderWithFilesResponse])
async def list_addin_orders(
    principal: Principal = Depends(get_addin_principal),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_orders_for(db, principal)


@router.post("/create-order", response_model=AddinCreateOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_addin_order(
    payload: OrderCreate,
    request: Request,
    principal: Principal = Depends(get_addin_principal),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
):
    order, checkout_url, message = await PaymentService.create_order_with_checkout(
        db, gateway, principal, payload.sheet_count, public_base_url(request)
    )
    return AddinCreateOrderResponse(
        order=OrderResponse.model_validate(order),
        checkout_url=checkout_url,
        message=message,
    )


@router.get("/orders/{order_id}/status", response_model=OrderWithFilesResponse)
async def addin_order_status(
    order_id: str,
    principal: Principal = Depends(get_addin_principal),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.get_order_for(db, order_id, principal)


@router.post("/orders/{order_id}/upload-url", response_model=UploadUrlResponse)
@limiter.limit(settings.UPLOAD_URL_RATE_LIMIT)
async def addin_upload_url(
    request: Request,
    order_id: str,
    payload: UploadUrlRequest,
    principal: Principal = Depends(get_addin_principal),
    storage: StorageGateway = Depends(get_storage_gateway),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.get_order(db, order_id)
    url = TransferCoordinator.initiate(storage, order, principal, payload.file_name, FileRole.INPUT)
    return UploadUrlResponse(upload_url=url)


@router.post("/orders/{order_id}/upload-complete", response_model=UploadCompleteResponse)
async def addin_upload_complete(
    order_id: str,
    payload: UploadCompleteRequest,
    principal: Principal = Depends(get_addin_principal),
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


@router.get("/orders/{order_id}/download-url", response_model=DownloadUrlResponse)
@limiter.limit(settings.UPLOAD_URL_RATE_LIMIT)
async def addin_download_url(
    request: Request,
    order_id: str,
    principal: Principal = Depends(get_addin_principal),
    storage: StorageGateway = Depends(get_storage_gateway),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.get_order(db, order_id)
    link = TransferCoordinator.request_download(storage, order, principal, FileRole.OUTPUT)
    return DownloadUrlResponse(download_url=link.url, file_name=link.file_name)
