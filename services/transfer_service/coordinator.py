"""
Transfer coordinator: the signed-URL handshakes shared by the web dashboard
and the Revit add-in.

Upload (input: owner, order paid; output: admin, order uploaded/processing)
    1. initiate  -> presigned PUT URL, nothing recorded yet
    2. the client PUTs the bytes straight to storage
    3. confirm   -> File row + lifecycle transition, in one transaction

Download
    request_download -> presigned GET URL for the latest file of a role
"""
import mimetypes
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import Forbidden, InvalidState, NotFound
from shared.observability import lod400_signed_urls_issued_total
from shared.security import Principal
from services.order_service.lifecycle import CONFIRM_EVENTS, FileRole, OrderStatus
from services.order_service.models import Order, OrderFile
from services.order_service.repository import OrderRepository
from services.order_service.service import OrderService

from .gateway import StorageGateway, safe_file_name

logger = structlog.get_logger(__name__)

# Statuses in which a new upload URL may be handed out
UPLOAD_STATUSES = {
    FileRole.INPUT: frozenset({OrderStatus.PAID}),
    FileRole.OUTPUT: frozenset({OrderStatus.UPLOADED, OrderStatus.PROCESSING}),
}

# Lowest status at which files of a role may be fetched by request_download
DOWNLOAD_MIN_STATUS = {
    FileRole.INPUT: OrderStatus.UPLOADED,
    FileRole.OUTPUT: OrderStatus.COMPLETE,
}

DEFAULT_MIME_TYPE = "application/zip"


@dataclass
class ConfirmResult:
    order: Order
    file: Optional[OrderFile]
    replayed: bool


@dataclass
class DownloadLink:
    url: str
    file_name: str
    file_id: str


def _authorize_upload(order: Order, principal: Principal, role: FileRole) -> None:
    if role == FileRole.INPUT and not principal.owns(order.user_id):
        raise Forbidden()
    if role == FileRole.OUTPUT and not principal.is_admin:
        raise Forbidden("Admin access required")


def _authorize_read(order: Order, principal: Principal) -> None:
    if not principal.owns(order.user_id) and not principal.is_admin:
        raise Forbidden()


def _guess_mime_type(file_name: str) -> str:
    mime_type, _ = mimetypes.guess_type(file_name)
    return mime_type or DEFAULT_MIME_TYPE


class TransferCoordinator:

    @staticmethod
    def initiate(storage: StorageGateway, order: Order, principal: Principal, file_name: str, role: FileRole) -> str:
        role = FileRole(role)
        _authorize_upload(order, principal, role)

        if OrderStatus(order.status) not in UPLOAD_STATUSES[role]:
            if role == FileRole.INPUT:
                raise InvalidState("Order must be paid before uploading files")
            raise InvalidState("Order is not ready for deliverables")

        url = storage.issue_upload_url(order.id, safe_file_name(file_name))
        lod400_signed_urls_issued_total.labels(direction="upload", role=role.value).inc()
        logger.info(
            "upload_url_issued",
            order_id=order.id,
            role=role.value,
            file_name=file_name,
            actor_id=principal.user_id,
        )
        return url

    @staticmethod
    async def confirm(
        db: AsyncSession,
        storage: StorageGateway,
        order: Order,
        principal: Principal,
        role: FileRole,
        file_name: str,
        file_size: Optional[int],
        upload_url: str,
        now: Optional[datetime] = None,
    ) -> ConfirmResult:
        """
        Record a finished upload and advance the order. Safe to call again: once
        the order has moved past the transition this confirm would apply, the
        call reports success without another status change or File row.
        """
        role = FileRole(role)
        order_id = order.id
        _authorize_upload(order, principal, role)
        storage_key = storage.normalize_storage_key(upload_url, order_id)
        display_name = safe_file_name(file_name)

        transition = await OrderService.advance(db, order, CONFIRM_EVENTS[role], principal, now=now)
        if transition is None:
            logger.info(
                "upload_confirm_replayed",
                order_id=order_id,
                role=role.value,
                file_name=file_name,
            )
            return ConfirmResult(order=await OrderService.get_order(db, order_id), file=None, replayed=True)

        file = OrderFile(
            order_id=order_id,
            file_type=role.value,
            file_name=display_name,
            file_size=file_size,
            storage_key=storage_key,
            mime_type=_guess_mime_type(file_name),
        )
        if now is not None:
            file.created_at = now
        await OrderRepository.add_file(db, file)
        await db.commit()

        logger.info(
            "upload_confirmed",
            order_id=order_id,
            role=role.value,
            file_id=file.id,
            file_size=file_size,
            status=transition.target.value,
        )
        return ConfirmResult(order=await OrderService.get_order(db, order_id), file=file, replayed=False)

    @staticmethod
    def request_download(storage: StorageGateway, order: Order, principal: Principal, role: FileRole = FileRole.OUTPUT) -> DownloadLink:
        role = FileRole(role)
        _authorize_read(order, principal)

        if OrderStatus(order.status).rank < DOWNLOAD_MIN_STATUS[role].rank:
            if role == FileRole.OUTPUT:
                raise InvalidState("Order is not complete")
            raise InvalidState("Order has no uploaded model yet")

        candidates = [f for f in order.files if f.file_type == role.value]
        if not candidates:
            raise NotFound("No deliverables found" if role == FileRole.OUTPUT else "No uploaded files found")
        latest = max(candidates, key=lambda f: f.created_at)

        return TransferCoordinator._link(storage, latest, principal)

    @staticmethod
    def download_file(storage: StorageGateway, order: Order, file: OrderFile, principal: Principal) -> DownloadLink:
        """Direct download of one file by id (owner or admin)."""
        _authorize_read(order, principal)
        if (
            file.file_type == FileRole.OUTPUT.value
            and not principal.is_admin
            and OrderStatus(order.status) != OrderStatus.COMPLETE
        ):
            raise InvalidState("Order is not complete")
        return TransferCoordinator._link(storage, file, principal)

    @staticmethod
    def _link(storage: StorageGateway, file: OrderFile, principal: Principal) -> DownloadLink:
        url = storage.issue_download_url(file.storage_key, file.file_name)
        lod400_signed_urls_issued_total.labels(direction="download", role=file.file_type).inc()
        logger.info(
            "download_url_issued",
            order_id=file.order_id,
            file_id=file.id,
            actor_id=principal.user_id,
        )
        return DownloadLink(url=url, file_name=file.file_name, file_id=file.id)
