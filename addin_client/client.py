"""
Async client for the add-in REST surface.

Mirrors what the Revit plugin does: authenticate with a session token (or a
legacy API key), create and pay for an order, then move the packaged model
through the signed-URL handshake.
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)

ZIP_CONTENT_TYPE = "application/zip"
PAID_STATUSES = ("paid", "uploaded", "processing", "complete")


class AddinApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


@dataclass
class AddinConfig:
    base_url: str
    session_token: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 30.0
    # Model packages can be large; storage PUTs get their own timeout
    upload_timeout: float = 7200.0
    retry_delay: float = 1.0

    def auth_headers(self) -> dict:
        if self.session_token:
            return {"Authorization": f"Bearer {self.session_token}"}
        if self.api_key:
            return {"X-API-Key": self.api_key}
        raise ValueError("Session not active. Please sign in first.")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body)
    return str(body)


class AddinClient:
    """
    Usage:
        async with AddinClient(AddinConfig(base_url, session_token=token)) as client:
            result = await client.create_order(sheet_count=12)
    """

    def __init__(self, config: AddinConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._client = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            headers=config.auth_headers(),
            timeout=config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "AddinClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs):
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            message = _error_message(response)
            logger.warning("addin_api_error", method=method, path=path, status_code=response.status_code, message=message)
            raise AddinApiError(response.status_code, message)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # --- SESSION ---

    async def validate(self) -> dict:
        return await self._request("GET", "/api/auth/validate")

    # --- ORDERS ---

    async def list_orders(self) -> list:
        return await self._request("GET", "/api/addin/orders")

    async def create_order(self, sheet_count: int) -> dict:
        """Returns {"order": ..., "checkoutUrl": ..., "message"?: ...}."""
        return await self._request("POST", "/api/addin/create-order", json={"sheetCount": sheet_count})

    async def get_order_status(self, order_id: str) -> dict:
        return await self._request("GET", f"/api/addin/orders/{order_id}/status")

    async def poll_until_paid(self, order_id: str, max_attempts: int = 60, delay: float = 2.0) -> dict:
        """Wait for the payment webhook to move the order past pending."""
        for attempt in range(max_attempts):
            order = await self.get_order_status(order_id)
            if order.get("status") in PAID_STATUSES:
                return order
            if attempt < max_attempts - 1:
                await asyncio.sleep(delay)
        raise TimeoutError("Payment verification timed out. Please check your order status manually.")

    # --- TRANSFERS ---

    async def get_upload_url(self, order_id: str, file_name: str) -> str:
        body = await self._request("POST", f"/api/addin/orders/{order_id}/upload-url", json={"fileName": file_name})
        return body["uploadURL"]

    async def upload_file(
        self,
        upload_url: str,
        data: bytes,
        on_progress: Optional[Callable[[int], None]] = None,
        max_attempts: int = 3,
    ) -> None:
        """PUT the package straight to storage. The signed URL is the only credential sent."""
        if on_progress:
            on_progress(0)

        async with httpx.AsyncClient(timeout=self.config.upload_timeout, transport=self._transport) as storage:
            for attempt in range(1, max_attempts + 1):
                try:
                    response = await storage.put(
                        upload_url,
                        content=data,
                        headers={"Content-Type": ZIP_CONTENT_TYPE},
                    )
                except httpx.TransportError as e:
                    if attempt == max_attempts:
                        raise
                    logger.warning("upload_retry", attempt=attempt, error=str(e))
                    await asyncio.sleep(self.config.retry_delay * attempt)
                    continue

                if response.status_code >= 500 and attempt < max_attempts:
                    logger.warning("upload_retry", attempt=attempt, status_code=response.status_code)
                    await asyncio.sleep(self.config.retry_delay * attempt)
                    continue
                if response.is_error:
                    raise AddinApiError(response.status_code, _error_message(response))
                break

        if on_progress:
            on_progress(100)

    async def mark_upload_complete(self, order_id: str, file_name: str, file_size: int, upload_url: str) -> dict:
        payload = {"fileName": file_name, "fileSize": file_size, "uploadURL": upload_url}
        return await self._request("POST", f"/api/addin/orders/{order_id}/upload-complete", json=payload)

    async def upload_package(
        self,
        order_id: str,
        path,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> dict:
        """Full handshake for a packaged model: upload URL, PUT, confirm."""
        path = Path(path)
        data = path.read_bytes()

        upload_url = await self.get_upload_url(order_id, path.name)
        await self.upload_file(upload_url, data, on_progress=on_progress)
        result = await self.mark_upload_complete(order_id, path.name, len(data), upload_url)
        logger.info("package_uploaded", order_id=order_id, file_name=path.name, file_size=len(data))
        return result

    async def get_download_url(self, order_id: str) -> dict:
        """Returns {"downloadURL": ..., "fileName": ...} once the order is complete."""
        return await self._request("GET", f"/api/addin/orders/{order_id}/download-url")
