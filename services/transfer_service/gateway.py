"""
Object storage gateway.

Hands out time-limited presigned URLs so clients move file bytes straight to
and from the bucket; the API server never sees them. Works against AWS S3 or
any S3-compatible endpoint (MinIO, GCS interoperability) via S3_ENDPOINT_URL.
"""
import uuid
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from shared.config import settings
from shared.errors import InvalidUploadUrl, UpstreamUnavailable

logger = structlog.get_logger(__name__)

KEY_ROOT = "orders"


def safe_file_name(file_name: str) -> str:
    """Strip any directory part a client sent along (Windows paths included)."""
    name = PurePosixPath(file_name.replace("\\", "/")).name.strip()
    if not name or name in (".", ".."):
        raise InvalidUploadUrl("A file name is required")
    return name


def order_key_prefix(order_id: str) -> str:
    return f"{KEY_ROOT}/{order_id}/"


class StorageGateway(ABC):

    @abstractmethod
    def issue_upload_url(self, order_id: str, file_name: str) -> str:
        """Presigned PUT URL scoped to a fresh key under the order's prefix."""

    @abstractmethod
    def issue_download_url(self, storage_key: str, file_name: Optional[str] = None) -> str:
        """Presigned GET URL for an existing key."""

    @abstractmethod
    def normalize_storage_key(self, upload_url: str, order_id: str) -> str:
        """Turn an upload URL handed back by a client into the stable object key."""


class S3StorageGateway(StorageGateway):
    def __init__(self, client, bucket: str, expires_in: int = 900):
        self._client = client
        self.bucket = bucket
        self.expires_in = expires_in

    @classmethod
    def from_settings(cls) -> "S3StorageGateway":
        # Custom endpoints (MinIO) need path-style addressing
        addressing = "path" if settings.S3_ENDPOINT_URL else "auto"
        client = boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            config=Config(signature_version="s3v4", s3={"addressing_style": addressing}),
        )
        return cls(client, settings.S3_BUCKET, settings.SIGNED_URL_TTL_SECONDS)

    def build_key(self, order_id: str, file_name: str) -> str:
        return f"{order_key_prefix(order_id)}{uuid.uuid4().hex}/{safe_file_name(file_name)}"

    def issue_upload_url(self, order_id: str, file_name: str) -> str:
        key = self.build_key(order_id, file_name)
        try:
            return self._client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("upload_url_failed", order_id=order_id, error=str(exc))
            raise UpstreamUnavailable("Failed to get upload URL, please try again") from exc

    def issue_download_url(self, storage_key: str, file_name: Optional[str] = None) -> str:
        params = {"Bucket": self.bucket, "Key": storage_key}
        if file_name:
            params["ResponseContentDisposition"] = f'attachment; filename="{safe_file_name(file_name)}"'
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=self.expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("download_url_failed", storage_key=storage_key, error=str(exc))
            raise UpstreamUnavailable("Failed to get download URL, please try again") from exc

    def normalize_storage_key(self, upload_url: str, order_id: str) -> str:
        parsed = urlparse(upload_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidUploadUrl()

        path = unquote(parsed.path).lstrip("/")
        prefix = order_key_prefix(order_id)
        # Path-style URLs carry the bucket as the first segment
        bucket_segment = f"{self.bucket}/"
        if not path.startswith(prefix) and path.startswith(bucket_segment):
            path = path[len(bucket_segment):]

        if not path.startswith(prefix) or ".." in path.split("/") or path == prefix:
            raise InvalidUploadUrl()
        return path


@lru_cache(maxsize=1)
def _default_gateway() -> S3StorageGateway:
    return S3StorageGateway.from_settings()


def get_storage_gateway() -> StorageGateway:
    """FastAPI dependency; tests swap it through app.dependency_overrides."""
    return _default_gateway()
