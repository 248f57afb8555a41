from typing import Optional

from pydantic import Field

from services.auth_service.schemas import CamelModel


class UploadUrlRequest(CamelModel):
    file_name: str = Field(min_length=1, max_length=512)


class UploadUrlResponse(CamelModel):
    upload_url: str = Field(alias="uploadURL")


class UploadCompleteRequest(CamelModel):
    file_name: str = Field(min_length=1, max_length=512)
    file_size: Optional[int] = Field(default=None, ge=0)
    upload_url: str = Field(alias="uploadURL", min_length=1)


class UploadCompleteResponse(CamelModel):
    success: bool = True
    status: str
    replayed: bool = False
    file_id: Optional[str] = None


class DownloadUrlResponse(CamelModel):
    download_url: str = Field(alias="downloadURL")
    file_name: str
