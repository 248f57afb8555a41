from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase on the wire, shared by the web dashboard and the add-in."""

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class UserResponse(CamelModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    is_admin: bool


class ValidateResponse(CamelModel):
    valid: bool = True
    user: UserResponse


class ApiKeyCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)


class ApiKeyResponse(CamelModel):
    id: str
    name: str
    key_prefix: str
    created_at: Optional[datetime] = None
    last_used: Optional[datetime] = Field(
        default=None, validation_alias="last_used_at", serialization_alias="lastUsed"
    )


class ApiKeyCreated(ApiKeyResponse):
    raw_key: str


class AddinSessionCreate(CamelModel):
    device_label: Optional[str] = Field(default="Revit Add-in", max_length=255)


class AddinSessionResponse(CamelModel):
    id: str
    device_label: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: datetime
    last_used_at: Optional[datetime] = None


class AddinSessionCreated(AddinSessionResponse):
    token: str
