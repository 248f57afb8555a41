from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import Principal, bearer_scheme

from .dependencies import get_addin_principal, get_web_principal
from .schemas import (
    AddinSessionCreate,
    AddinSessionCreated,
    AddinSessionResponse,
    ApiKeyCreate,
    ApiKeyCreated,
    ApiKeyResponse,
    UserResponse,
    ValidateResponse,
)
from .service import AuthService

router = APIRouter(prefix="/api", tags=["Authentication"])


@router.get("/auth/user", response_model=UserResponse)
async def get_me(
    principal: Principal = Depends(get_web_principal),
    db: AsyncSession = Depends(get_db),
):
    return await AuthService.get_user(db, principal.user_id)


# --- ADD-IN SESSION CHECKS ---

@router.get("/auth/validate", response_model=ValidateResponse)
async def validate_addin_session(
    principal: Principal = Depends(get_addin_principal),
    db: AsyncSession = Depends(get_db),
):
    user = await AuthService.get_user(db, principal.user_id)
    return ValidateResponse(valid=True, user=UserResponse.model_validate(user))


@router.post("/auth/logout")
async def logout_addin(
    principal: Principal = Depends(get_addin_principal),
    bearer=Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
):
    revoked = False
    if bearer is not None:
        revoked = await AuthService.logout_addin_session(db, bearer.credentials)
    return {"success": True, "revoked": revoked}


# --- SETTINGS: API KEYS ---

@router.get("/user/api-keys", response_model=List[ApiKeyResponse])
async def list_api_keys(
    principal: Principal = Depends(get_web_principal),
    db: AsyncSession = Depends(get_db),
):
    return await AuthService.list_api_keys(db, principal)


@router.post("/user/api-keys", response_model=ApiKeyCreated, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    payload: ApiKeyCreate,
    principal: Principal = Depends(get_web_principal),
    db: AsyncSession = Depends(get_db),
):
    key, raw_key = await AuthService.create_api_key(db, principal, payload.name)
    return ApiKeyCreated(
        id=key.id,
        name=key.name,
        key_prefix=key.key_prefix,
        created_at=key.created_at,
        raw_key=raw_key,
    )


@router.delete("/user/api-keys/{key_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_api_key(
    key_id: str,
    principal: Principal = Depends(get_web_principal),
    db: AsyncSession = Depends(get_db),
):
    await AuthService.revoke_api_key(db, principal, key_id)


# --- SETTINGS: ADD-IN SESSIONS ---

@router.get("/user/addin-sessions", response_model=List[AddinSessionResponse])
async def list_addin_sessions(
    principal: Principal = Depends(get_web_principal),
    db: AsyncSession = Depends(get_db),
):
    return await AuthService.list_addin_sessions(db, principal)


@router.post(
    "/user/addin-sessions",
    response_model=AddinSessionCreated,
    status_code=status.HTTP_201_CREATED,
)
async def create_addin_session(
    payload: AddinSessionCreate,
    principal: Principal = Depends(get_web_principal),
    db: AsyncSession = Depends(get_db),
):
    session, token = await AuthService.create_addin_session(db, principal, payload.device_label)
    return AddinSessionCreated(
        id=session.id,
        device_label=session.device_label,
        created_at=session.created_at,
        expires_at=session.expires_at,
        token=token,
    )


@router.delete("/user/addin-sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_addin_session(
    session_id: str,
    principal: Principal = Depends(get_web_principal),
    db: AsyncSession = Depends(get_db),
):
    await AuthService.revoke_addin_session(db, principal, session_id)
