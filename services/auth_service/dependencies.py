from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.errors import Forbidden
from shared.security import Principal, get_addin_credentials, get_session_subject

from .service import AuthService


async def get_web_principal(
    request: Request,
    user_id: str = Depends(get_session_subject),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Cookie-session resolver used by the web dashboard and the admin pages."""
    principal = await AuthService.resolve_web_principal(db, user_id)
    # Store in request state for downstream use (like rate limiting)
    request.state.user_id = principal.user_id
    return principal


async def get_addin_principal(
    request: Request,
    credentials: tuple = Depends(get_addin_credentials),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Bearer-token resolver used by the Revit add-in."""
    session_token, api_key = credentials
    principal = await AuthService.resolve_addin_principal(db, session_token, api_key)
    request.state.user_id = principal.user_id
    return principal


async def require_admin(principal: Principal = Depends(get_web_principal)) -> Principal:
    if not principal.is_admin:
        raise Forbidden("Admin access required")
    return principal
