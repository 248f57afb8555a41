from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from shared.config import settings

from .jwt_handler import read_session_subject

# Add-in session tokens: Authorization: Bearer <token>
bearer_scheme = HTTPBearer(auto_error=False)

# Legacy add-in API keys
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_session_subject(request: Request) -> str:
    """Dependency to validate the web session cookie and return the user ID (sub)."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        raise _credentials_exception()

    user_id = read_session_subject(token)
    if user_id is None:
        raise _credentials_exception()

    return user_id


async def get_addin_credentials(
    bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    api_key: str | None = Depends(api_key_header),
) -> tuple[str | None, str | None]:
    """Dependency returning the raw (session token, api key) pair sent by the add-in."""
    token = bearer.credentials if bearer else None
    if not token and not api_key:
        raise _credentials_exception()
    return token, api_key
