"""
Web dashboard sessions.

The browser carries a signed JWT in the session cookie; add-in tokens and API
keys are opaque and live in the database instead (see api_key.py).
"""
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from shared.config import settings

SECRET_KEY = settings.JWT_SECRET_KEY
if not SECRET_KEY:
    raise ValueError("FATAL ERROR: JWT_SECRET_KEY is not set in the environment!")

ALGORITHM = "HS256"
ISSUER = "lod400"
WEB_SESSION_TYPE = "web_session"


def create_session_token(user_id: str, expires_delta: timedelta = None) -> str:
    """Signs a web session for `user_id`, valid for WEB_SESSION_TTL_DAYS unless overridden."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=settings.WEB_SESSION_TTL_DAYS))
    claims = {
        "sub": user_id,
        "typ": WEB_SESSION_TYPE,
        "iss": ISSUER,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def read_session_subject(token: str) -> str | None:
    """User id of a valid web session cookie; None if forged, expired or not a session token."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM], issuer=ISSUER)
    except JWTError:
        return None

    if payload.get("typ") != WEB_SESSION_TYPE:
        return None
    return payload.get("sub")
