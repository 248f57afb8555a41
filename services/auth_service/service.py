"""
Principal resolution and add-in credential management.

Two resolvers feed one Principal shape: the web session cookie (a JWT issued by
the identity integration) and the add-in bearer token / legacy API key (looked
up by digest). Password login and OIDC live outside this service.
"""
from datetime import timedelta, timezone
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import utcnow
from shared.errors import NotFound, Unauthenticated
from shared.security import (
    ADDIN,
    WEB,
    Principal,
    generate_api_key,
    generate_session_token,
    hash_token,
)

from .models import AddinSession, ApiKey, User
from .repository import CredentialRepository, UserRepository

logger = structlog.get_logger(__name__)


def _as_aware(value):
    # SQLite hands timestamps back without tzinfo
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _principal_for(user: User, kind: str) -> Principal:
    return Principal(user_id=user.id, is_admin=bool(user.is_admin), kind=kind, email=user.email)


class AuthService:

    @staticmethod
    async def get_user(db: AsyncSession, user_id: str) -> User:
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    @staticmethod
    async def resolve_web_principal(db: AsyncSession, user_id: str) -> Principal:
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise Unauthenticated("Session user no longer exists")
        return _principal_for(user, WEB)

    @staticmethod
    async def resolve_addin_principal(
        db: AsyncSession, session_token: Optional[str], api_key: Optional[str]
    ) -> Principal:
        now = utcnow()

        if session_token:
            session = await CredentialRepository.get_session_by_hash(db, hash_token(session_token))
            if (
                session is None
                or session.revoked_at is not None
                or _as_aware(session.expires_at) <= now
            ):
                raise Unauthenticated("Session expired or revoked. Please sign in again.")
            session.last_used_at = now
            await db.commit()
            return _principal_for(session.user, ADDIN)

        key = await CredentialRepository.get_api_key_by_hash(db, hash_token(api_key or ""))
        if key is None or key.revoked_at is not None:
            raise Unauthenticated("Invalid or revoked API key")
        key.last_used_at = now
        await db.commit()
        return _principal_for(key.user, ADDIN)

    # --- API KEYS (legacy add-in credential) ---

    @staticmethod
    async def create_api_key(db: AsyncSession, principal: Principal, name: str) -> Tuple[ApiKey, str]:
        raw_key = generate_api_key()
        key = ApiKey(
            user_id=principal.user_id,
            name=name,
            key_hash=hash_token(raw_key),
            key_prefix=raw_key[:12],
        )
        key = await CredentialRepository.add(db, key)
        logger.info("api_key_created", user_id=principal.user_id, key_id=key.id)
        return key, raw_key

    @staticmethod
    async def list_api_keys(db: AsyncSession, principal: Principal) -> List[ApiKey]:
        return await CredentialRepository.list_api_keys(db, principal.user_id)

    @staticmethod
    async def revoke_api_key(db: AsyncSession, principal: Principal, key_id: str) -> None:
        key = await CredentialRepository.get_api_key(db, key_id)
        if not key or key.user_id != principal.user_id or key.revoked_at is not None:
            raise NotFound("API key not found")
        key.revoked_at = utcnow()
        await db.commit()
        logger.info("api_key_revoked", user_id=principal.user_id, key_id=key_id)

    # --- ADD-IN SESSIONS ---

    @staticmethod
    async def create_addin_session(
        db: AsyncSession, principal: Principal, device_label: Optional[str]
    ) -> Tuple[AddinSession, str]:
        token = generate_session_token()
        session = AddinSession(
            user_id=principal.user_id,
            token_hash=hash_token(token),
            device_label=device_label,
            expires_at=utcnow() + timedelta(days=settings.ADDIN_SESSION_TTL_DAYS),
        )
        session = await CredentialRepository.add(db, session)
        logger.info("addin_session_created", user_id=principal.user_id, session_id=session.id)
        return session, token

    @staticmethod
    async def list_addin_sessions(db: AsyncSession, principal: Principal) -> List[AddinSession]:
        return await CredentialRepository.list_sessions(db, principal.user_id)

    @staticmethod
    async def revoke_addin_session(db: AsyncSession, principal: Principal, session_id: str) -> None:
        session = await CredentialRepository.get_session(db, session_id)
        if not session or session.user_id != principal.user_id or session.revoked_at is not None:
            raise NotFound("Session not found")
        session.revoked_at = utcnow()
        await db.commit()
        logger.info("addin_session_revoked", user_id=principal.user_id, session_id=session_id)

    @staticmethod
    async def logout_addin_session(db: AsyncSession, session_token: str) -> bool:
        session = await CredentialRepository.get_session_by_hash(db, hash_token(session_token))
        if not session or session.revoked_at is not None:
            return False
        session.revoked_at = utcnow()
        await db.commit()
        logger.info("addin_session_logged_out", user_id=session.user_id, session_id=session.id)
        return True
