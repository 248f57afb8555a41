from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AddinSession, ApiKey, User


class UserRepository:

    @staticmethod
    async def create(db: AsyncSession, user: User) -> User:
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalars().first()


class CredentialRepository:

    @staticmethod
    async def add(db: AsyncSession, credential):
        db.add(credential)
        await db.commit()
        await db.refresh(credential)
        return credential

    @staticmethod
    async def get_session_by_hash(db: AsyncSession, token_hash: str) -> Optional[AddinSession]:
        result = await db.execute(
            select(AddinSession).where(AddinSession.token_hash == token_hash)
        )
        return result.scalars().first()

    @staticmethod
    async def get_api_key_by_hash(db: AsyncSession, key_hash: str) -> Optional[ApiKey]:
        result = await db.execute(select(ApiKey).where(ApiKey.key_hash == key_hash))
        return result.scalars().first()

    @staticmethod
    async def list_sessions(db: AsyncSession, user_id: str) -> List[AddinSession]:
        result = await db.execute(
            select(AddinSession)
            .where(AddinSession.user_id == user_id, AddinSession.revoked_at.is_(None))
            .order_by(AddinSession.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_api_keys(db: AsyncSession, user_id: str) -> List[ApiKey]:
        result = await db.execute(
            select(ApiKey)
            .where(ApiKey.user_id == user_id, ApiKey.revoked_at.is_(None))
            .order_by(ApiKey.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_session(db: AsyncSession, session_id: str) -> Optional[AddinSession]:
        result = await db.execute(select(AddinSession).where(AddinSession.id == session_id))
        return result.scalars().first()

    @staticmethod
    async def get_api_key(db: AsyncSession, key_id: str) -> Optional[ApiKey]:
        result = await db.execute(select(ApiKey).where(ApiKey.id == key_id))
        return result.scalars().first()
