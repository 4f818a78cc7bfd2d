"""FastAPI dependencies for API key authentication and storage access."""

import uuid
from datetime import timezone
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from meterstore.core.database import get_session
from meterstore.core.security import hash_api_key
from meterstore.models.api_key import ApiKey
from meterstore.models.base import utcnow
from meterstore.services.storage import StorageAdapter

bearer_scheme = HTTPBearer()


async def get_api_key_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> uuid.UUID:
    """Resolve a bearer API key to its ``api_keys.id``."""
    stmt = select(ApiKey).where(
        ApiKey.key == hash_api_key(credentials.credentials),
        ApiKey.revoked.is_(False),  # type: ignore[attr-defined]
    )
    result = await session.execute(stmt)
    api_key = result.scalar_one_or_none()

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or revoked API key",
        )

    expires_at = api_key.expires_at
    if expires_at.tzinfo is None:
        # SQLite drops the offset; values are written as UTC
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at < utcnow():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key has expired",
        )

    return api_key.id


def get_storage(request: Request) -> StorageAdapter:
    return request.app.state.storage


# Typed shorthand for use in route signatures
ApiKeyId = Annotated[uuid.UUID, Depends(get_api_key_id)]
Storage = Annotated[StorageAdapter, Depends(get_storage)]
