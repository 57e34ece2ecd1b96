"""API key authentication - resolves the calling actor."""

import hashlib
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.config import settings
from claimflow.database import get_db
from claimflow.engine.authorization import Actor, Role
from claimflow.storage.repositories import get_user_by_api_key_hash


API_KEY_HEADER = APIKeyHeader(name="Authorization", auto_error=False)


def hash_api_key(api_key: str) -> str:
    """Hash API key with salt for storage/lookup."""
    return hashlib.sha256(
        f"{settings.api_key_hash_salt}:{api_key}".encode()
    ).hexdigest()


async def get_actor_from_bearer(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    auth_header: str | None = Depends(API_KEY_HEADER),
) -> Actor:
    """Extract the actor from Bearer token (API key)."""
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )
    api_key = auth_header[7:].strip()
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
        )
    found = await get_user_by_api_key_hash(db, hash_api_key(api_key))
    if not found:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )
    user, engineer_id = found
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive",
        )
    return Actor(user_id=str(user.id), role=user.role, engineer_id=engineer_id)


# Type alias for dependency injection
ActorDep = Annotated[Actor, Depends(get_actor_from_bearer)]


async def require_admin(actor: ActorDep) -> Actor:
    """Only admins manage requests, inspections and appointments."""
    if actor.role != Role.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return actor


AdminDep = Annotated[Actor, Depends(require_admin)]
