"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from transfer.domain.entities import SYSTEM_ACTOR_ID
from transfer.domain.errors import Unauthenticated
from transfer.infrastructure.database import async_session_factory


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_actor_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller uid, set by the gateway after it verified the identity token."""
    actor_id = (x_user_id or "").strip()
    if not actor_id or actor_id == SYSTEM_ACTOR_ID:
        raise Unauthenticated("Authentication required")
    return actor_id
