from typing import Annotated, Optional
import uuid

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.database import get_db


async def get_actor_id(
    x_user_id: Annotated[Optional[uuid.UUID], Header()] = None,
) -> Optional[uuid.UUID]:
    """
    Acting user for audit entries.

    Authentication happens upstream; the gateway forwards the caller as X-User-Id.
    """
    return x_user_id


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
ActorId = Annotated[Optional[uuid.UUID], Depends(get_actor_id)]
