from typing import Optional, Dict, Any, List, Tuple
import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.models.audit_log import AuditLog


class AuditService:
    """
    Append-only audit sink.

    Entries are added to the caller's session and flushed, so they commit or
    roll back together with the mutation they describe.
    """

    RATE_CARD = "RATE_CARD"
    COURIER_SERVICE = "COURIER_SERVICE"
    SELLER_COURIER_POLICY = "SELLER_COURIER_POLICY"

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> AuditLog:
        """
        Create an audit log entry.

        Args:
            action: The action performed (CREATE, UPDATE, ACTIVATE, CLONE, etc.)
            entity_type: Type of entity (RATE_CARD, COURIER_SERVICE, ...)
            entity_id: ID of the affected entity
            user_id: ID of the user performing the action
            old_values: Previous values (for updates)
            new_values: New values (for creates/updates)
            description: Human-readable description

        Returns:
            The created AuditLog entry
        """
        audit_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            old_values=old_values,
            new_values=new_values,
            description=description,
        )
        self.db.add(audit_log)
        await self.db.flush()
        return audit_log

    async def log_rate_card_change(
        self,
        action: str,
        rate_card_id: uuid.UUID,
        old_data: Optional[Dict[str, Any]] = None,
        new_data: Optional[Dict[str, Any]] = None,
        user_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
    ) -> AuditLog:
        """Log a rate card mutation."""
        name = (new_data or old_data or {}).get("name")
        return await self.log(
            action=action,
            entity_type=self.RATE_CARD,
            entity_id=rate_card_id,
            user_id=user_id,
            old_values=old_data,
            new_values=new_data,
            description=description or f"{action.title()} rate card: {name}",
        )

    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[AuditLog], int]:
        """Audit entries for one entity, newest first."""
        filters = [AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id]

        count_stmt = select(func.count(AuditLog.id)).where(*filters)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(AuditLog)
            .where(*filters)
            .order_by(AuditLog.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total
