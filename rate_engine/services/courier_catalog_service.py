"""Service for registering and listing courier services."""
from typing import List, Optional, Tuple
import logging
import uuid

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.core.errors import CourierServiceNotFoundError, ValidationError
from rate_engine.models.courier_service import CourierService, ServiceStatus
from rate_engine.schemas.courier import CourierServiceCreate
from rate_engine.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class CourierCatalogService:
    """Courier service catalogue."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_service(self, service_id: uuid.UUID) -> CourierService:
        service = await self.db.get(CourierService, service_id)
        if not service:
            raise CourierServiceNotFoundError(
                f"Courier service {service_id} not found",
                {"service_id": str(service_id)},
            )
        return service

    async def list_services(
        self,
        provider: Optional[str] = None,
        status: Optional[ServiceStatus] = None,
    ) -> Tuple[List[CourierService], int]:
        filters = []
        if provider:
            filters.append(CourierService.provider == provider)
        if status:
            filters.append(CourierService.status == ServiceStatus(status).value)

        stmt = select(CourierService).order_by(CourierService.provider, CourierService.display_name)
        count_stmt = select(func.count(CourierService.id))
        if filters:
            stmt = stmt.where(and_(*filters))
            count_stmt = count_stmt.where(and_(*filters))

        total = (await self.db.execute(count_stmt)).scalar() or 0
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def register_service(
        self,
        data: CourierServiceCreate,
        user_id: Optional[uuid.UUID] = None,
    ) -> CourierService:
        """Register a courier service; provider + service_code must be unique."""
        stmt = select(CourierService).where(
            CourierService.provider == data.provider,
            CourierService.service_code == data.service_code,
        )
        if (await self.db.execute(stmt)).scalar_one_or_none():
            raise ValidationError(
                f"Courier service {data.provider}/{data.service_code} already exists",
                {"provider": data.provider, "service_code": data.service_code},
            )

        values = data.model_dump(mode="json")
        service = CourierService(**values)
        self.db.add(service)
        await self.db.flush()

        await self.audit.log(
            action="CREATE",
            entity_type=AuditService.COURIER_SERVICE,
            entity_id=service.id,
            user_id=user_id,
            new_values=values,
            description=f"Registered courier service: {service.display_name}",
        )
        await self.db.commit()
        await self.db.refresh(service)

        logger.info("Registered courier service %s (%s)", service.display_name, service.id)
        return service
