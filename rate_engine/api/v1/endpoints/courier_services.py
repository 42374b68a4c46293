"""Courier service catalogue endpoints."""
from typing import Optional
import uuid

from fastapi import APIRouter, Query, status

from rate_engine.api.deps import DB, ActorId
from rate_engine.models.courier_service import ServiceStatus
from rate_engine.services.courier_catalog_service import CourierCatalogService
from rate_engine.schemas.courier import (
    CourierServiceCreate,
    CourierServiceResponse,
    CourierServiceListResponse,
)


router = APIRouter()


@router.get("", response_model=CourierServiceListResponse)
async def list_courier_services(
    db: DB,
    provider: Optional[str] = Query(None),
    status: Optional[ServiceStatus] = Query(None),
):
    items, total = await CourierCatalogService(db).list_services(provider=provider, status=status)
    return CourierServiceListResponse(
        items=[CourierServiceResponse.model_validate(item) for item in items],
        total=total,
    )


@router.post("", response_model=CourierServiceResponse, status_code=status.HTTP_201_CREATED)
async def register_courier_service(data: CourierServiceCreate, db: DB, actor_id: ActorId):
    """Register a courier service that shipments can be quoted on."""
    service = await CourierCatalogService(db).register_service(data, user_id=actor_id)
    return CourierServiceResponse.model_validate(service)


@router.get("/{service_id}", response_model=CourierServiceResponse)
async def get_courier_service(service_id: uuid.UUID, db: DB):
    service = await CourierCatalogService(db).get_service(service_id)
    return CourierServiceResponse.model_validate(service)
