"""Rate Card API endpoints: CRUD, validation and lifecycle operations."""
from typing import Optional
import uuid
from math import ceil

from fastapi import APIRouter, Query, status

from rate_engine.api.deps import DB, ActorId
from rate_engine.models.rate_card import RateCardStatus
from rate_engine.services.audit_service import AuditService
from rate_engine.services.rate_card_lifecycle_service import RateCardLifecycleService
from rate_engine.services.rate_card_service import RateCardService
from rate_engine.schemas.rate_card import (
    RateCardCreate,
    RateCardUpdate,
    RateCardResponse,
    RateCardListResponse,
    RateCardValidateRequest,
    RateCardValidationResult,
    RateCardCloneRequest,
    BulkAdjustPriceRequest,
    BulkUpdateStatusRequest,
    BulkOperationResult,
)


router = APIRouter()


# ============================================
# RATE CARD CRUD
# ============================================

@router.get("", response_model=RateCardListResponse)
async def list_rate_cards(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    company_id: Optional[uuid.UUID] = Query(None),
    service_id: Optional[uuid.UUID] = Query(None),
    status: Optional[RateCardStatus] = Query(None),
):
    """List rate cards with filters."""
    service = RateCardService(db)
    skip = (page - 1) * size

    items, total = await service.list_rate_cards(
        company_id=company_id,
        service_id=service_id,
        status=status,
        skip=skip,
        limit=size,
    )

    return RateCardListResponse(
        items=[RateCardResponse.model_validate(item) for item in items],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.post("", response_model=RateCardResponse, status_code=status.HTTP_201_CREATED)
async def create_rate_card(data: RateCardCreate, db: DB, actor_id: ActorId):
    """Create a draft rate card. Overlapping slabs or ambiguous schemes are rejected."""
    service = RateCardService(db)
    rate_card = await service.create_rate_card(data, created_by=actor_id)
    return RateCardResponse.model_validate(rate_card)


@router.post("/validate", response_model=RateCardValidationResult)
async def validate_rate_card(data: RateCardValidateRequest, db: DB):
    """Validate pricing data without saving it."""
    return RateCardService(db).validate_rate_card(data, data.service_id)


@router.get("/{rate_card_id}", response_model=RateCardResponse)
async def get_rate_card(rate_card_id: uuid.UUID, db: DB):
    rate_card = await RateCardService(db).get_rate_card(rate_card_id)
    return RateCardResponse.model_validate(rate_card)


@router.put("/{rate_card_id}", response_model=RateCardResponse)
async def update_rate_card(rate_card_id: uuid.UUID, data: RateCardUpdate, db: DB, actor_id: ActorId):
    """Update a rate card. Fails with 409 when expected_version is stale."""
    rate_card = await RateCardService(db).update_rate_card(rate_card_id, data, user_id=actor_id)
    return RateCardResponse.model_validate(rate_card)


@router.get("/{rate_card_id}/history")
async def get_rate_card_history(
    rate_card_id: uuid.UUID,
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
):
    """Audit trail of a rate card, newest first."""
    await RateCardService(db).get_rate_card(rate_card_id)
    entries, total = await AuditService(db).get_entity_history(
        AuditService.RATE_CARD, rate_card_id, skip=(page - 1) * size, limit=size,
    )
    return {
        "items": [
            {
                "id": str(entry.id),
                "action": entry.action,
                "user_id": str(entry.user_id) if entry.user_id else None,
                "description": entry.description,
                "old_values": entry.old_values,
                "new_values": entry.new_values,
                "created_at": entry.created_at.isoformat(),
            }
            for entry in entries
        ],
        "total": total,
        "page": page,
        "size": size,
    }


# ============================================
# LIFECYCLE
# ============================================

@router.post("/{rate_card_id}/activate", response_model=RateCardResponse)
async def activate_rate_card(
    rate_card_id: uuid.UUID,
    db: DB,
    actor_id: ActorId,
    expected_version: Optional[int] = Query(None, ge=1),
):
    """Activate a rate card. Activating an active card is a no-op."""
    rate_card = await RateCardLifecycleService(db).activate(rate_card_id, actor_id, expected_version)
    return RateCardResponse.model_validate(rate_card)


@router.post("/{rate_card_id}/deactivate", response_model=RateCardResponse)
async def deactivate_rate_card(
    rate_card_id: uuid.UUID,
    db: DB,
    actor_id: ActorId,
    expected_version: Optional[int] = Query(None, ge=1),
):
    """Deactivate a rate card. Deactivating an inactive card is a no-op."""
    rate_card = await RateCardLifecycleService(db).deactivate(rate_card_id, actor_id, expected_version)
    return RateCardResponse.model_validate(rate_card)


@router.post("/{rate_card_id}/clone", response_model=RateCardResponse, status_code=status.HTTP_201_CREATED)
async def clone_rate_card(
    rate_card_id: uuid.UUID,
    db: DB,
    actor_id: ActorId,
    data: Optional[RateCardCloneRequest] = None,
):
    """Clone a rate card into a new draft."""
    name = data.name if data else None
    rate_card = await RateCardLifecycleService(db).clone(rate_card_id, name=name, user_id=actor_id)
    return RateCardResponse.model_validate(rate_card)


@router.post("/bulk-adjust-price", response_model=BulkOperationResult)
async def bulk_adjust_price(data: BulkAdjustPriceRequest, db: DB, actor_id: ActorId):
    """Increase or decrease prices on several rate cards of one company."""
    return await RateCardLifecycleService(db).bulk_adjust_price(
        company_id=data.company_id,
        rate_card_ids=data.rate_card_ids,
        adjustment_type=data.adjustment_type,
        percentage=data.percentage,
        user_id=actor_id,
    )


@router.post("/bulk-update-status", response_model=BulkOperationResult)
async def bulk_update_status(data: BulkUpdateStatusRequest, db: DB, actor_id: ActorId):
    """Activate or deactivate several rate cards of one company."""
    return await RateCardLifecycleService(db).bulk_update_status(
        company_id=data.company_id,
        rate_card_ids=data.rate_card_ids,
        action=data.action,
        user_id=actor_id,
    )
