"""Seller courier policy endpoints."""
from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, Query, status

from rate_engine.api.deps import DB, ActorId
from rate_engine.services.seller_policy_service import SellerPolicyService
from rate_engine.schemas.courier import SellerCourierPolicyUpsert, SellerCourierPolicyResponse


router = APIRouter()


@router.get("/{seller_id}/courier-policy", response_model=SellerCourierPolicyResponse)
async def get_courier_policy(
    seller_id: uuid.UUID,
    db: DB,
    company_id: Optional[uuid.UUID] = Query(None),
):
    policy = await SellerPolicyService(db).get_policy(seller_id, company_id)
    if not policy:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Courier policy not found"
        )
    return SellerCourierPolicyResponse.model_validate(policy)


@router.put("/{seller_id}/courier-policy", response_model=SellerCourierPolicyResponse)
async def upsert_courier_policy(
    seller_id: uuid.UUID,
    data: SellerCourierPolicyUpsert,
    db: DB,
    actor_id: ActorId,
):
    """Create or replace the seller's courier policy."""
    policy = await SellerPolicyService(db).upsert_policy(seller_id, data, user_id=actor_id)
    return SellerCourierPolicyResponse.model_validate(policy)
