"""Service for seller courier policies."""
from typing import Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.models.courier_service import SellerCourierPolicy
from rate_engine.schemas.courier import SellerCourierPolicyUpsert
from rate_engine.services.audit_service import AuditService


class SellerPolicyService:
    """Create-or-replace access to the one policy per (company, seller)."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_policy(
        self,
        seller_id: uuid.UUID,
        company_id: Optional[uuid.UUID] = None,
    ) -> Optional[SellerCourierPolicy]:
        stmt = select(SellerCourierPolicy).where(
            SellerCourierPolicy.seller_id == seller_id,
            SellerCourierPolicy.company_id == company_id
            if company_id is not None
            else SellerCourierPolicy.company_id.is_(None),
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert_policy(
        self,
        seller_id: uuid.UUID,
        data: SellerCourierPolicyUpsert,
        user_id: Optional[uuid.UUID] = None,
    ) -> SellerCourierPolicy:
        values = data.model_dump(mode="json", exclude={"company_id"})
        values["balanced_delta_percent"] = data.balanced_delta_percent

        policy = await self.get_policy(seller_id, data.company_id)
        old_values = None
        if policy is None:
            policy = SellerCourierPolicy(seller_id=seller_id, company_id=data.company_id, **values)
            self.db.add(policy)
            action = "CREATE"
        else:
            old_values = {key: getattr(policy, key) for key in values if key != "balanced_delta_percent"}
            old_values["balanced_delta_percent"] = str(policy.balanced_delta_percent)
            for key, value in values.items():
                setattr(policy, key, value)
            action = "UPDATE"

        await self.db.flush()
        new_values = {**values, "balanced_delta_percent": str(data.balanced_delta_percent)}
        await self.audit.log(
            action=action,
            entity_type=AuditService.SELLER_COURIER_POLICY,
            entity_id=policy.id,
            user_id=user_id,
            old_values=old_values,
            new_values=new_values,
            description=f"{action.title()} courier policy for seller {seller_id}",
        )
        await self.db.commit()
        await self.db.refresh(policy)
        return policy
