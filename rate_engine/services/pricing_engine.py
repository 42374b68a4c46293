"""
Pricing Engine facade.

This service handles:
1. Chargeable weight (actual vs volumetric)
2. Rate card resolution per courier service
3. Scheme evaluation (zone additive, zone multiplier, banded slab)
4. Charge aggregation (GST, fuel, minimum fare, COD)
5. Seller policy filtering and ranking (price, speed, balanced)
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.schemas.quote import Quote, SelectionResult, ShipmentRequest
from rate_engine.services.courier_selection import CourierSelectionService
from rate_engine.services.quote_collector import QuoteCollector

logger = logging.getLogger(__name__)


class PricingEngine:
    """
    Shipment pricing and courier selection.

    One effective_at instant is captured per call and used for every rate
    card lookup in it.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.collector = QuoteCollector(db)
        self.selection = CourierSelectionService(db)

    async def compute_quotes(
        self,
        shipment: ShipmentRequest,
        seller_id: Optional[uuid.UUID] = None,
        effective_at: Optional[datetime] = None,
    ) -> List[Quote]:
        """Quote every courier service for the shipment, eligible or not."""
        effective_at = effective_at or datetime.now(timezone.utc)
        logger.debug("Computing quotes for seller %s at %s", seller_id, effective_at.isoformat())
        return await self.collector.collect(shipment, effective_at)

    async def select_courier(
        self,
        seller_id: uuid.UUID,
        quotes: List[Quote],
        company_id: Optional[uuid.UUID] = None,
    ) -> SelectionResult:
        """Apply the seller's policy to quotes."""
        return await self.selection.select(seller_id, quotes, company_id)

    async def quote_and_select(
        self,
        shipment: ShipmentRequest,
        seller_id: uuid.UUID,
        effective_at: Optional[datetime] = None,
    ) -> Tuple[datetime, List[Quote], SelectionResult]:
        effective_at = effective_at or datetime.now(timezone.utc)
        quotes = await self.compute_quotes(shipment, seller_id, effective_at)
        selection = await self.select_courier(seller_id, quotes, shipment.company_id)
        return effective_at, quotes, selection
