"""Shipment quoting and courier selection endpoints."""
from datetime import datetime, timezone

from fastapi import APIRouter

from rate_engine.api.deps import DB
from rate_engine.services.pricing_engine import PricingEngine
from rate_engine.schemas.quote import (
    QuoteRequest,
    QuoteResponse,
    SelectRequest,
    SelectionResult,
    AllocateRequest,
    AllocateResponse,
)


router = APIRouter()


@router.post("", response_model=QuoteResponse)
async def compute_quotes(data: QuoteRequest, db: DB):
    """
    Quote every courier service for a shipment.

    Ineligible services are included with eligible=false and the reason.
    """
    effective_at = data.effective_at or datetime.now(timezone.utc)
    quotes = await PricingEngine(db).compute_quotes(data.shipment, data.seller_id, effective_at)
    return QuoteResponse(effective_at=effective_at, quotes=quotes)


@router.post("/select", response_model=SelectionResult)
async def select_courier(data: SelectRequest, db: DB):
    """Apply the seller's courier policy to previously computed quotes."""
    return await PricingEngine(db).select_courier(data.seller_id, data.quotes, data.company_id)


@router.post("/allocate", response_model=AllocateResponse)
async def allocate_courier(data: AllocateRequest, db: DB):
    """Compute quotes and select a courier in one call."""
    effective_at, quotes, selection = await PricingEngine(db).quote_and_select(
        data.shipment, data.seller_id, data.effective_at,
    )
    return AllocateResponse(effective_at=effective_at, quotes=quotes, selection=selection)
