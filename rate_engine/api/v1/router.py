from fastapi import APIRouter

from rate_engine.api.v1.endpoints import (
    rate_cards,
    courier_services,
    seller_policies,
    quotes,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Rate Cards ====================
api_router.include_router(
    rate_cards.router,
    prefix="/rate-cards",
    tags=["Rate Cards"]
)

# ==================== Courier Services ====================
api_router.include_router(
    courier_services.router,
    prefix="/courier-services",
    tags=["Courier Services"]
)

# ==================== Seller Courier Policies ====================
api_router.include_router(
    seller_policies.router,
    prefix="/sellers",
    tags=["Seller Courier Policies"]
)

# ==================== Quoting & Selection ====================
api_router.include_router(
    quotes.router,
    prefix="/quotes",
    tags=["Quotes"]
)
