"""
Seller badge endpoint.
"""

from fastapi import APIRouter

from domain.responses import success_response
from models import SellerStatsRequest
from services.badge_service import SellerStats, seller_badge

router = APIRouter(tags=["sellers"])


@router.post("/sellers/badge")
async def compute_seller_badge(request: SellerStatsRequest):
    """Classify a seller into bronze / silver / gold / diamond (or none)."""
    badge = seller_badge(
        SellerStats(
            items_listed=request.items_listed,
            items_sold=request.items_sold,
            contact_count=request.contact_count,
            rating=request.rating,
            rating_count=request.rating_count,
            created_at=request.created_at,
        )
    )
    return success_response(badge=badge.value if badge else None)
