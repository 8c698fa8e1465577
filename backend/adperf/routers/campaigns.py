"""
Campaigns Router — Aggregated campaign listing and per-campaign product list.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from adperf.database import get_db
from adperf.routers.common import listing_params
from adperf.services.aggregation_service import (
    ListingParams, apply_listing_params, query_campaign_rows, query_campaign_products,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
@router.get("/")
async def list_campaigns(
    params: ListingParams = Depends(listing_params),
    db: AsyncSession = Depends(get_db),
):
    """Every campaign, newest first, with revenue/clicks/ROAS aggregates."""
    rows = await query_campaign_rows(db)
    return {"campaign_data": apply_listing_params(rows, params)}


@router.get("/{campaign_id}/products")
async def campaign_products(campaign_id: str, db: AsyncSession = Depends(get_db)):
    detail = await query_campaign_products(db, campaign_id)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Campaign '{campaign_id}' not found.")
    return detail
