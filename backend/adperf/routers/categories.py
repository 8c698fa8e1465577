"""
Categories Router — LISTING-campaign categories with linked campaign counts,
plus the distinct names used to populate category filters.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from adperf.database import get_db
from adperf.routers.common import listing_params
from adperf.services.aggregation_service import (
    ListingParams, apply_listing_params, query_category_rows, query_category_names,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def list_categories(
    params: ListingParams = Depends(listing_params),
    db: AsyncSession = Depends(get_db),
):
    rows = await query_category_rows(db)
    return {"category_data": apply_listing_params(rows, params)}


@router.get("/names")
async def category_names(db: AsyncSession = Depends(get_db)):
    return {"categories": await query_category_names(db)}
