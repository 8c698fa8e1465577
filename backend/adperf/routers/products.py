"""
Products Router — Aggregated product listing and the campaigns a product ran in.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from adperf.database import get_db
from adperf.routers.common import listing_params
from adperf.services.aggregation_service import (
    ListingParams, apply_listing_params, query_product_rows, query_product_campaigns,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def list_products(
    params: ListingParams = Depends(listing_params),
    db: AsyncSession = Depends(get_db),
):
    rows = await query_product_rows(db)
    return {"product_data": apply_listing_params(rows, params)}


@router.get("/{product_id}/campaigns")
async def product_campaigns(product_id: str, db: AsyncSession = Depends(get_db)):
    detail = await query_product_campaigns(db, product_id)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Product '{product_id}' not found.")
    return detail
