"""
Keywords Router — Aggregated search-keyword listing and per-keyword products.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from adperf.database import get_db
from adperf.routers.common import listing_params
from adperf.services.aggregation_service import (
    ListingParams, apply_listing_params, query_keyword_rows, query_keyword_products,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def list_keywords(
    params: ListingParams = Depends(listing_params),
    db: AsyncSession = Depends(get_db),
):
    rows = await query_keyword_rows(db)
    return {"keyword_data": apply_listing_params(rows, params)}


@router.get("/{keyword_id}/products")
async def keyword_products(keyword_id: int, db: AsyncSession = Depends(get_db)):
    detail = await query_keyword_products(db, keyword_id)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Keyword {keyword_id} not found.")
    return detail
