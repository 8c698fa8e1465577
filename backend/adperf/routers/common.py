"""
Query parameters shared by the listing endpoints (search, date filter, sort).
"""

from datetime import date
from typing import Optional

from fastapi import HTTPException, Query

from adperf.services.aggregation_service import ListingParams, parse_month


def listing_params(
    search: Optional[str] = Query(None, description="Case-insensitive name match"),
    filter: str = Query("all", pattern="^(all|day|month|range)$"),
    day: Optional[date] = Query(None, alias="date", description="Day for filter=day (YYYY-MM-DD)"),
    month: Optional[str] = Query(None, description="Month for filter=month (YYYY-MM)"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    sort_by: Optional[str] = Query(None, description="Any data field, sorted on raw values"),
    sort_dir: str = Query("asc", pattern="^(asc|desc)$"),
) -> ListingParams:
    if filter == "day" and day is None:
        raise HTTPException(status_code=400, detail="filter=day requires a 'date' parameter.")
    if filter == "month" and not month:
        raise HTTPException(status_code=400, detail="filter=month requires a 'month' parameter (YYYY-MM).")
    if filter == "range" and date_from is None and date_to is None:
        raise HTTPException(status_code=400, detail="filter=range requires 'date_from' and/or 'date_to'.")

    parsed_month = None
    if month:
        try:
            parsed_month = parse_month(month)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    return ListingParams(
        search=search,
        filter=filter,
        day=day,
        month=parsed_month,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
