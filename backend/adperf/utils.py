"""
Shared utility functions.
"""

import logging
import math
import re
import uuid as uuid_mod
from datetime import date, datetime, timezone
from typing import Optional
from fastapi import HTTPException

logger = logging.getLogger(__name__)

_DATE_FORMATS = ("%Y/%m/%d", "%m/%d/%Y", "%Y%m%d", "%d-%b-%Y", "%d %b %Y")


def parse_uuid(value: str, field_name: str = "id") -> uuid_mod.UUID:
    """
    Parse a string as UUID, raising a 400 HTTPException on invalid input
    instead of letting a bare ValueError bubble up as a 500.
    """
    try:
        return uuid_mod.UUID(value)
    except (ValueError, AttributeError):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid UUID for '{field_name}': {value!r}",
        )


def safe_error_detail(exc: Exception, fallback: str = "An internal error occurred. Please try again later.") -> str:
    """
    Return a sanitized error message safe for client consumption.
    Logs the real exception detail server-side.
    """
    logger.error(f"Operation failed: {exc}", exc_info=True)
    return fallback


def utcnow() -> datetime:
    """
    Return the current UTC time as a naive datetime (no tzinfo).
    Naive datetimes are used because our DB columns are TIMESTAMP WITHOUT TIME ZONE.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def slugify_header(value) -> str:
    """
    Canonical column name: trim, lower-case, runs of non-alphanumerics → "_".
    "Sales Revenue (USD)" → "sales_revenue_usd", " CTR% " → "ctr".
    """
    text = str(value or "").strip().lower()
    return re.sub(r"[^a-z0-9]+", "_", text).strip("_")


# ── Cell value coercion (raise ValueError on garbage) ─────────────────

def _numeric_text(value: str) -> str:
    return value.strip().replace(",", "").rstrip("%").strip()


def to_float(value) -> Optional[float]:
    """'1,234.50' → 1234.5, '3.2%' → 3.2, '' / None → None. inf / nan are rejected."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = _numeric_text(str(value))
        if not text or text == "-":
            return None
        number = float(text)
    # Stored facts end up in JSON listings, which cannot carry inf / nan
    if not math.isfinite(number):
        raise ValueError(f"expected a finite number, got {value!r}")
    return number


def to_int(value) -> Optional[int]:
    """Integer measures; '1,200' → 1200, '12.0' → 12. Fractional values are rejected."""
    number = to_float(value)
    if number is None:
        return None
    if not number.is_integer():
        raise ValueError(f"expected a whole number, got {value!r}")
    return int(number)


def to_date(value) -> Optional[date]:
    """ISO dates/datetimes plus a few common spreadsheet layouts."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    if len(text) > 10 and text[10] in "T ":
        text = text[:10]  # drop the time part of an ISO datetime
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unrecognized date {value!r}")
