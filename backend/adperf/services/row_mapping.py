"""
Row mapping — Column vocabulary of the performance spreadsheet and the
pure transforms from a canonical row dict to fact-table values.
"""

from typing import Optional

from adperf.exceptions import RowProcessingError
from adperf.models import CampaignType
from adperf.utils import to_date, to_float, to_int

ASSET_TYPE_SEARCH = "AD_TYPE_SEARCH"
ASSET_TYPE_LISTING = "AD_TYPE_LISTING"

# Placeholders keep "LISTING → category, SEARCH → keyword" total for rows
# that leave the category / keyword cell empty.
UNCATEGORIZED_ID = "uncategorized"
UNCATEGORIZED_NAME = "Uncategorized"
KEYWORD_NOT_SET = "(not set)"

DIMENSION_COLUMNS = (
    "vendor_id", "vendor_name",
    "product_id", "product_name",
    "campaign_id", "campaign_name", "asset_type",
    "campaign_start_date", "campaign_end_date",
    "category_id", "category_name_l2",
    "keyword",
)

# source column → (fact column, converter)
MEASURE_COLUMNS = {
    "impressions": ("impressions", to_int),
    "clicks": ("clicks", to_int),
    "orders": ("orders", to_int),
    "unit_sold": ("unit_sold", to_int),
    "ctr": ("ctr", to_float),
    "cvr": ("cvr", to_float),
    "average_ad_position": ("avg_ad_position", to_float),
    "sales_revenue": ("sales_revenue", to_float),
    "total_ad_spend": ("total_ad_spend", to_float),
    "cpa": ("cpa", to_float),
    "cpc": ("cpc", to_float),
    "roas": ("roas", to_float),
}

KNOWN_COLUMNS = frozenset(DIMENSION_COLUMNS) | frozenset(MEASURE_COLUMNS) | {"date"}


def clean_campaign_name(name: Optional[str]) -> Optional[str]:
    """'Summer Sale (Promo)' → 'Summer Sale'. Everything from the first '(' is dropped."""
    if name is None:
        return None
    cleaned = str(name).split("(", 1)[0].strip()
    return cleaned or None


def derive_campaign_type(asset_type: Optional[str]) -> CampaignType:
    """AD_TYPE_SEARCH → SEARCH; anything else (including blank) → LISTING."""
    if (asset_type or "").strip().upper() == ASSET_TYPE_SEARCH:
        return CampaignType.SEARCH
    return CampaignType.LISTING


def parse_row_date(row: dict, column: str, row_number: Optional[int] = None):
    try:
        return to_date(row.get(column))
    except ValueError as e:
        raise RowProcessingError(f"invalid {column}: {e}", row_number) from e


def parse_measures(row: dict, row_number: Optional[int] = None) -> dict:
    """Numeric fact columns plus the observation date; malformed values raise RowProcessingError."""
    values = {"date": parse_row_date(row, "date", row_number)}
    for source, (target, convert) in MEASURE_COLUMNS.items():
        raw = row.get(source)
        try:
            values[target] = convert(raw)
        except (TypeError, ValueError) as e:
            raise RowProcessingError(f"invalid {source} value {raw!r}", row_number) from e
    return values


def extra_attributes(row: dict) -> Optional[dict]:
    """Non-empty cells under headers the fixed schema does not know."""
    extras = {k: v for k, v in row.items() if k not in KNOWN_COLUMNS and v is not None}
    return extras or None
