"""
Aggregation Service — Per-entity performance summaries for the campaign,
product, keyword and category listings.

Facts are loaded eagerly with their related rows (no pagination) and
aggregated in memory. Summaries keep raw numbers; formatting for display
(rounded ROAS, "3.25%" rates, "1,234.50" revenue) happens only when a row is
rendered, so sorting and filtering work on the raw values.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from adperf.models import AdPerformance, Campaign, Category, Keyword, Product

logger = logging.getLogger(__name__)

FILTER_MODES = ("all", "day", "month", "range")


# ── Pure aggregation ──────────────────────────────────────────────────

@dataclass
class FactSummary:
    fact_count: int = 0
    total_revenue: float = 0
    total_clicks: int = 0
    total_orders: int = 0
    total_impressions: int = 0
    average_roas: Optional[float] = None
    average_ctr: Optional[float] = None
    average_cvr: Optional[float] = None
    average_cpc: Optional[float] = None
    campaign_count: int = 0
    product_names: list = field(default_factory=list)
    category_names: list = field(default_factory=list)
    keyword_names: list = field(default_factory=list)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


def _mean(values: Iterable) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def _distinct(values: Iterable) -> list:
    """Non-empty values, first occurrence order."""
    return list(dict.fromkeys(v for v in values if v))


def _related(fact, relation: str, attr: str):
    obj = getattr(fact, relation, None)
    return getattr(obj, attr, None) if obj is not None else None


def summarize_facts(facts: Iterable) -> FactSummary:
    """
    Sums, means over present values, distinct counts and the owning
    campaigns' date span for a collection of ad_performances rows.
    """
    facts = list(facts)
    if not facts:
        return FactSummary()

    start_dates = [d for d in (_related(f, "campaign", "campaign_start_date") for f in facts) if d]
    end_dates = [d for d in (_related(f, "campaign", "campaign_end_date") for f in facts) if d]

    return FactSummary(
        fact_count=len(facts),
        total_revenue=sum(f.sales_revenue or 0 for f in facts),
        total_clicks=sum(f.clicks or 0 for f in facts),
        total_orders=sum(f.orders or 0 for f in facts),
        total_impressions=sum(f.impressions or 0 for f in facts),
        average_roas=_mean(f.roas for f in facts),
        average_ctr=_mean(f.ctr for f in facts),
        average_cvr=_mean(f.cvr for f in facts),
        average_cpc=_mean(f.cpc for f in facts),
        campaign_count=len({f.campaign_id for f in facts if f.campaign_id}),
        product_names=_distinct(_related(f, "product", "product_name") for f in facts),
        category_names=_distinct(_related(f, "category", "category_name") for f in facts),
        keyword_names=_distinct(_related(f, "keyword", "keyword") for f in facts),
        start_date=min(start_dates) if start_dates else None,
        end_date=max(end_dates) if end_dates else None,
    )


# ── Display formatting ────────────────────────────────────────────────

def format_ratio(value: Optional[float]):
    """ROAS for display: 2 decimals, 0 when missing or zero."""
    return round(value, 2) if value else 0


def format_percent(value: Optional[float]) -> str:
    return f"{value:.2f}%" if value else "0%"


def format_money(value: Optional[float]):
    """1234.5 → '1,234.50'; 0 when the total is zero."""
    return f"{value:,.2f}" if value else 0


def join_names(names: list) -> str:
    return ", ".join(names) if names else "-"


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


# ── Listing rows ──────────────────────────────────────────────────────

@dataclass
class ListingRow:
    """One listing entry: display data plus the raw values used to search, filter and sort."""
    id: object
    name: Optional[str]
    data: dict
    raw: dict
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def sort_value(self, key: str):
        if key in self.raw:
            return self.raw[key]
        return self.data.get(key)

    def to_dict(self) -> dict:
        return {"id": self.id, "data": self.data}


def _raw_metrics(s: FactSummary) -> dict:
    return {
        "average_roas": s.average_roas or 0,
        "total_revenue": s.total_revenue,
        "total_clicks": s.total_clicks,
        "total_orders": s.total_orders,
        "orders": s.total_orders,
        "total_impressions": s.total_impressions,
        "impressions": s.total_impressions,
        "average_ctr": s.average_ctr or 0,
        "ctr": s.average_ctr or 0,
        "average_cvr": s.average_cvr or 0,
        "cvr": s.average_cvr or 0,
        "avg_cpc": s.average_cpc or 0,
        "campaigns": s.campaign_count,
        "product_count": len(s.product_names),
    }


def campaign_row(campaign) -> ListingRow:
    """Campaign listing entry. Dates are the campaign's own, with or without facts."""
    facts = campaign.ad_performances
    s = summarize_facts(facts)

    products = []
    seen = set()
    for f in facts:
        if f.product is not None and f.product_id not in seen:
            seen.add(f.product_id)
            products.append({"id": f.product_id, "product_name": f.product.product_name})

    data = {
        "campaign_name": campaign.campaign_name,
        "campaign_type": campaign.campaign_type,
        "average_roas": format_ratio(s.average_roas),
        "product_count": len(s.product_names),
        "campaign_start_date": _iso(campaign.campaign_start_date),
        "campaign_end_date": _iso(campaign.campaign_end_date),
        "total_revenue": format_money(s.total_revenue),
        "total_clicks": s.total_clicks,
        "total_orders": s.total_orders,
        "total_impressions": s.total_impressions,
        "average_ctr": format_percent(s.average_ctr),
        "average_cvr": format_percent(s.average_cvr),
        "category": join_names(s.category_names),
        "keyword": join_names(s.keyword_names),
        "products": products,
    }
    return ListingRow(
        id=campaign.campaign_id,
        name=campaign.campaign_name,
        data=data,
        raw=_raw_metrics(s),
        start_date=campaign.campaign_start_date,
        end_date=campaign.campaign_end_date,
    )


def product_row(product) -> ListingRow:
    s = summarize_facts(product.ad_performances)
    data = {
        "product_name": product.product_name,
        "category": join_names(s.category_names),
        "campaigns": s.campaign_count,
        "average_roas": format_ratio(s.average_roas),
        "total_revenue": format_money(s.total_revenue),
        "total_clicks": s.total_clicks,
        "orders": s.total_orders,
        "ctr": format_percent(s.average_ctr),
        "cvr": format_percent(s.average_cvr),
        "campaign_start_date": _iso(s.start_date),
        "campaign_end_date": _iso(s.end_date),
    }
    return ListingRow(
        id=product.product_id,
        name=product.product_name,
        data=data,
        raw=_raw_metrics(s),
        start_date=s.start_date,
        end_date=s.end_date,
    )


def keyword_row(keyword) -> ListingRow:
    s = summarize_facts(keyword.ad_performances)
    data = {
        "keyword_name": keyword.keyword,
        "category": join_names(s.category_names),
        "campaigns": s.campaign_count,
        "average_roas": format_ratio(s.average_roas),
        "total_revenue": format_money(s.total_revenue),
        "total_clicks": s.total_clicks,
        "orders": s.total_orders,
        "ctr": format_percent(s.average_ctr),
        "cvr": format_percent(s.average_cvr),
        "impressions": s.total_impressions,
        "product_count": len(s.product_names),
        "avg_cpc": format_money(s.average_cpc),
        "campaign_start_date": _iso(s.start_date),
        "campaign_end_date": _iso(s.end_date),
    }
    return ListingRow(
        id=keyword.keyword_id,
        name=keyword.keyword,
        data=data,
        raw=_raw_metrics(s),
        start_date=s.start_date,
        end_date=s.end_date,
    )


def category_row(category) -> ListingRow:
    """Campaign count comes from the campaign_categories links, metrics from the facts."""
    s = summarize_facts(category.ad_performances)
    campaign_names = _distinct(c.campaign_name for c in category.campaigns)
    data = {
        "category_name": category.category_name,
        "campaigns": len(category.campaigns),
        "campaign_names": join_names(campaign_names),
        "average_roas": format_ratio(s.average_roas),
        "total_revenue": format_money(s.total_revenue),
        "total_clicks": s.total_clicks,
        "orders": s.total_orders,
        "ctr": format_percent(s.average_ctr),
        "cvr": format_percent(s.average_cvr),
        "product_count": len(s.product_names),
        "campaign_start_date": _iso(s.start_date),
        "campaign_end_date": _iso(s.end_date),
    }
    raw = _raw_metrics(s)
    raw["campaigns"] = len(category.campaigns)
    return ListingRow(
        id=category.category_id,
        name=category.category_name,
        data=data,
        raw=raw,
        start_date=s.start_date,
        end_date=s.end_date,
    )


# ── Search / date filter / sort ───────────────────────────────────────

def parse_month(value: str) -> tuple[int, int]:
    """'2025-03' → (2025, 3); ValueError otherwise."""
    try:
        year, month = value.split("-")
        year, month = int(year), int(month)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid month {value!r}, expected YYYY-MM")
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month {value!r}, expected YYYY-MM")
    return year, month


def matches_date_filter(
    row: ListingRow,
    mode: str = "all",
    day: Optional[date] = None,
    month: Optional[tuple[int, int]] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> bool:
    """Rows whose start or end date is unknown always pass."""
    if mode == "all" or row.start_date is None or row.end_date is None:
        return True
    if mode == "day":
        return day is None or row.start_date <= day <= row.end_date
    if mode == "month":
        return month is None or (row.start_date.year, row.start_date.month) == month
    if mode == "range":
        if date_from and row.start_date < date_from:
            return False
        if date_to and row.end_date > date_to:
            return False
        return True
    raise ValueError(f"Unknown filter mode {mode!r}")


def search_rows(rows: list[ListingRow], search: Optional[str]) -> list[ListingRow]:
    term = (search or "").strip().lower()
    if not term:
        return rows
    return [r for r in rows if term in (r.name or "").lower()]


def sort_rows(rows: list[ListingRow], sort_by: Optional[str], sort_dir: str = "asc") -> list[ListingRow]:
    """Sort on raw values; rows without a value go last in either direction."""
    if not sort_by:
        return rows

    def key(row):
        value = row.sort_value(sort_by)
        return value.lower() if isinstance(value, str) else value

    present = [r for r in rows if key(r) is not None]
    missing = [r for r in rows if key(r) is None]
    try:
        present.sort(key=key, reverse=(sort_dir == "desc"))
    except TypeError:
        present.sort(key=lambda r: str(key(r)), reverse=(sort_dir == "desc"))
    return present + missing


@dataclass
class ListingParams:
    search: Optional[str] = None
    filter: str = "all"
    day: Optional[date] = None
    month: Optional[tuple[int, int]] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    sort_by: Optional[str] = None
    sort_dir: str = "asc"


def apply_listing_params(rows: list[ListingRow], params: ListingParams) -> list[dict]:
    rows = search_rows(rows, params.search)
    rows = [
        r for r in rows
        if matches_date_filter(r, params.filter, params.day, params.month, params.date_from, params.date_to)
    ]
    rows = sort_rows(rows, params.sort_by, params.sort_dir)
    return [r.to_dict() for r in rows]


# ── Queries ───────────────────────────────────────────────────────────

def _fact_relations(collection) -> list:
    """Eager-load every relation summarize_facts reads; async sessions cannot lazy-load."""
    return [
        selectinload(collection).selectinload(AdPerformance.product),
        selectinload(collection).selectinload(AdPerformance.campaign),
        selectinload(collection).selectinload(AdPerformance.category),
        selectinload(collection).selectinload(AdPerformance.keyword),
    ]


async def query_campaign_rows(db: AsyncSession) -> list[ListingRow]:
    """Every campaign with its facts, newest first."""
    result = await db.execute(
        select(Campaign)
        .options(*_fact_relations(Campaign.ad_performances))
        .order_by(Campaign.created_at.desc(), Campaign.campaign_id)
    )
    return [campaign_row(c) for c in result.scalars().all()]


async def query_product_rows(db: AsyncSession) -> list[ListingRow]:
    result = await db.execute(
        select(Product)
        .options(*_fact_relations(Product.ad_performances))
        .order_by(Product.product_id)
    )
    return [product_row(p) for p in result.scalars().all()]


async def query_keyword_rows(db: AsyncSession) -> list[ListingRow]:
    result = await db.execute(
        select(Keyword)
        .options(*_fact_relations(Keyword.ad_performances))
        .order_by(Keyword.keyword_id)
    )
    return [keyword_row(k) for k in result.scalars().all()]


async def query_category_rows(db: AsyncSession) -> list[ListingRow]:
    result = await db.execute(
        select(Category)
        .options(selectinload(Category.campaigns), *_fact_relations(Category.ad_performances))
        .order_by(Category.category_id)
    )
    return [category_row(c) for c in result.scalars().all()]


async def query_category_names(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(Category.category_name)
        .where(Category.category_name.is_not(None))
        .distinct()
        .order_by(Category.category_name)
    )
    return list(result.scalars().all())


async def query_campaign_products(db: AsyncSession, campaign_id: str) -> Optional[dict]:
    """Campaign name and the distinct product names it has facts for; None if unknown."""
    result = await db.execute(
        select(Campaign)
        .where(Campaign.campaign_id == campaign_id)
        .options(selectinload(Campaign.ad_performances).selectinload(AdPerformance.product))
    )
    campaign = result.scalar_one_or_none()
    if campaign is None:
        return None
    names = _distinct(_related(f, "product", "product_name") for f in campaign.ad_performances)
    return {"campaign_id": campaign.campaign_id, "campaign_name": campaign.campaign_name, "products": names}


async def query_product_campaigns(db: AsyncSession, product_id: str) -> Optional[dict]:
    result = await db.execute(
        select(Product)
        .where(Product.product_id == product_id)
        .options(selectinload(Product.ad_performances).selectinload(AdPerformance.campaign))
    )
    product = result.scalar_one_or_none()
    if product is None:
        return None
    campaigns = []
    seen = set()
    for f in product.ad_performances:
        if f.campaign is None or f.campaign_id in seen:
            continue
        seen.add(f.campaign_id)
        campaigns.append({
            "campaign_id": f.campaign.campaign_id,
            "campaign_name": f.campaign.campaign_name,
            "campaign_type": f.campaign.campaign_type,
        })
    return {"product_id": product.product_id, "product_name": product.product_name, "campaigns": campaigns}


async def query_keyword_products(db: AsyncSession, keyword_id: int) -> Optional[dict]:
    result = await db.execute(
        select(Keyword)
        .where(Keyword.keyword_id == keyword_id)
        .options(selectinload(Keyword.ad_performances).selectinload(AdPerformance.product))
    )
    keyword = result.scalar_one_or_none()
    if keyword is None:
        return None
    names = _distinct(_related(f, "product", "product_name") for f in keyword.ad_performances)
    return {"keyword_id": keyword.keyword_id, "keyword": keyword.keyword, "products": names}
