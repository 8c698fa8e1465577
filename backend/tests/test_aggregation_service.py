"""
Tests for per-entity aggregation, display formatting, and listing filters.
"""

from datetime import date
from types import SimpleNamespace

import pytest

from adperf.services.aggregation_service import (
    ListingParams, _distinct, apply_listing_params, campaign_row, category_row, keyword_row,
    matches_date_filter, parse_month, product_row, sort_rows, summarize_facts,
)


def _campaign(campaign_id="C1", name="Summer", start=None, end=None, facts=None, campaign_type="LISTING"):
    return SimpleNamespace(
        campaign_id=campaign_id,
        campaign_name=name,
        campaign_type=campaign_type,
        campaign_start_date=start,
        campaign_end_date=end,
        ad_performances=facts or [],
    )


def _fact(campaign=None, product=None, category=None, keyword=None, **metrics):
    values = dict(
        sales_revenue=None, clicks=None, orders=None, impressions=None,
        roas=None, ctr=None, cvr=None, cpc=None,
    )
    values.update(metrics)
    return SimpleNamespace(
        campaign=campaign,
        campaign_id=campaign.campaign_id if campaign else None,
        product=product,
        product_id=getattr(product, "product_id", None),
        category=category,
        keyword=keyword,
        **values,
    )


def _product(product_id, name):
    return SimpleNamespace(product_id=product_id, product_name=name)


def test_totals_and_means():
    c = _campaign()
    facts = [
        _fact(c, sales_revenue=100.25, clicks=10, orders=1, roas=2.0, ctr=1.0),
        _fact(c, sales_revenue=200.5, clicks=5, orders=2, roas=None, ctr=2.0),
        _fact(c, sales_revenue=None, clicks=None, orders=None, roas=4.0),
    ]
    s = summarize_facts(facts)
    assert s.fact_count == 3
    assert s.total_revenue == pytest.approx(300.75)
    assert s.total_clicks == 15
    assert s.total_orders == 3
    # mean over present values only
    assert s.average_roas == pytest.approx(3.0)
    assert s.average_ctr == pytest.approx(1.5)
    assert s.average_cvr is None


def test_distinct_counts_and_names():
    c1, c2 = _campaign("C1"), _campaign("C2")
    p1, p2 = _product("P1", "Widget"), _product("P2", "Gadget")
    kitchen = SimpleNamespace(category_name="Kitchen")
    facts = [
        _fact(c1, product=p1, category=kitchen),
        _fact(c1, product=p1, category=kitchen),
        _fact(c2, product=p2),
        _fact(c2, product=_product("P3", None)),
    ]
    s = summarize_facts(facts)
    assert s.campaign_count == 2
    assert s.product_names == ["Widget", "Gadget"]
    assert s.category_names == ["Kitchen"]
    assert s.keyword_names == []


def test_date_span_from_owning_campaigns():
    early = _campaign("C1", start=date(2025, 1, 1), end=date(2025, 1, 31))
    late = _campaign("C2", start=date(2025, 2, 1), end=date(2025, 3, 15))
    undated = _campaign("C3")
    s = summarize_facts([_fact(late), _fact(early), _fact(undated)])
    assert s.start_date == date(2025, 1, 1)
    assert s.end_date == date(2025, 3, 15)


def test_campaign_row_formats_display_values():
    c = _campaign(start=date(2025, 6, 1), end=date(2025, 6, 30))
    p = _product("P1", "Widget")
    c.ad_performances = [
        _fact(c, product=p, sales_revenue=1000.0, clicks=3, roas=2.34, ctr=1.234),
        _fact(c, product=p, sales_revenue=234.5, clicks=4, roas=3.0, ctr=2.0),
    ]
    row = campaign_row(c).to_dict()
    assert row["id"] == "C1"
    data = row["data"]
    assert data["total_revenue"] == "1,234.50"
    assert data["total_clicks"] == 7
    assert data["average_roas"] == 2.67
    assert data["average_ctr"] == "1.62%"
    assert data["average_cvr"] == "0%"
    assert data["product_count"] == 1
    assert data["products"] == [{"id": "P1", "product_name": "Widget"}]
    assert data["category"] == "-"
    assert data["campaign_start_date"] == "2025-06-01"


def test_campaign_without_facts_gets_zero_record():
    c = _campaign(start=date(2025, 6, 1), end=None)
    data = campaign_row(c).data
    assert data["average_roas"] == 0
    assert data["total_revenue"] == 0
    assert data["total_clicks"] == 0
    assert data["product_count"] == 0
    assert data["average_ctr"] == "0%"
    assert data["category"] == "-"
    assert data["products"] == []
    assert data["campaign_start_date"] == "2025-06-01"
    assert data["campaign_end_date"] is None


def test_product_and_keyword_zero_records():
    product = SimpleNamespace(product_id="P1", product_name="Widget", ad_performances=[])
    keyword = SimpleNamespace(keyword_id=1, keyword="shoes", ad_performances=[])
    p = product_row(product).data
    k = keyword_row(keyword).data
    assert p == {
        "product_name": "Widget", "category": "-", "campaigns": 0, "average_roas": 0,
        "total_revenue": 0, "total_clicks": 0, "orders": 0, "ctr": "0%", "cvr": "0%",
        "campaign_start_date": None, "campaign_end_date": None,
    }
    assert k["keyword_name"] == "shoes"
    assert k["avg_cpc"] == 0
    assert k["impressions"] == 0
    assert k["product_count"] == 0


def test_keyword_row_counts_campaigns_and_cpc():
    c1, c2 = _campaign("C1"), _campaign("C2")
    keyword = SimpleNamespace(keyword_id=5, keyword="shoes", ad_performances=[
        _fact(c1, cpc=0.5, impressions=100),
        _fact(c2, cpc=1.0, impressions=50),
        _fact(c2, cpc=None, impressions=None),
    ])
    data = keyword_row(keyword).data
    assert data["campaigns"] == 2
    assert data["avg_cpc"] == "0.75"
    assert data["impressions"] == 150


def test_category_row_counts_linked_campaigns():
    c1, c2 = _campaign("C1", name="Shelf"), _campaign("C2", name="Aisle")
    category = SimpleNamespace(
        category_id="CAT1", category_name="Kitchen",
        campaigns=[c1, c2],
        ad_performances=[_fact(c1, sales_revenue=10.0, clicks=1, roas=2.0)],
    )
    data = category_row(category).data
    assert data["campaigns"] == 2
    assert data["campaign_names"] == "Shelf, Aisle"
    assert data["total_revenue"] == "10.00"


def test_parse_month():
    assert parse_month("2025-03") == (2025, 3)
    with pytest.raises(ValueError):
        parse_month("2025-13")
    with pytest.raises(ValueError):
        parse_month("March")


def test_date_filters():
    row = campaign_row(_campaign(start=date(2025, 3, 10), end=date(2025, 4, 5)))
    undated = campaign_row(_campaign(start=date(2025, 3, 10), end=None))

    assert matches_date_filter(row, "day", day=date(2025, 3, 31))
    assert not matches_date_filter(row, "day", day=date(2025, 4, 6))
    assert matches_date_filter(row, "month", month=(2025, 3))
    assert not matches_date_filter(row, "month", month=(2025, 4))
    assert matches_date_filter(row, "range", date_from=date(2025, 3, 1), date_to=date(2025, 4, 30))
    assert not matches_date_filter(row, "range", date_from=date(2025, 3, 11), date_to=date(2025, 4, 30))
    assert not matches_date_filter(row, "range", date_to=date(2025, 4, 1))
    # unknown dates always pass
    assert matches_date_filter(undated, "day", day=date(1999, 1, 1))


def test_sort_uses_raw_values_not_formatted_strings():
    small = _campaign("C1", name="b")
    small.ad_performances = [_fact(small, sales_revenue=999.0)]
    big = _campaign("C2", name="a")
    big.ad_performances = [_fact(big, sales_revenue=1000.0)]
    rows = [campaign_row(small), campaign_row(big)]

    # "1,000.00" < "999.00" as strings; raw sort must put 1000 first
    by_revenue = sort_rows(rows, "total_revenue", "desc")
    assert [r.id for r in by_revenue] == ["C2", "C1"]
    by_name = sort_rows(rows, "campaign_name", "asc")
    assert [r.id for r in by_name] == ["C2", "C1"]


def test_apply_listing_params_search_and_sort():
    rows = [
        campaign_row(_campaign("C1", name="Summer Sale")),
        campaign_row(_campaign("C2", name="Winter Sale")),
        campaign_row(_campaign("C3", name="Brand")),
    ]
    out = apply_listing_params(rows, ListingParams(search="SALE", sort_by="campaign_name", sort_dir="desc"))
    assert [r["id"] for r in out] == ["C2", "C1"]


def test_distinct_keeps_first_occurrence_order():
    names = ["Gadget", None, "Widget", "", "Gadget"] * 1000 + ["Lamp"]
    assert _distinct(names) == ["Gadget", "Widget", "Lamp"]
