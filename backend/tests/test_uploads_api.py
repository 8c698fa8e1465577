"""
Tests for the upload endpoint, import jobs and the listings they feed.
"""

import io
from pathlib import Path

import openpyxl
import pytest
from unittest.mock import AsyncMock, patch

from adperf.exceptions import FlushError
from adperf.models import AdPerformance, Campaign, Category, ImportJob, Keyword, Product, Vendor

THREE_ROW_CSV = (
    "vendor_id,product_id,campaign_id,campaign_name,asset_type,clicks,sales_revenue,roas\n"
    "V1,P1,C1,Summer Sale (Promo),AD_TYPE_SEARCH,10,100.50,2.5\n"
    "V1,P2,C1,Summer Sale (Promo),AD_TYPE_SEARCH,5,50,3.5\n"
    "V2,P1,C2,Shelf Placement,AD_TYPE_LISTING,7,1200,4\n"
)


def _csv_file(text: str, name: str = "performance.csv", content_type: str = "text/csv"):
    return {"file": (name, text.encode("utf-8"), content_type)}


def _by_id(listing: list) -> dict:
    return {row["id"]: row["data"] for row in listing}


async def _count_all(session_factory, count_rows) -> int:
    async with session_factory() as db:
        total = 0
        for model in (Vendor, Product, Campaign, Category, Keyword, AdPerformance):
            total += await count_rows(db, model)
        return total


@pytest.mark.anyio
async def test_three_row_upload_end_to_end(client):
    response = await client.post("/api/uploads?background=false", files=_csv_file(THREE_ROW_CSV))
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["rows_imported"] == 3
    assert body["rows_skipped"] == 0
    assert body["updated_campaigns"] == {"C1": "Summer Sale", "C2": "Shelf Placement"}

    campaigns = (await client.get("/api/campaigns")).json()["campaign_data"]
    assert len(campaigns) == 2
    by_id = _by_id(campaigns)
    assert by_id["C1"]["campaign_name"] == "Summer Sale"
    assert by_id["C1"]["campaign_type"] == "SEARCH"
    assert by_id["C1"]["total_clicks"] == 15
    assert by_id["C1"]["total_revenue"] == "150.50"
    assert by_id["C1"]["average_roas"] == 3.0
    assert by_id["C1"]["product_count"] == 0  # product_id only, no names
    assert by_id["C2"]["total_clicks"] == 7
    assert by_id["C2"]["total_revenue"] == "1,200.00"
    assert by_id["C2"]["average_roas"] == 4.0

    categories = (await client.get("/api/categories")).json()["category_data"]
    assert len(categories) == 1
    assert categories[0]["data"]["campaigns"] == 1
    assert categories[0]["data"]["campaign_names"] == "Shelf Placement"

    keywords = (await client.get("/api/keywords")).json()["keyword_data"]
    assert len(keywords) == 1
    assert keywords[0]["data"]["campaigns"] == 1
    assert keywords[0]["data"]["total_clicks"] == 15

    products = _by_id((await client.get("/api/products")).json()["product_data"])
    assert products["P1"]["campaigns"] == 2
    assert products["P2"]["campaigns"] == 1


@pytest.mark.anyio
async def test_background_upload_queues_job_and_cleans_up(client, settings_env):
    response = await client.post("/api/uploads", files=_csv_file(THREE_ROW_CSV))
    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert "being processed in background" in body["message"]

    # ASGITransport runs background tasks before the request returns
    job = (await client.get(f"/api/uploads/jobs/{body['job_id']}")).json()
    assert job["status"] == "completed"
    assert job["rows_imported"] == 3
    assert job["flush_count"] == 1
    assert job["updated_campaigns"] == {"C1": "Summer Sale", "C2": "Shelf Placement"}
    assert job["created"]["campaigns"] == 2

    jobs = (await client.get("/api/uploads/jobs")).json()
    assert [j["id"] for j in jobs] == [body["job_id"]]

    upload_dir = settings_env.upload_dir
    assert list(Path(upload_dir).iterdir()) == []


@pytest.mark.anyio
async def test_header_only_upload_is_422_with_no_writes(client, session_factory, count_rows):
    response = await client.post(
        "/api/uploads?background=false",
        files=_csv_file("vendor_id,product_id,campaign_id\n"),
    )
    assert response.status_code == 422
    assert "no data rows" in response.json()["detail"]
    assert await _count_all(session_factory, count_rows) == 0
    async with session_factory() as db:
        assert await count_rows(db, ImportJob) == 0


@pytest.mark.anyio
async def test_zero_byte_upload_is_422(client, session_factory, count_rows):
    response = await client.post("/api/uploads", files=_csv_file(""))
    assert response.status_code == 422
    assert await _count_all(session_factory, count_rows) == 0


@pytest.mark.anyio
async def test_unsupported_extension_is_400(client):
    response = await client.post(
        "/api/uploads",
        files={"file": ("report.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert response.status_code == 400
    assert "Unsupported file type" in response.json()["detail"]


@pytest.mark.anyio
async def test_mismatched_content_type_is_400(client):
    response = await client.post(
        "/api/uploads",
        files=_csv_file(THREE_ROW_CSV, content_type="image/png"),
    )
    assert response.status_code == 400


@pytest.mark.anyio
async def test_oversize_upload_is_400(client, settings_env):
    tiny = settings_env.model_copy(update={"upload_max_mb": 0})
    with patch("adperf.routers.uploads.get_settings", return_value=tiny):
        response = await client.post("/api/uploads", files=_csv_file(THREE_ROW_CSV))
    assert response.status_code == 400
    assert "upload limit" in response.json()["detail"]


@pytest.mark.anyio
async def test_xlsx_upload(client):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["Vendor ID", "Product ID", "Product Name", "Campaign ID", "Campaign Name", "Asset Type",
               "Category ID", "Category Name L2", "Clicks", "Sales Revenue", "ROAS"])
    ws.append(["V1", 1001, "Widget", 42, "Shelf (Q3)", "AD_TYPE_LISTING", "CAT1", "Kitchen", 3, 30.0, 1.5])
    buf = io.BytesIO()
    wb.save(buf)

    response = await client.post(
        "/api/uploads?background=false",
        files={"file": (
            "report.xlsx", buf.getvalue(),
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )},
    )
    assert response.status_code == 200
    assert response.json()["updated_campaigns"] == {"42": "Shelf"}

    categories = _by_id((await client.get("/api/categories")).json()["category_data"])
    assert categories["CAT1"]["category_name"] == "Kitchen"
    detail = (await client.get("/api/campaigns/42/products")).json()
    assert detail["products"] == ["Widget"]


@pytest.mark.anyio
async def test_malformed_rows_are_skipped_and_reported(client, session_factory, count_rows):
    csv_text = (
        "campaign_id,asset_type,clicks,date,placement\n"
        "C1,AD_TYPE_SEARCH,4,2025-03-01,Top of search\n"
        "C1,AD_TYPE_SEARCH,lots,2025-03-02,\n"
        ",AD_TYPE_SEARCH,1,2025-03-03,\n"
        "C1,AD_TYPE_SEARCH,2,someday,\n"
    )
    body = (await client.post("/api/uploads?background=false", files=_csv_file(csv_text))).json()
    assert body["rows_read"] == 4
    assert body["rows_imported"] == 1
    assert body["rows_skipped"] == 3

    job = (await client.get(f"/api/uploads/jobs/{body['job_id']}")).json()
    assert job["skipped"][0].startswith("Row 3: ")
    assert "missing campaign_id" in job["skipped"][1]
    assert job["skipped"][2].startswith("Row 5: ")

    async with session_factory() as db:
        assert await count_rows(db, AdPerformance) == 1
        fact = await db.get(AdPerformance, 1)
        assert fact.extra_attributes == {"placement": "Top of search"}
        assert str(fact.import_job_id) == body["job_id"]


@pytest.mark.anyio
async def test_flush_failure_marks_job_failed(client, settings_env):
    with patch(
        "adperf.services.import_service.FactWriter.flush",
        new_callable=AsyncMock,
        side_effect=FlushError("Bulk insert of 3 fact rows failed: boom", 3),
    ):
        response = await client.post("/api/uploads?background=false", files=_csv_file(THREE_ROW_CSV))
    assert response.status_code == 500

    jobs = (await client.get("/api/uploads/jobs")).json()
    assert jobs[0]["status"] == "failed"
    assert "boom" in jobs[0]["error_message"]
    assert list(Path(settings_env.upload_dir).iterdir()) == []


@pytest.mark.anyio
async def test_listing_filters_and_detail_404(client):
    csv_text = (
        "campaign_id,campaign_name,asset_type,campaign_start_date,campaign_end_date,sales_revenue\n"
        "C1,March,AD_TYPE_SEARCH,2025-03-01,2025-03-31,10\n"
        "C2,April,AD_TYPE_SEARCH,2025-04-01,2025-04-30,999\n"
        "C3,Open,AD_TYPE_SEARCH,,,1000\n"
    )
    await client.post("/api/uploads?background=false", files=_csv_file(csv_text))

    march = (await client.get("/api/campaigns", params={"filter": "month", "month": "2025-03"})).json()
    assert sorted(r["id"] for r in march["campaign_data"]) == ["C1", "C3"]

    day = (await client.get("/api/campaigns", params={"filter": "day", "date": "2025-04-15"})).json()
    assert sorted(r["id"] for r in day["campaign_data"]) == ["C2", "C3"]

    ranked = (await client.get("/api/campaigns", params={"sort_by": "total_revenue", "sort_dir": "desc"})).json()
    assert [r["id"] for r in ranked["campaign_data"]] == ["C3", "C2", "C1"]

    bad_month = await client.get("/api/campaigns", params={"filter": "month", "month": "2025-13"})
    assert bad_month.status_code == 400
    missing_day = await client.get("/api/campaigns", params={"filter": "day"})
    assert missing_day.status_code == 400

    assert (await client.get("/api/campaigns/NOPE/products")).status_code == 404
    assert (await client.get("/api/products/NOPE/campaigns")).status_code == 404
    assert (await client.get("/api/keywords/999/products")).status_code == 404
    assert (await client.get("/api/uploads/jobs/not-a-uuid")).status_code == 400


@pytest.mark.anyio
async def test_non_finite_measures_are_skipped_and_listings_still_render(client, session_factory, count_rows):
    csv_text = (
        "campaign_id,campaign_name,asset_type,roas,clicks\n"
        "C1,A,AD_TYPE_SEARCH,inf,10\n"
        "C1,A,AD_TYPE_SEARCH,NaN,4\n"
        "C1,A,AD_TYPE_SEARCH,2.5,3\n"
    )
    body = (await client.post("/api/uploads?background=false", files=_csv_file(csv_text))).json()
    assert body["rows_imported"] == 1
    assert body["rows_skipped"] == 2

    async with session_factory() as db:
        assert await count_rows(db, AdPerformance) == 1

    response = await client.get("/api/campaigns")
    assert response.status_code == 200
    data = _by_id(response.json()["campaign_data"])["C1"]
    assert data["average_roas"] == 2.5
    assert data["total_clicks"] == 3
    assert (await client.get("/api/keywords")).status_code == 200


@pytest.mark.anyio
async def test_non_utf8_csv_is_400_with_no_writes(client, session_factory, count_rows, settings_env):
    raw = "campaign_id,campaign_name,asset_type\nC1,Café Sale,AD_TYPE_SEARCH\n".encode("cp1252")
    response = await client.post("/api/uploads", files={"file": ("export.csv", raw, "text/csv")})
    assert response.status_code == 400
    assert "UTF-8" in response.json()["detail"]
    assert await _count_all(session_factory, count_rows) == 0
    async with session_factory() as db:
        assert await count_rows(db, ImportJob) == 0
    assert list(Path(settings_env.upload_dir).iterdir()) == []


@pytest.mark.anyio
async def test_bad_encoding_past_header_fails_job(client, settings_env):
    # Valid UTF-8 well beyond the first decode block, then a cp1252 byte
    filler = "x" * 100
    good = "".join(f"C1,AD_TYPE_SEARCH,1,{filler}\n" for _ in range(200))
    raw = ("campaign_id,asset_type,clicks,notes\n" + good).encode("utf-8")
    raw += "C2,AD_TYPE_SEARCH,1,Café\n".encode("cp1252")

    response = await client.post(
        "/api/uploads?background=false",
        files={"file": ("export.csv", raw, "text/csv")},
    )
    assert response.status_code == 422
    assert "UTF-8" in response.json()["detail"]

    jobs = (await client.get("/api/uploads/jobs")).json()
    assert jobs[0]["status"] == "failed"
    assert "UTF-8" in jobs[0]["error_message"]
    assert list(Path(settings_env.upload_dir).iterdir()) == []


@pytest.mark.anyio
async def test_xls_upload(client):
    raw = (Path(__file__).parent / "fixtures" / "performance_legacy.xls").read_bytes()
    response = await client.post(
        "/api/uploads?background=false",
        files={"file": ("legacy.xls", raw, "application/vnd.ms-excel")},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["rows_imported"] == 2
    assert set(body["updated_campaigns"]) == {"C1", "42"}

    # No asset_type column, so both campaigns are LISTING under the placeholder category
    categories = _by_id((await client.get("/api/categories")).json()["category_data"])
    assert list(categories) == ["uncategorized"]
    assert categories["uncategorized"]["campaigns"] == 2
    assert (await client.get("/api/keywords")).json()["keyword_data"] == []
