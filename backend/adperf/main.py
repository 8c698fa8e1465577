"""
Ad Performance Dashboard — FastAPI Backend
Spreadsheet uploads of campaign performance data are ingested into a
vendor / product / campaign / category / keyword star schema and served
back as aggregated listings.
Serves frontend static files when present (unified deploy = no CORS).
"""

import logging
from pathlib import Path
from contextlib import asynccontextmanager
from starlette.responses import Response, FileResponse
from fastapi import Depends, FastAPI
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware
from adperf.config import get_settings
from adperf.database import init_db, check_db_connection
from adperf.auth import require_auth
from adperf.routers import uploads, campaigns, products, keywords, categories

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Ad Performance Dashboard...")
    try:
        await init_db()
        logger.info("Database initialized — all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="Ad Performance Dashboard",
    description="Spreadsheet ingestion and ROAS / CTR / CVR reporting for ad campaigns",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Register Routers (all require auth) ──────────────────────────────
_auth = [Depends(require_auth)]
app.include_router(uploads.router, prefix="/api/uploads", tags=["Uploads"], dependencies=_auth)
app.include_router(campaigns.router, prefix="/api/campaigns", tags=["Campaigns"], dependencies=_auth)
app.include_router(products.router, prefix="/api/products", tags=["Products"], dependencies=_auth)
app.include_router(keywords.router, prefix="/api/keywords", tags=["Keywords"], dependencies=_auth)
app.include_router(categories.router, prefix="/api/categories", tags=["Categories"], dependencies=_auth)


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "Ad Performance Dashboard",
        "database": "connected" if db_ok else "disconnected",
    }


# Static files + SPA fallback (when backend/static exists = unified deploy, no CORS)
STATIC_DIR = Path(__file__).resolve().parent.parent / "static"
if STATIC_DIR.exists():
    app.mount("/assets", StaticFiles(directory=STATIC_DIR / "assets"), name="assets")

    @app.get("/{full_path:path}", include_in_schema=False)
    async def serve_spa(full_path: str):
        """Serve SPA for non-API routes. API routes registered above."""
        if full_path.startswith("api") or full_path == "api":
            return Response(status_code=404)
        file_path = STATIC_DIR / full_path
        if file_path.is_file():
            return FileResponse(file_path)
        return FileResponse(STATIC_DIR / "index.html")
