"""
Uploads Router — Spreadsheet upload and import-job status.

POST /uploads validates and stores the file, then either queues the import as
a background task (202) or, with background=false, runs it inline and
returns the outcome including the campaigns the import touched.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, Response, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adperf.config import get_settings
from adperf.database import get_db, get_session_factory
from adperf.exceptions import EmptyFileError, FlushError, IngestError, UploadValidationError
from adperf.models import ImportJob
from adperf.services.import_service import (
    create_job, execute_import, run_import_in_background, save_upload,
)
from adperf.utils import parse_uuid, safe_error_detail

logger = logging.getLogger(__name__)
router = APIRouter()


def _job_to_dict(job: ImportJob) -> dict:
    stats = job.stats or {}
    return {
        "id": str(job.id),
        "filename": job.filename,
        "file_format": job.file_format,
        "status": job.status,
        "rows_read": job.rows_read or 0,
        "rows_imported": job.rows_imported or 0,
        "rows_skipped": job.rows_skipped or 0,
        "flush_count": job.flush_count or 0,
        "updated_campaigns": stats.get("updated_campaigns", {}),
        "created": stats.get("created", {}),
        "skipped": stats.get("skipped", []),
        "error_message": job.error_message,
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
    }


@router.post("")
async def upload_spreadsheet(
    response: Response,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(..., description="xlsx, xls or csv performance export"),
    background: Optional[bool] = Query(None, description="Override IMPORT_IN_BACKGROUND for this upload"),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    settings = get_settings()
    try:
        file_format, path = await save_upload(file, settings)
    except EmptyFileError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except UploadValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    job = await create_job(db, file.filename, file_format)

    run_in_background = settings.import_in_background if background is None else background
    if run_in_background:
        background_tasks.add_task(run_import_in_background, job.id, path, session_factory)
        response.status_code = 202
        return {
            "message": "File uploaded and is being processed in background.",
            "job_id": str(job.id),
            "status": job.status,
        }

    try:
        result = await execute_import(db, job, path, settings)
    except FlushError as e:
        raise HTTPException(
            status_code=500,
            detail=safe_error_detail(e, "Import failed while writing rows. The job has been marked failed."),
        )
    except IngestError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "message": f"File imported: {result.rows_imported} rows imported, {result.rows_skipped} skipped.",
        "job_id": str(job.id),
        "status": job.status,
        "updated_campaigns": result.updated_campaigns,
        "rows_read": result.rows_read,
        "rows_imported": result.rows_imported,
        "rows_skipped": result.rows_skipped,
        "flush_count": result.flush_count,
    }


@router.get("/jobs")
async def list_import_jobs(
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Import history, latest first."""
    result = await db.execute(
        select(ImportJob).order_by(ImportJob.created_at.desc()).limit(limit)
    )
    return [_job_to_dict(j) for j in result.scalars().all()]


@router.get("/jobs/{job_id}")
async def get_import_job(job_id: str, db: AsyncSession = Depends(get_db)):
    job = await db.get(ImportJob, parse_uuid(job_id, "job_id"))
    if not job:
        raise HTTPException(status_code=404, detail="Import job not found.")
    return _job_to_dict(job)
