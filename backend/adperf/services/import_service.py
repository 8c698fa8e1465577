"""
Import Service — Upload validation and the spreadsheet → database pipeline.

Flow: validate_upload → save_upload (probe for emptiness) → create_job →
execute_import, either inline or from a FastAPI background task through
run_import_in_background with its own session.

Rows are processed strictly in file order, one at a time. Malformed rows are
skipped and recorded on the job; a failed bulk insert aborts the import.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adperf.config import Settings, get_settings
from adperf.database import async_session
from adperf.exceptions import IngestError, UploadValidationError, EmptyFileError, RowProcessingError
from adperf.models import ImportJob, ImportStatus
from adperf.services.entity_resolver import EntityResolver, ImportContext
from adperf.services.fact_writer import FactWriter
from adperf.services.row_mapping import extra_attributes, parse_measures
from adperf.services.spreadsheet_parser import detect_format, iter_row_chunks, read_header
from adperf.utils import utcnow

logger = logging.getLogger(__name__)

MAX_SKIPPED_REASONS = 50
UPLOAD_READ_SIZE = 1024 * 1024

GENERIC_CONTENT_TYPES = ("", "application/octet-stream")
ALLOWED_CONTENT_TYPES = {
    "csv": ("text/csv", "application/csv", "text/plain", "application/vnd.ms-excel"),
    "xls": ("application/vnd.ms-excel",),
    "xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",),
}


@dataclass
class ImportResult:
    rows_read: int = 0
    rows_imported: int = 0
    rows_skipped: int = 0
    flush_count: int = 0
    updated_campaigns: dict = field(default_factory=dict)
    created: dict = field(default_factory=dict)
    skipped: list = field(default_factory=list)

    def skip(self, error: RowProcessingError):
        self.rows_skipped += 1
        if len(self.skipped) < MAX_SKIPPED_REASONS:
            self.skipped.append(str(error))

    def to_stats(self) -> dict:
        return {
            "created": self.created,
            "updated_campaigns": self.updated_campaigns,
            "skipped": self.skipped,
        }


# ── Upload boundary ───────────────────────────────────────────────────

def validate_upload(filename: Optional[str], content_type: Optional[str]) -> str:
    """Check extension and declared MIME type; returns the file format."""
    file_format = detect_format(filename)
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime not in GENERIC_CONTENT_TYPES and mime not in ALLOWED_CONTENT_TYPES[file_format]:
        raise UploadValidationError(
            f"Content type '{mime}' does not match a .{file_format} file."
        )
    return file_format


def _remove_upload(path: Path):
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove stored upload {path}: {e}")


async def save_upload(upload: UploadFile, settings: Optional[Settings] = None) -> tuple[str, Path]:
    """
    Validate an UploadFile, copy it into upload_dir and make sure it holds at
    least one data row. Returns (file_format, stored_path).

    The request's temp file is gone by the time a background task runs, so
    queued imports always read from the stored copy.
    """
    settings = settings or get_settings()
    file_format = validate_upload(upload.filename, upload.content_type)

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    path = upload_dir / f"adperf-upload-{uuid.uuid4().hex}.{file_format}"

    size = 0
    try:
        with open(path, "wb") as out:
            while True:
                chunk = await upload.read(UPLOAD_READ_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > settings.upload_max_bytes:
                    raise UploadValidationError(
                        f"File exceeds the {settings.upload_max_mb} MB upload limit."
                    )
                out.write(chunk)
        if size == 0:
            raise EmptyFileError("The uploaded file is empty.")
        await asyncio.to_thread(read_header, path, file_format)
    except Exception:
        _remove_upload(path)
        raise

    logger.info(f"Stored upload '{upload.filename}' ({size} bytes) at {path}")
    return file_format, path


async def create_job(db: AsyncSession, filename: Optional[str], file_format: str) -> ImportJob:
    job = ImportJob(filename=filename, file_format=file_format, status=ImportStatus.PENDING.value)
    db.add(job)
    await db.commit()
    return job


# ── Pipeline ──────────────────────────────────────────────────────────

async def run_import(
    db: AsyncSession,
    job: ImportJob,
    path: Path,
    batch_size: int = 500,
    chunk_size: int = 1000,
) -> ImportResult:
    """
    Parse the stored file and write dimensions and facts for every row.
    Raises EmptyFileError / UploadValidationError for unreadable sheets and
    FlushError when a batch cannot be written.
    """
    job_id = job.id
    ctx = await ImportContext.load(db)
    resolver = EntityResolver(db, ctx)
    result = ImportResult()

    with open(path, "rb") as stream:
        chunks = iter_row_chunks(stream, job.file_format, chunk_size)
        try:
            async with FactWriter(db, batch_size=batch_size) as writer:
                row_number = 1  # header
                while True:
                    # File reads block, so pull each chunk off the event loop
                    chunk = await asyncio.to_thread(next, chunks, None)
                    if chunk is None:
                        break
                    for row in chunk:
                        row_number += 1
                        result.rows_read += 1
                        try:
                            fact = parse_measures(row, row_number)
                            fact.update(await resolver.resolve(row, row_number))
                        except RowProcessingError as e:
                            logger.warning(f"Import {job_id}: skipped {e}")
                            result.skip(e)
                            continue
                        fact["extra_attributes"] = extra_attributes(row)
                        fact["import_job_id"] = job_id
                        await writer.add(fact)
        finally:
            chunks.close()

    # Dimension writes made after the last flush
    await db.commit()

    result.rows_imported = writer.rows_written
    result.flush_count = writer.flush_count
    result.updated_campaigns = dict(ctx.touched_campaigns)
    result.created = dict(ctx.created)
    return result


async def execute_import(
    db: AsyncSession,
    job: ImportJob,
    path: Path,
    settings: Optional[Settings] = None,
) -> ImportResult:
    """
    Run one import job end to end and record the outcome on the job row.
    The stored file is removed afterwards, whether the import succeeded or not.
    Failures are re-raised after the job is marked failed.
    """
    settings = settings or get_settings()
    job_id = job.id
    job.status = ImportStatus.RUNNING.value
    job.started_at = utcnow()
    await db.commit()
    logger.info(f"Import {job_id} started: '{job.filename}' ({job.file_format})")

    try:
        result = await run_import(
            db, job, path,
            batch_size=settings.import_batch_size,
            chunk_size=settings.import_chunk_size,
        )
    except Exception as e:
        logger.exception(f"Import {job_id} failed: {e}")
        await db.rollback()
        job = await db.get(ImportJob, job_id)
        job.status = ImportStatus.FAILED.value
        job.error_message = str(e)
        job.completed_at = utcnow()
        await db.commit()
        raise
    finally:
        _remove_upload(path)

    job.status = ImportStatus.COMPLETED.value
    job.rows_read = result.rows_read
    job.rows_imported = result.rows_imported
    job.rows_skipped = result.rows_skipped
    job.flush_count = result.flush_count
    job.stats = result.to_stats()
    job.completed_at = utcnow()
    await db.commit()

    logger.info(
        f"Import {job_id} completed: {result.rows_imported}/{result.rows_read} rows imported, "
        f"{result.rows_skipped} skipped, {result.flush_count} flushes, "
        f"{len(result.updated_campaigns)} campaigns touched"
    )
    return result


async def run_import_in_background(
    job_id: uuid.UUID,
    path: Path,
    session_factory: async_sessionmaker = async_session,
):
    """Background-task entry point: own session, outcome recorded on the job."""
    async with session_factory() as db:
        job = await db.get(ImportJob, job_id)
        if job is None:
            logger.error(f"Import job {job_id} not found; discarding {path}")
            _remove_upload(path)
            return
        try:
            await execute_import(db, job, path)
        except (IngestError, SQLAlchemyError, OSError) as e:
            # Already logged and stored on the job
            logger.info(f"Background import {job_id} ended with {type(e).__name__}")
