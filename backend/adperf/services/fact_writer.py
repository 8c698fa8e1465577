"""
Fact Writer — Buffers resolved ad_performances rows and writes them with one
bulk INSERT per full batch.

Use as an async context manager: whatever is still buffered when the block
exits is flushed, whether the block finished normally or raised. A failed
flush raises FlushError, rolls the session back and keeps the buffer intact;
nothing is ever dropped silently.
"""

import logging

from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from adperf.exceptions import FlushError
from adperf.models import AdPerformance

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


class FactWriter:

    def __init__(self, db: AsyncSession, batch_size: int = DEFAULT_BATCH_SIZE, commit: bool = True):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.db = db
        self.batch_size = batch_size
        self.commit = commit
        self.buffer: list[dict] = []
        self.flush_count = 0
        self.rows_written = 0
        self.flush_sizes: list[int] = []

    async def __aenter__(self) -> "FactWriter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if isinstance(exc, FlushError):
            # The failed batch is still buffered; flushing again would just repeat the failure
            return False
        try:
            await self.flush()
        except FlushError:
            if exc is None:
                raise
            logger.exception("Draining buffered facts failed while handling another error")
        return False

    async def add(self, fact: dict):
        self.buffer.append(fact)
        if len(self.buffer) >= self.batch_size:
            await self.flush()

    async def flush(self):
        """Write every buffered row in a single INSERT and commit. No-op when empty."""
        if not self.buffer:
            return
        batch_size = len(self.buffer)
        try:
            await self.db.execute(insert(AdPerformance), self.buffer)
            if self.commit:
                await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise FlushError(f"Bulk insert of {batch_size} fact rows failed: {e}", batch_size) from e

        self.flush_count += 1
        self.rows_written += batch_size
        self.flush_sizes.append(batch_size)
        self.buffer = []
        logger.info(f"Flushed {batch_size} fact rows (flush #{self.flush_count}, {self.rows_written} total)")
