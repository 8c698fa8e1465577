"""
Ingestion error taxonomy.

UploadValidationError and EmptyFileError are raised before any write and are
turned into user-facing messages at the upload boundary. RowProcessingError
is skipped-and-logged per row; FlushError aborts the whole import.
"""

from typing import Optional


class IngestError(Exception):
    """Raised when ingestion cannot proceed."""


class UploadValidationError(IngestError):
    """Uploaded file failed the extension / MIME / size check."""


class EmptyFileError(IngestError):
    """Spreadsheet has no header row, or a header and no data rows."""


class RowProcessingError(IngestError):
    """A single row could not be resolved or transformed."""

    def __init__(self, message: str, row_number: Optional[int] = None):
        super().__init__(message)
        self.row_number = row_number

    def __str__(self) -> str:
        message = super().__str__()
        if self.row_number is None:
            return message
        return f"Row {self.row_number}: {message}"


class FlushError(IngestError):
    """A bulk insert of buffered fact rows failed."""

    def __init__(self, message: str, batch_size: int = 0):
        super().__init__(message)
        self.batch_size = batch_size
