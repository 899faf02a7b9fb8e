"""
Ingestion error taxonomy.

Row-level problems (unmatched SKUs, bad quantities) and duplicate orders are
counted, never raised. Everything here aborts the request that raised it.
"""
from typing import Optional, Sequence


class IngestionError(Exception):
    """Base class for errors surfaced to the upload caller."""


class EmptyFileError(IngestionError):
    """The decoded sheet has no header row or no data rows."""


class UnsupportedFileTypeError(IngestionError):
    """The upload is not a CSV or Excel workbook."""


class EmptyCatalogError(IngestionError):
    """The user has no catalog variants to match order lines against."""


class UnsupportedPlatformError(IngestionError):
    """No adapter is registered for the requested platform tag."""

    def __init__(self, platform: Optional[str]):
        self.platform = platform
        super().__init__(f"Unsupported platform: {platform!r}")


class StoreAccountNotFoundError(IngestionError):
    pass


class StorageError(IngestionError):
    """A persistence call failed; earlier stages are not rolled back."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class StockReconciliationError(IngestionError):
    """One or more per-variant stock updates failed after line items were saved."""

    def __init__(self, failed_skus: Sequence[str], message: Optional[str] = None):
        self.failed_skus = list(failed_skus)
        super().__init__(
            message or f"Stock update failed for {len(self.failed_skus)} variant(s): {', '.join(self.failed_skus)}"
        )


class StockMovementError(IngestionError):
    """A manual stock movement was rejected."""
