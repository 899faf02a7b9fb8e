"""
Ingestion Schemas Package
Provides the data structures shared by the order upload pipeline.
"""

from .ingestion_schemas import (
    # Catalog
    CatalogVariant,

    # Pipeline stages
    GroupedOrder,
    ValidatedLineItem,
    ValidatedOrder,
    AdapterResult,

    # Caller-facing
    StoreAccountRef,
    IngestionResult,
    RowPreview,
    ProductStatus,
    DuplicateStatus,
)
