"""
SSOT (Single Source of Truth) schemas.

These canonical schemas are the ONLY models used across all modules.
No duplicated "near-same" models allowed.
"""

from .dedupe import DedupeResult, dedupe_key, dedupe_transactions
from .transaction import (
    CATEGORIES,
    DEFAULT_CATEGORY,
    DEFAULT_CURRENCY,
    EXPENSE_CATEGORY,
    UNKNOWN_DATE,
    UNKNOWN_DESCRIPTION,
    Chunk,
    ChunkStatus,
    Direction,
    ExtractionBatch,
    Transaction,
    new_id,
)

__all__ = [
    # Dedupe
    "DedupeResult",
    "dedupe_key",
    "dedupe_transactions",
    # Transaction
    "CATEGORIES",
    "DEFAULT_CATEGORY",
    "DEFAULT_CURRENCY",
    "EXPENSE_CATEGORY",
    "UNKNOWN_DATE",
    "UNKNOWN_DESCRIPTION",
    "Chunk",
    "ChunkStatus",
    "Direction",
    "ExtractionBatch",
    "Transaction",
    "new_id",
]
