"""
Canonical transaction record (SSOT).

Every extractor, handler and store in the system speaks this one type.
Records are never edited in place: changes go through ``Transaction.replace``,
which returns a new record with the same id.
"""

import dataclasses
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

UNKNOWN_DATE = "unknown"
UNKNOWN_DESCRIPTION = "unknown"
DEFAULT_CURRENCY = "USD"

# Closed category set. Order matters only for prompts and summaries.
CATEGORY_PAYPAL = "PayPal Transfers"
CATEGORY_BUSINESS_INCOME = "Business Income - Austen Cloud Performance"
CATEGORY_CRYPTO = "Crypto Sales"
CATEGORY_RESEARCH = "Non-Taxable Research/Surveys"
CATEGORY_INSECT_ASYLUM = "Misc Work - Insect Asylum"
CATEGORY_REMOTE_DEPOSITS = "Remote Deposits"
CATEGORY_RENT_RECEIVED = "Rent Payments Received (Non-Income)"
EXPENSE_CATEGORY = "Expenses"
DEFAULT_CATEGORY = "Other / Uncategorized"

CATEGORIES: tuple[str, ...] = (
    CATEGORY_PAYPAL,
    CATEGORY_BUSINESS_INCOME,
    CATEGORY_CRYPTO,
    CATEGORY_RESEARCH,
    CATEGORY_INSECT_ASYLUM,
    CATEGORY_REMOTE_DEPOSITS,
    CATEGORY_RENT_RECEIVED,
    EXPENSE_CATEGORY,
    DEFAULT_CATEGORY,
)


class Direction(str, Enum):
    """Money flow relative to the user."""

    IN = "IN"
    OUT = "OUT"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: object) -> "Direction":
        """Map loose LLM/user values ("in", "Out", None) onto the enum."""
        if isinstance(value, Direction):
            return value
        normalized = str(value or "").strip().upper()
        if normalized in ("IN", "OUT"):
            return cls(normalized)
        return cls.UNKNOWN


def new_id() -> str:
    """Opaque identifier for a transaction or batch."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Transaction:
    """
    A single financial transaction.

    amount is always non-negative; Decimal("0") is only used as an explicit
    "amount unknown" sentinel and never leaves the extractors.
    """

    date: str  # YYYY-MM-DD or "unknown"
    description: str
    amount: Decimal
    direction: Direction = Direction.UNKNOWN
    type: str = "unknown"  # Payment channel: Card, ACH, Zelle, Cash ...
    details: str = ""
    category: str = DEFAULT_CATEGORY
    notes: str = ""
    currency: str = DEFAULT_CURRENCY
    batch_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    def replace(self, **changes) -> "Transaction":
        """Return a copy with ``changes`` applied; the id is preserved."""
        changes.pop("id", None)
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict:
        """Serialize to dictionary for JSON output."""
        return {
            "id": self.id,
            "date": self.date,
            "description": self.description,
            "details": self.details,
            "type": self.type,
            "amount": f"{self.amount:.2f}",
            "currency": self.currency,
            "direction": self.direction.value,
            "category": self.category,
            "notes": self.notes,
            "batch_id": self.batch_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        """Deserialize from dictionary."""
        return cls(
            id=data.get("id") or new_id(),
            date=data.get("date") or UNKNOWN_DATE,
            description=data.get("description", ""),
            details=data.get("details", ""),
            type=data.get("type", "unknown"),
            amount=Decimal(str(data.get("amount", "0"))),
            currency=data.get("currency") or DEFAULT_CURRENCY,
            direction=Direction.parse(data.get("direction")),
            category=data.get("category") or DEFAULT_CATEGORY,
            notes=data.get("notes", ""),
            batch_id=data.get("batch_id"),
        )


@dataclass
class ExtractionBatch:
    """Transactions produced by one extraction call.

    Kept on the session so a later "it was actually $50" can be resolved
    against the records it most likely refers to.
    """

    batch_id: str
    source_text: str
    transactions: list[Transaction] = field(default_factory=list)

    @property
    def transaction_ids(self) -> list[str]:
        return [txn.id for txn in self.transactions]


class ChunkStatus(str, Enum):
    """Lifecycle of one bulk chunk."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class Chunk:
    """A slice of bulk text believed to hold one or more complete transactions."""

    index: int
    text: str
    status: ChunkStatus = ChunkStatus.PENDING
    error: Optional[str] = None
    message: Optional[str] = None
    transactions: list[Transaction] = field(default_factory=list)
