"""
Transaction deduplication (CRITICAL).

This module defines THE identity key for transactions.
This is the ONLY place that decides whether two records are the same.

Identity key components (in order):
- date: as stored (YYYY-MM-DD or "unknown")
- amount: normalized to 2 decimal places
- description: lower-cased, whitespace collapsed
- direction: IN / OUT / UNKNOWN

Ids, batch ids, categories and notes never take part: the same purchase
extracted twice gets two different ids but one key.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Iterable

from .transaction import Transaction

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class DedupeResult:
    """Outcome of a dedupe pass."""

    unique: list[Transaction] = field(default_factory=list)
    duplicates: list[Transaction] = field(default_factory=list)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)


def _normalize_amount(amount: Decimal | str | float) -> str:
    """
    Normalize amount to consistent format for keying.

    Args:
        amount: Amount in various formats

    Returns:
        Normalized amount string with 2 decimal places
    """
    if isinstance(amount, str):
        amount = amount.replace(",", "")
        try:
            amount = Decimal(amount)
        except InvalidOperation:
            raise ValueError(f"amount is not numeric: {amount!r}") from None
    elif isinstance(amount, float):
        amount = Decimal(str(amount))
    elif not isinstance(amount, Decimal):
        raise ValueError(f"amount must be Decimal, str, or float, got: {type(amount)}")

    return f"{amount:.2f}"


def _normalize_string(value: str | None) -> str:
    """Normalize a string for keying (lowercase, collapse whitespace)."""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value).strip().lower()


def dedupe_key(txn: Transaction) -> str:
    """
    Compute the identity key of a transaction.

    Examples:
        >>> from ledger_chat.schemas.transaction import Direction
        >>> dedupe_key(Transaction("2025-04-13", "  Target ", Decimal("20"), Direction.OUT))
        '2025-04-13|20.00|target|OUT'
    """
    return "|".join(
        [
            (txn.date or "").strip().lower(),
            _normalize_amount(txn.amount),
            _normalize_string(txn.description),
            txn.direction.value,
        ]
    )


def dedupe_transactions(
    candidates: Iterable[Transaction],
    existing: Iterable[Transaction] = (),
) -> DedupeResult:
    """
    Drop candidates whose key matches an existing record or an earlier candidate.

    The first occurrence wins. Neither input is modified; the returned lists
    hold the same (immutable) records.

    Args:
        candidates: Newly extracted transactions
        existing: Transactions already stored

    Returns:
        DedupeResult with unique candidates and the suppressed duplicates
    """
    seen = {dedupe_key(txn) for txn in existing}
    result = DedupeResult()

    for txn in candidates:
        key = dedupe_key(txn)
        if key in seen:
            result.duplicates.append(txn)
            continue
        seen.add(key)
        result.unique.append(txn)

    return result
