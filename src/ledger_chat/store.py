"""
In-memory transaction store.

Keyed by transaction id, iterated in insertion order. Only the commit step
(router middleware and the bulk task) writes to it.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .schemas.transaction import Transaction

logger = logging.getLogger(__name__)


class TransactionStore:
    """Ordered id -> Transaction map."""

    def __init__(self, transactions: Iterable[Transaction] = ()):
        self._items: dict[str, Transaction] = {}
        self.add(transactions)

    def add(self, transactions: Iterable[Transaction]) -> int:
        """
        Insert transactions; an existing id is replaced in place.

        Returns:
            Number of records written
        """
        count = 0
        for txn in transactions:
            self._items[txn.id] = txn
            count += 1
        if count:
            logger.debug("Stored %d transaction(s), %d total", count, len(self._items))
        return count

    def update(self, transaction: Transaction) -> bool:
        """Replace a stored record by id. Returns False when the id is unknown."""
        if transaction.id not in self._items:
            logger.warning("Update for unknown transaction %s ignored", transaction.id)
            return False
        self._items[transaction.id] = transaction
        return True

    def get(self, txn_id: str) -> Optional[Transaction]:
        return self._items.get(txn_id)

    def list(self) -> list[Transaction]:
        return list(self._items.values())

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, txn_id: object) -> bool:
        return txn_id in self._items
