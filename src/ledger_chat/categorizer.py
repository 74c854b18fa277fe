"""
Rule-based category classifier over the closed category set.

Rules are matched against the raw description (case-sensitive merchant
names as printed by the bank) first, then against the payment channel.
"""

import logging

from .schemas.transaction import (
    CATEGORIES,
    CATEGORY_BUSINESS_INCOME,
    CATEGORY_CRYPTO,
    CATEGORY_INSECT_ASYLUM,
    CATEGORY_PAYPAL,
    CATEGORY_REMOTE_DEPOSITS,
    CATEGORY_RENT_RECEIVED,
    CATEGORY_RESEARCH,
    DEFAULT_CATEGORY,
    EXPENSE_CATEGORY,
    Direction,
    Transaction,
)

logger = logging.getLogger(__name__)

# (category, description fragments); first matching rule wins
DESCRIPTION_RULES: list[tuple[str, tuple[str, ...]]] = [
    (CATEGORY_PAYPAL, ("PAYPAL TRANSFER",)),
    (CATEGORY_CRYPTO, ("Coinbase", "COINBASE")),
    (
        CATEGORY_BUSINESS_INCOME,
        (
            "KAREN M BURRIS",
            "FULL MOON JAM FOUNDATION",
            "PYROTECHNIQ, INC.",
            "ROBERT G BERSHADSKY",
            "SPARKLES ENTERTA Payroll",
            "KEATON FISHER",
        ),
    ),
    (CATEGORY_RESEARCH, ("Open Research", "YC RESEARCH")),
    (CATEGORY_INSECT_ASYLUM, ("THE INSECT ASYLUM INC.",)),
    (CATEGORY_REMOTE_DEPOSITS, ("REMOTE ONLINE DEPOSIT", "ATM CASH DEPOSIT")),
    (CATEGORY_RENT_RECEIVED, ("CHRISTINA A VALDES",)),
]


def categorize(description: str, type: str) -> str:
    """
    Pick a category for a transaction.

    Args:
        description: Transaction description as extracted
        type: Payment channel (e.g. "Card", "ACH credit")

    Returns:
        One of CATEGORIES; "Other / Uncategorized" when nothing matches
    """
    description = description or ""
    for category, fragments in DESCRIPTION_RULES:
        if any(fragment in description for fragment in fragments):
            return category

    if type == "Card" or "Cash Redemption" in description:
        return EXPENSE_CATEGORY

    return DEFAULT_CATEGORY


def adjust_category_for_direction(category: str, direction: Direction) -> str:
    """
    Keep the default buckets consistent with the money flow.

    An expense left uncategorized goes to "Expenses"; income parked in
    "Expenses" goes back to "Other / Uncategorized".
    """
    if direction == Direction.OUT and category == DEFAULT_CATEGORY:
        return EXPENSE_CATEGORY
    if direction == Direction.IN and category == EXPENSE_CATEGORY:
        return DEFAULT_CATEGORY
    return category


def recategorize(txn: Transaction) -> Transaction:
    """
    Return ``txn`` with a category that agrees with its description and direction.

    Used after a direction change: an income that had been filed under the
    default expense bucket is re-run through the rules before falling back.
    """
    category = txn.category if txn.category in CATEGORIES else DEFAULT_CATEGORY
    if txn.direction == Direction.IN and category == EXPENSE_CATEGORY:
        category = categorize(txn.description, "")
    category = adjust_category_for_direction(category, txn.direction)
    if category != txn.category:
        logger.debug("Recategorized %s: %s -> %s", txn.id, txn.category, category)
        return txn.replace(category=category)
    return txn


def apply_direction(txn: Transaction, direction: Direction) -> Transaction:
    """Set the direction of ``txn`` and bring its category in line."""
    if txn.direction == direction:
        return txn
    return recategorize(txn.replace(direction=direction))
