"""
Conversational text extractor.

Regex templates for the way people describe money in chat:
- "I spent $20 at Target yesterday"          -> OUT
- "got $500 from Acme Corp last Monday"      -> IN
- "$15 for lunch"                            -> keyword-decided, else UNKNOWN
- "Amazon $40.00 4/1/2025" (one per line)    -> keyword-decided, else UNKNOWN

Patterns are tried in that order; a later match overlapping an earlier one
is skipped so "I spent $20 on lunch" is not also read as "$20 on lunch".
"""

import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation

from ..categorizer import categorize
from ..dates import DATE_PHRASE_PATTERN, resolve_date
from ..inference import has_currency_amount, infer_conversational_type, infer_direction
from ..schemas.transaction import UNKNOWN_DATE, Direction, Transaction
from .base import BaseExtractor

logger = logging.getLogger(__name__)

_AMOUNT = r"(?P<amount>\d[\d,]*(?:\.\d+)?)"
_DATE = rf"(?P<date>{DATE_PHRASE_PATTERN})"
# A description ends at a conjunction, punctuation or the end of the text
_END = r"(?=\s+(?:and|but|then)\b|\s*[.,;!?\n]|\s*$)"
_DESC = r"(?P<desc>[^.,;\n$]+?)"
_OPTIONAL_DATE = rf"(?:\s+(?:on\s+)?{_DATE})?"

SPENT_RE = re.compile(
    rf"\b(?:I|we)\s+(?:spent|paid|bought)\s+\$?{_AMOUNT}\s+(?:on|for|at)\s+{_DESC}{_OPTIONAL_DATE}{_END}",
    re.IGNORECASE,
)
INCOME_RE = re.compile(
    rf"(?:\b(?:I|we)\s+)?\b(?:got|received|earned)\s+\$?{_AMOUNT}\s+(?:from|for)\s+{_DESC}"
    rf"{_OPTIONAL_DATE}{_END}",
    re.IGNORECASE,
)
BARE_RE = re.compile(
    rf"\${_AMOUNT}\s+(?:for|on)\s+{_DESC}{_OPTIONAL_DATE}{_END}",
    re.IGNORECASE,
)
LINE_RE = re.compile(
    rf"^[ \t]*(?P<desc>[A-Za-z][^$\n]*?)\s+\${_AMOUNT}(?:\s+{_DATE})?[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)

# Most recent date phrase anywhere in the text, used when a match has none
GENERAL_DATE_RE = re.compile(rf"\b(?:on\s+)?{_DATE}\b", re.IGNORECASE)

# (pattern, fixed direction or None for keyword inference)
PATTERNS: list[tuple[re.Pattern, Direction | None]] = [
    (SPENT_RE, Direction.OUT),
    (INCOME_RE, Direction.IN),
    (BARE_RE, None),
    (LINE_RE, None),
]


def _parse_amount(raw: str) -> Decimal | None:
    try:
        amount = Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None
    return amount.quantize(Decimal("0.01"))


def _general_date(text: str, reference: date) -> str:
    """First resolvable date phrase in the text, or the reference date."""
    for match in GENERAL_DATE_RE.finditer(text):
        resolved = resolve_date(match.group("date"), reference)
        if resolved != UNKNOWN_DATE:
            return resolved
    return reference.isoformat()


class ConversationalExtractor(BaseExtractor):
    """
    Regex extractor for short free-form messages.

    Deterministic: the same text and reference date always give the same
    fields (ids aside).
    """

    @property
    def name(self) -> str:
        return "conversational"

    @property
    def priority(self) -> int:
        return 50

    def can_extract(self, text: str) -> bool:
        return has_currency_amount(text)

    def extract(self, text: str, reference: date) -> list[Transaction]:
        default_date = _general_date(text, reference)
        claimed: list[tuple[int, int]] = []
        found: list[tuple[int, Transaction]] = []

        for pattern, fixed_direction in PATTERNS:
            for match in pattern.finditer(text):
                start, end = match.span()
                if any(start < c_end and c_start < end for c_start, c_end in claimed):
                    continue

                txn = self._build(match, fixed_direction, default_date, reference)
                if txn is None:
                    continue
                claimed.append((start, end))
                found.append((start, txn))

        # Report in reading order regardless of which pattern matched
        found.sort(key=lambda item: item[0])
        transactions = [txn for _, txn in found]
        logger.debug("Conversational extractor produced %d transaction(s)", len(transactions))
        return transactions

    def _build(
        self,
        match: re.Match,
        fixed_direction: Direction | None,
        default_date: str,
        reference: date,
    ) -> Transaction | None:
        amount = _parse_amount(match.group("amount"))
        if amount is None or amount <= 0:
            return None

        description = match.group("desc").strip()
        if not description:
            return None

        txn_date = default_date
        if match.group("date"):
            resolved = resolve_date(match.group("date"), reference)
            if resolved != UNKNOWN_DATE:
                txn_date = resolved

        txn_type = infer_conversational_type(description)
        direction = fixed_direction
        if direction is None:
            direction = infer_direction(match.group(0), "")

        return Transaction(
            date=txn_date,
            description=description,
            amount=amount,
            direction=direction,
            type=txn_type,
            category=categorize(description, txn_type),
        )
