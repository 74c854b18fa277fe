"""
Bank statement block extractor.

Parses text pasted from an online banking statement where every transaction
is printed as a block of lines:

    Apr 12, 2025
    PAYPAL TRANSFER PPD ID: PAYPALSD11
    ACH credit
    $599.52

- Line 1: date header ("Apr 12, 2025" or "04/12/2025")
- Lines 2..n-2: description
- Line n-1 (optional): transaction type
- Line n: amount
"""

import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation

from ..categorizer import categorize
from ..dates import STATEMENT_DATE_HEADER_RE, resolve_date
from ..inference import infer_direction, infer_statement_type
from ..schemas.transaction import UNKNOWN_DATE, Direction, Transaction
from .base import BaseExtractor

logger = logging.getLogger(__name__)

AMOUNT_LINE_RE = re.compile(r"^\$\s*([\d,]+\.\d{2})")

TYPE_LINE_RE = re.compile(
    r"^(ACH credit|Zelle credit|Card|Deposit|ATM transaction|Other|ACH debit|Check Card|"
    r"Payment|Withdrawal)",
    re.IGNORECASE,
)

# Description lines that name the counterparty better than the bank's boilerplate
_SPECIFIC_LINE_KEYWORDS = ("payment from", "paypal", "coinbase", "sparkles")

# A block needs a date, at least one description/type line and an amount
MIN_BLOCK_LINES = 3


def split_statement_blocks(text: str) -> list[list[str]]:
    """
    Split statement text into blocks, each starting at a date header line.

    Lines before the first header are ignored; blank lines are dropped.
    """
    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if line]

    starts = [i for i, line in enumerate(lines) if STATEMENT_DATE_HEADER_RE.match(line)]
    blocks = []
    for n, start in enumerate(starts):
        end = starts[n + 1] if n + 1 < len(starts) else len(lines)
        blocks.append(lines[start:end])
    return blocks


def looks_like_statement(text: str) -> bool:
    """True when the text contains at least one date header line."""
    return any(STATEMENT_DATE_HEADER_RE.match(line.strip()) for line in text.splitlines())


class BankStatementExtractor(BaseExtractor):
    """
    Extracts transactions from pasted bank statement blocks.

    Direction comes from the type line and keywords only; a block that
    settles neither way stays Direction.UNKNOWN.
    """

    @property
    def name(self) -> str:
        return "bank_statement"

    @property
    def priority(self) -> int:
        return 100

    def can_extract(self, text: str) -> bool:
        return looks_like_statement(text)

    def extract(self, text: str, reference: date) -> list[Transaction]:
        transactions = []
        blocks = split_statement_blocks(text)
        logger.debug("Found %d potential statement block(s)", len(blocks))

        for block in blocks:
            txn = self._parse_block(block, reference)
            if txn is not None:
                transactions.append(txn)

        logger.debug("Bank statement extractor produced %d transaction(s)", len(transactions))
        return transactions

    def _parse_block(self, lines: list[str], reference: date) -> Transaction | None:
        """Parse one date-headed block; None when it is not a complete transaction."""
        if len(lines) < MIN_BLOCK_LINES:
            logger.debug("Statement block too short (%d lines), skipping", len(lines))
            return None

        txn_date = resolve_date(lines[0], reference)
        if txn_date == UNKNOWN_DATE:
            logger.debug("Could not parse statement date %r, skipping block", lines[0])
            return None

        # Amount: last line (searching backwards) that starts with "$"
        amount = None
        amount_index = -1
        for j in range(len(lines) - 1, 0, -1):
            match = AMOUNT_LINE_RE.match(lines[j])
            if match:
                try:
                    amount = Decimal(match.group(1).replace(",", ""))
                except InvalidOperation:
                    amount = None
                amount_index = j
                break

        if amount is None or amount <= 0:
            logger.debug("No valid amount line in statement block starting %r", lines[0])
            return None

        # Type: the line right before the amount, when it is a known type
        type_index = amount_index - 1
        has_type_line = False
        if type_index >= 1:
            type_match = TYPE_LINE_RE.match(lines[type_index])
            # Right after the date, only a bare type counts ("Payment to X" is a description)
            has_type_line = type_match is not None and (
                type_index >= 2 or type_match.end() == len(lines[type_index])
            )
        if has_type_line:
            txn_type = lines[type_index]
        else:
            txn_type = infer_statement_type(" ".join(lines))

        description_lines = lines[1 : type_index if has_type_line else amount_index]
        description = " ".join(description_lines).strip() or "unknown"

        lowered = description.lower()
        if any(keyword in lowered for keyword in _SPECIFIC_LINE_KEYWORDS):
            for line in description_lines:
                if any(keyword in line.lower() for keyword in _SPECIFIC_LINE_KEYWORDS):
                    description = line.strip()
                    break

        direction = infer_direction(description, txn_type)
        if direction == Direction.UNKNOWN:
            logger.debug("Direction undetermined for statement block dated %s", txn_date)

        return Transaction(
            date=txn_date,
            description=description,
            amount=amount,
            direction=direction,
            type=txn_type,
            category=categorize(description, txn_type),
        )
