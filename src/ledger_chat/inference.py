"""
Keyword inference for direction and payment channel.

These rules are shared by every extraction strategy. Direction inference
never guesses: when neither an income nor an expense keyword is present the
result is Direction.UNKNOWN and the conversation asks the user.
"""

import re

from .schemas.transaction import Direction

# Income wins over expense when both appear ("ACH credit" for a "payment from")
_IN_RE = re.compile(
    r"\b(credit|deposit(?:ed)?|payment from|received|receive|earned|income|salary|"
    r"payroll|refund(?:ed)?|reimburse(?:d|ment)?|sold)\b",
    re.IGNORECASE,
)
_OUT_RE = re.compile(
    r"\b(debit|withdrawal|withdrew|payment to|purchase[sd]?|bought|spent|paid|"
    r"bill|fee|charge[sd]?)\b",
    re.IGNORECASE,
)

# Statement type lines that settle direction on their own ("Check Card 1234" included)
_OUT_TYPES = ("card", "check card", "atm transaction")
_IN_TYPES = ("ach credit", "zelle credit")

# Ordered: first hit wins
_STATEMENT_TYPE_KEYWORDS = [
    ("paypal", "PayPal"),
    ("zelle", "Zelle"),
    ("ach", "ACH"),
    ("card", "Card"),
    ("deposit", "Deposit"),
    ("atm", "ATM"),
    ("withdrawal", "Withdrawal"),
    ("payment", "Payment"),
]

_CONVERSATIONAL_TYPE_KEYWORDS = [
    (("card", "credit", "debit"), "Card"),
    (("cash",), "Cash"),
    (("paypal", "venmo", "zelle"), "Transfer"),
    (("check",), "Check"),
]

_AMOUNT_RE = re.compile(
    r"[$£€¥]\s?\d{1,3}(?:,\d{3})*(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?\s*[$£€¥]"
    r"|\b\d{1,3}(?:,\d{3})*(?:\.\d{1,2})?\s*(?:dollars?|usd|cad|eur|gbp|bucks?|pounds?|euros?|yen)\b",
    re.IGNORECASE,
)
_WORD_AMOUNT_RE = re.compile(
    r"\b(?:one|two|three|four|five|six|seven|eight|nine|ten|twenty|thirty|forty|fifty|"
    r"sixty|seventy|eighty|ninety|hundred|thousand)\s+(?:dollars?|bucks?|pounds?|euros?)\b",
    re.IGNORECASE,
)
_TXN_KEYWORD_RE = re.compile(
    r"\b(spent|paid|bought|sold|received|deposit|income|expense|cost|got|transfer|sent|"
    r"charge|fee|payment|salary|invoice|refund)\b",
    re.IGNORECASE,
)
_DATE_HINT_RE = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\b|\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?"
    r"|\b\d{4}\b|\b(yesterday|today|last week|last month|monday|tuesday|wednesday|thursday|"
    r"friday|saturday|sunday)\b",
    re.IGNORECASE,
)

BULK_DIRECTION_IN_RE = re.compile(
    r"\b(?:all|these are all|mark all as)\s+(?:in|income|deposits?)\b", re.IGNORECASE
)
BULK_DIRECTION_OUT_RE = re.compile(
    r"\b(?:all|these are all|mark all as)\s+(?:out|expenses?|payments?|spending)\b", re.IGNORECASE
)


def infer_direction(text: str, type_hint: str = "") -> Direction:
    """
    Infer money flow from description/type keywords.

    Args:
        text: Description (and any extra context) of the transaction
        type_hint: Payment channel, e.g. "ACH credit" or "Card"

    Returns:
        Direction.IN, Direction.OUT, or Direction.UNKNOWN when undecided
    """
    type_lower = (type_hint or "").strip().lower()
    combined = f"{text or ''} {type_hint or ''}"

    if type_lower.startswith(_IN_TYPES) or _IN_RE.search(combined):
        return Direction.IN
    if type_lower.startswith(_OUT_TYPES) or _OUT_RE.search(combined):
        return Direction.OUT
    return Direction.UNKNOWN


def infer_statement_type(block_text: str) -> str:
    """Payment channel for a statement block that has no explicit type line."""
    lowered = block_text.lower()
    for keyword, type_name in _STATEMENT_TYPE_KEYWORDS:
        if keyword in lowered:
            return type_name
    return "unknown"


def infer_conversational_type(description: str) -> str:
    """Payment channel guessed from a conversational description."""
    lowered = description.lower()
    for keywords, type_name in _CONVERSATIONAL_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return type_name
    return "unknown"


def has_currency_amount(text: str) -> bool:
    """True when the text contains something that reads as a money amount."""
    return bool(_AMOUNT_RE.search(text or "") or _WORD_AMOUNT_RE.search(text or ""))


def text_looks_like_transaction(text: str) -> bool:
    """
    Cheap gate deciding whether a message is worth sending to extraction.

    A money amount is enough on its own; otherwise a transaction verb has to
    appear together with some date hint.
    """
    if not text:
        return False
    if has_currency_amount(text):
        return True
    return bool(_TXN_KEYWORD_RE.search(text) and _DATE_HINT_RE.search(text))


def explicit_direction_intent(text: str) -> Direction | None:
    """
    Direction the user stated for the whole message ("these are all income").

    Returns None when the message states neither or both.
    """
    wants_in = bool(BULK_DIRECTION_IN_RE.search(text or ""))
    wants_out = bool(BULK_DIRECTION_OUT_RE.search(text or ""))
    if wants_in and not wants_out:
        return Direction.IN
    if wants_out and not wants_in:
        return Direction.OUT
    return None
