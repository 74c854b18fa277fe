"""Deserialization boundary for LLM output.

Every JSON answer from the model passes through this module exactly once.
The helpers here either return one canonical, typed shape or raise
MalformedResponse; nothing downstream ever inspects raw model text.

Accepted quirks:
- Markdown code fences (```json ... ```)
- Prose before/after the JSON value
- Python literals (None/True/False), // and /* */ comments
- Trailing commas and unquoted keys
- {"transactions": [...]} or a bare [...] for transaction lists
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from ..dates import normalize_llm_date
from ..errors import MalformedResponse
from ..schemas.transaction import DEFAULT_CURRENCY, UNKNOWN_DESCRIPTION, Direction

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json|JSON)?\s*|\s*```$")
_LINE_COMMENT_RE = re.compile(r"(^|[\s,\[{])//[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*[\s\S]*?\*/")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")
_STRING_LITERAL_RE = re.compile(r'"(?:\\.|[^"\\])*"')
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_PY_LITERALS = {"None": "null", "True": "true", "False": "false"}
_PY_LITERAL_RE = re.compile(r"(?<![\"\w])(None|True|False)(?![\"\w])")


@dataclass
class ParsedTransaction:
    """One validated transaction record from model output."""

    date: str
    description: str
    amount: Decimal
    direction: Direction
    details: str = ""
    type: str = "unknown"
    currency: str = DEFAULT_CURRENCY
    category: str | None = None


@dataclass
class CorrectionPayload:
    """Validated answer to the correction prompt."""

    correction_possible: bool
    field_updates: dict = field(default_factory=dict)


def strip_code_fences(content: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    return _FENCE_RE.sub("", content.strip()).strip()


def fix_common_json_errors(content: str) -> str:
    """Repair the JSON mistakes small models make most often.

    Args:
        content: Model output, fences already stripped.

    Returns:
        Best-effort repaired JSON text (may still be invalid).
    """
    cleaned = _CONTROL_CHARS_RE.sub("", content)
    cleaned = _BLOCK_COMMENT_RE.sub("", cleaned)
    cleaned = _LINE_COMMENT_RE.sub(r"\1", cleaned)
    return _outside_strings(cleaned, _repair_structure).strip()


def _repair_structure(segment: str) -> str:
    segment = _PY_LITERAL_RE.sub(lambda m: _PY_LITERALS[m.group(1)], segment)
    segment = _TRAILING_COMMA_RE.sub(r"\1", segment)
    return _UNQUOTED_KEY_RE.sub(r'\1"\2":', segment)


def _outside_strings(content: str, repair) -> str:
    """Apply ``repair`` to the text between JSON string literals only."""
    parts = []
    last = 0
    for match in _STRING_LITERAL_RE.finditer(content):
        parts.append(repair(content[last : match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(repair(content[last:]))
    return "".join(parts)


def _outermost_json(content: str) -> str | None:
    """Slice from the first opening bracket to the last matching closer."""
    starts = [i for i in (content.find("{"), content.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    closer = "}" if content[start] == "{" else "]"
    end = content.rfind(closer)
    if end <= start:
        return None
    return content[start : end + 1]


def parse_json_payload(content: str | None) -> dict | list:
    """Parse model output into a JSON value.

    Raises:
        MalformedResponse: If no JSON object or array can be recovered.
    """
    if not content or not content.strip():
        raise MalformedResponse("Empty response", raw=content)

    text = strip_code_fences(content)
    candidates = [text]
    sliced = _outermost_json(text)
    if sliced and sliced != text:
        candidates.append(sliced)

    for candidate in candidates:
        for attempt in (candidate, fix_common_json_errors(candidate)):
            try:
                value = json.loads(attempt)
            except json.JSONDecodeError:
                continue
            if isinstance(value, (dict, list)):
                return value

    raise MalformedResponse(f"Could not parse JSON from response: {text[:200]}", raw=content)


def _parse_amount(value: object) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    cleaned = re.sub(r"[^\d.\-]", "", value)
    if not cleaned:
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount.quantize(Decimal("0.01"))


def _text(value: object, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def validate_transaction_record(record: object, reference: date) -> ParsedTransaction | None:
    """Validate one raw record field by field.

    Returns None (record dropped) when the amount is missing or not positive.
    Unparsable dates become "unknown" and unrecognised directions UNKNOWN;
    nothing is invented.
    """
    if not isinstance(record, dict):
        return None

    amount = _parse_amount(record.get("amount"))
    if amount is None or amount <= 0:
        logger.debug("Dropping LLM record with invalid amount: %r", record.get("amount"))
        return None

    category = record.get("category")
    if category is None and isinstance(record.get("categories"), list) and record["categories"]:
        category = record["categories"][0]

    return ParsedTransaction(
        date=normalize_llm_date(record.get("date"), reference),
        description=_text(record.get("description"), UNKNOWN_DESCRIPTION),
        amount=amount,
        direction=Direction.parse(record.get("direction")),
        details=_text(record.get("details")),
        type=_text(record.get("type"), "unknown"),
        currency=_text(record.get("currency"), DEFAULT_CURRENCY).upper(),
        category=_text(category) or None,
    )


def parse_transactions_payload(content: str | None, reference: date) -> list[ParsedTransaction]:
    """Normalize an extraction answer into validated records.

    Raises:
        MalformedResponse: If the answer is not JSON or has no transaction list.
    """
    payload = parse_json_payload(content)

    if isinstance(payload, dict):
        if isinstance(payload.get("transactions"), list):
            records = payload["transactions"]
        elif "amount" in payload:
            records = [payload]
        else:
            raise MalformedResponse("Response has no 'transactions' array", raw=content)
    else:
        records = payload

    parsed = []
    for record in records:
        txn = validate_transaction_record(record, reference)
        if txn is not None:
            parsed.append(txn)

    if len(parsed) < len(records):
        logger.info("Dropped %d invalid LLM record(s)", len(records) - len(parsed))
    return parsed


def parse_chunks_payload(content: str | None) -> list[str]:
    """Normalize a chunking answer into non-empty text chunks.

    Raises:
        MalformedResponse: If there is no "transaction_chunks" array.
    """
    payload = parse_json_payload(content)

    if isinstance(payload, dict) and isinstance(payload.get("transaction_chunks"), list):
        raw_chunks = payload["transaction_chunks"]
    elif isinstance(payload, list):
        raw_chunks = payload
    else:
        raise MalformedResponse("Response has no 'transaction_chunks' array", raw=content)

    return [chunk.strip() for chunk in raw_chunks if isinstance(chunk, str) and chunk.strip()]


def parse_correction_payload(content: str | None) -> CorrectionPayload:
    """Normalize a correction answer.

    Accepts {"correction_possible": bool, "field_updates": {...}} and the
    older {"target_field": ..., "new_value": ...} shape.

    Raises:
        MalformedResponse: If the answer is not a JSON object.
    """
    payload = parse_json_payload(content)
    if not isinstance(payload, dict):
        raise MalformedResponse("Correction response is not an object", raw=content)

    updates = payload.get("field_updates")
    if not isinstance(updates, dict):
        updates = {}
        target = payload.get("target_field")
        if isinstance(target, str) and target != "unknown" and payload.get("new_value") is not None:
            updates[target] = payload["new_value"]

    possible = bool(payload.get("correction_possible", bool(updates)))
    return CorrectionPayload(correction_possible=possible, field_updates=updates)
