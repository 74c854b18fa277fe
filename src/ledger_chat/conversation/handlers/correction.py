"""
Correction and detail-filling handlers.

A correction targets the transaction the user last corrected, or else the
single transaction of the last extraction. Simple corrections ("it was $45",
"that was income") are parsed locally; anything else goes through the
correction prompt. Every field update is validated before it is applied.
"""

import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation

from ...bulk.task import format_category_summary
from ...categorizer import adjust_category_for_direction, categorize, recategorize
from ...dates import is_iso_date, resolve_date
from ...errors import MalformedResponse, UpstreamUnavailable
from ...llm.parsing import parse_correction_payload
from ...llm.prompts import CORRECTION_PROMPT
from ...schemas.transaction import CATEGORIES, DEFAULT_CATEGORY, UNKNOWN_DATE, Direction, Transaction
from .. import replies
from ..router import HandlerContext, HandlerResult, declined
from ..state import AwaitingCorrection, ClarificationMode

logger = logging.getLogger(__name__)

CORRECTABLE_FIELDS = ("amount", "date", "description", "category", "direction", "notes")

_QUICK_AMOUNT_RE = re.compile(
    r"[$£€¥]\s?(\d[\d,]*(?:\.\d{1,2})?)"
    r"|\b(\d[\d,]*(?:\.\d{1,2})?)\s*(?:dollars?|usd|bucks?|pounds?|euros?)\b",
    re.IGNORECASE,
)
_QUICK_IN_RE = re.compile(r"\b(income|deposit|received|incoming)\b", re.IGNORECASE)
_QUICK_OUT_RE = re.compile(r"\b(expense|payment|spent|paid|outgoing)\b", re.IGNORECASE)


class InvalidCorrection(ValueError):
    """A proposed field update failed validation."""


def quick_parse_correction(message: str) -> dict:
    """Field updates that can be read off the message without the LLM."""
    updates: dict = {}
    amounts = [symbol or word for symbol, word in _QUICK_AMOUNT_RE.findall(message)]
    if len(amounts) == 1:
        updates["amount"] = amounts[0].replace(",", "")

    wants_in = bool(_QUICK_IN_RE.search(message))
    wants_out = bool(_QUICK_OUT_RE.search(message))
    if wants_in != wants_out:
        updates["direction"] = "in" if wants_in else "out"
    return updates


def validate_field_updates(updates: dict, reference: date) -> dict:
    """
    Turn raw field updates into ``Transaction.replace`` arguments.

    Unknown fields are ignored.

    Raises:
        InvalidCorrection: If any known field carries an invalid value
    """
    changes: dict = {}
    for field_name, value in updates.items():
        if field_name not in CORRECTABLE_FIELDS:
            logger.debug("Ignoring update for unsupported field %s", field_name)
            continue

        if field_name == "amount":
            try:
                amount = Decimal(str(value).replace(",", "").lstrip("$").strip())
            except InvalidOperation:
                raise InvalidCorrection(f"Invalid amount: {value!r}")
            if not amount.is_finite() or amount <= 0:
                raise InvalidCorrection(f"Amount must be positive: {value!r}")
            changes["amount"] = amount.quantize(Decimal("0.01"))

        elif field_name == "date":
            text = str(value or "").strip()
            resolved = text if is_iso_date(text) else resolve_date(text, reference)
            if resolved == UNKNOWN_DATE:
                raise InvalidCorrection(f"Invalid date: {value!r}")
            changes["date"] = resolved

        elif field_name == "category":
            if value not in CATEGORIES:
                raise InvalidCorrection(f"Unknown category: {value!r}")
            changes["category"] = value

        elif field_name == "direction":
            direction = Direction.parse(value)
            if direction == Direction.UNKNOWN:
                raise InvalidCorrection(f"Invalid direction: {value!r}")
            changes["direction"] = direction

        else:
            text = str(value or "").strip()
            if field_name == "description" and not text:
                raise InvalidCorrection("Description must not be empty")
            changes[field_name] = text

    return changes


def _format_change(field_name: str, value: object) -> str:
    if isinstance(value, Decimal):
        return f"{field_name}: ${value:.2f}"
    if isinstance(value, Direction):
        return f"{field_name}: {value.value.lower()}"
    return f"{field_name}: {value}"


def apply_field_updates(ctx: HandlerContext, target: Transaction, updates: dict) -> HandlerResult:
    """Validate and apply updates to ``target``."""
    try:
        changes = validate_field_updates(updates, ctx.reference_date or date.today())
    except InvalidCorrection as e:
        logger.info("Rejected correction for %s: %s", target.id, e)
        return HandlerResult(response=replies.CORRECTION_INVALID)

    if not changes:
        return HandlerResult(response=replies.CORRECTION_NOTHING_DETECTED)

    updated = target.replace(**changes)
    if "direction" in changes and "category" not in changes:
        updated = recategorize(updated)

    ctx.state.last_correction_txn_id = target.id
    ctx.state.set_status("Transaction updated", 100)
    summary = ", ".join(_format_change(name, value) for name, value in changes.items())
    return HandlerResult(
        response=f'Updated "{updated.description}" ({summary}). Anything else?',
        updated=[updated],
    )


async def resolve_correction(ctx: HandlerContext, target: Transaction, message: str) -> HandlerResult:
    """Work out what ``message`` changes about ``target`` and apply it."""
    updates = quick_parse_correction(message)
    if updates:
        return apply_field_updates(ctx, target, updates)

    if not ctx.services.llm_enabled:
        return HandlerResult(response=replies.CORRECTION_NOTHING_DETECTED)

    ctx.state.set_status("Understanding correction...", 40)
    prompt = CORRECTION_PROMPT.format_user_message(message, target, ctx.today)
    try:
        raw = await ctx.services.llm_client.generate_json(prompt, CORRECTION_PROMPT.system_prompt)
        payload = parse_correction_payload(raw)
    except UpstreamUnavailable as e:
        logger.warning("Correction request failed: %s", e)
        ctx.state.set_status("Error")
        return HandlerResult(response=replies.fallback_response(e))
    except MalformedResponse as e:
        logger.warning("Unusable correction response: %s", e)
        return HandlerResult(response=replies.CORRECTION_INVALID)

    if not payload.correction_possible or not payload.field_updates:
        return HandlerResult(response=replies.CORRECTION_NOTHING_DETECTED)
    return apply_field_updates(ctx, target, payload.field_updates)


def correction_candidates(ctx: HandlerContext) -> list[Transaction]:
    """Stored transactions the correction may refer to, most specific first."""
    if ctx.state.last_correction_txn_id:
        txn = ctx.find(ctx.state.last_correction_txn_id)
        if txn is not None:
            return [txn]

    batch = ctx.state.last_batch()
    if batch is None:
        return []
    return [txn for txn in (ctx.find(i) for i in batch.transaction_ids) if txn is not None]


async def handle_correction(ctx: HandlerContext) -> HandlerResult:
    candidates = correction_candidates(ctx)
    if not candidates:
        return declined()

    if len(candidates) == 1:
        return await resolve_correction(ctx, candidates[0], ctx.message)

    lowered = ctx.message.lower()
    named = [txn for txn in candidates if txn.description and txn.description.lower() in lowered]
    if len(named) == 1:
        return await resolve_correction(ctx, named[0], ctx.message)

    updates = quick_parse_correction(ctx.message)
    field_name, value = (next(iter(updates.items())) if len(updates) == 1 else (None, None))
    ctx.state.enter_mode(
        ClarificationMode.AWAITING_CORRECTION,
        AwaitingCorrection(
            candidate_ids=[txn.id for txn in candidates],
            field=field_name,
            value=value,
            message=ctx.message,
        ),
    )
    ctx.state.set_status("Awaiting correction target", 100)
    return HandlerResult(response=replies.correction_candidates(candidates))


async def handle_fill_details(ctx: HandlerContext) -> HandlerResult:
    if not ctx.transactions:
        return HandlerResult(response=replies.FILL_NO_TRANSACTIONS)

    lowered = ctx.message.lower()
    if "categori" not in lowered and "category" not in lowered:
        ctx.state.set_status("Detail filling not supported", 100)
        return HandlerResult(response=replies.FILL_UNSUPPORTED)

    ctx.state.set_status("Categorizing transactions...", 40)
    updated = []
    for txn in ctx.transactions:
        if txn.category != DEFAULT_CATEGORY:
            continue
        category = adjust_category_for_direction(categorize(txn.description, txn.type), txn.direction)
        if category != txn.category:
            updated.append(txn.replace(category=category))

    ctx.state.set_status("Categorization complete", 100)
    if not updated:
        return HandlerResult(response=replies.FILL_NOTHING_TO_CATEGORIZE)
    return HandlerResult(
        response=f"I've categorized {len(updated)} transaction(s).\n\n"
        + format_category_summary(updated),
        updated=updated,
    )
