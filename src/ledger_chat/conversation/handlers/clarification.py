"""
Handlers that answer a pending clarification question.

Each of them only runs while its mode is active. A reply that cannot be
understood re-prompts; after ``max_clarification_attempts`` such replies the
question is dropped. A reply carrying new transaction data is declined so
that extraction can pick it up instead.
"""

import logging
import re

from ...categorizer import apply_direction
from ...inference import has_currency_amount
from ...schemas.transaction import Direction
from .. import replies
from ..router import HandlerContext, HandlerResult, declined
from ..state import (
    AwaitingCorrection,
    AwaitingDirection,
    AwaitingDuplicateConfirmation,
    ClarificationMode,
)
from .correction import apply_field_updates, resolve_correction

logger = logging.getLogger(__name__)

DIRECTION_IN_RE = re.compile(r"\b(in|income|deposits?|credits?|received)\b", re.IGNORECASE)
DIRECTION_OUT_RE = re.compile(
    r"\b(out|expenses?|payments?|spent|debits?|charges?)\b", re.IGNORECASE
)
DIRECTION_CANCEL_RE = re.compile(r"\b(neither|cancel|don'?t know)\b", re.IGNORECASE)

DUPLICATE_YES_RE = re.compile(r"^(yes|y|add them|add it|add again)$", re.IGNORECASE)
DUPLICATE_NO_RE = re.compile(r"^(no|n|cancel|don't add|do not add)$", re.IGNORECASE)

CORRECTION_CANCEL_RE = re.compile(
    r"^(no|n|cancel|neither|never ?mind|don'?t know)\b", re.IGNORECASE
)
_CANDIDATE_NUMBER_RE = re.compile(r"^\s*(?:#|no\.?\s*|number\s+)?(\d{1,2})\b", re.IGNORECASE)


def reprompt(ctx: HandlerContext, prompt: str) -> HandlerResult:
    """Ask again, or give up once the attempt limit is reached."""
    attempts = ctx.state.register_attempt()
    limit = ctx.services.config.conversation.max_clarification_attempts
    if attempts >= limit:
        logger.info(
            "Giving up on %s after %d unclear replies", ctx.state.mode.value, attempts
        )
        ctx.state.clear_mode()
        ctx.state.set_status("Clarification skipped", 100)
        return HandlerResult(response=replies.MOVE_ON)
    return HandlerResult(response=prompt)


def _normalize_reply(message: str) -> str:
    return message.strip().strip(".!").strip().lower()


def parse_direction_reply(message: str) -> Direction | None:
    """IN or OUT when the reply names exactly one of them."""
    wants_in = bool(DIRECTION_IN_RE.search(message))
    wants_out = bool(DIRECTION_OUT_RE.search(message))
    if wants_in and not wants_out:
        return Direction.IN
    if wants_out and not wants_in:
        return Direction.OUT
    return None


async def handle_direction_clarification(ctx: HandlerContext) -> HandlerResult:
    payload = ctx.state.payload
    if not isinstance(payload, AwaitingDirection):
        return declined()
    if has_currency_amount(ctx.message):
        ctx.state.clear_mode()
        return declined()

    if DIRECTION_CANCEL_RE.search(ctx.message):
        ctx.state.clear_mode()
        ctx.state.set_status("Direction left unknown", 100)
        return HandlerResult(response=replies.DIRECTION_CANCELLED)

    direction = parse_direction_reply(ctx.message)
    if direction is None:
        return reprompt(ctx, replies.DIRECTION_REPROMPT)

    updated = []
    for txn_id in payload.txn_ids:
        txn = ctx.find(txn_id)
        if txn is not None:
            updated.append(apply_direction(txn, direction))

    ctx.state.clear_mode()
    if not updated:
        return HandlerResult(response=replies.NO_TRANSACTIONS_FOR_DIRECTION)

    ctx.state.set_status("Direction updated", 100)
    label = replies.direction_label(direction)
    return HandlerResult(
        response=f"Got it! I've updated {len(updated)} transaction(s) as {label}.",
        updated=updated,
    )


async def handle_duplicate_confirmation(ctx: HandlerContext) -> HandlerResult:
    payload = ctx.state.payload
    if not isinstance(payload, AwaitingDuplicateConfirmation):
        return declined()
    if has_currency_amount(ctx.message):
        ctx.state.clear_mode()
        return declined()

    reply = _normalize_reply(ctx.message)
    if DUPLICATE_NO_RE.match(reply):
        ctx.state.clear_mode()
        ctx.state.set_status("Duplicates skipped", 100)
        return HandlerResult(response=replies.DUPLICATES_SKIPPED)

    if not DUPLICATE_YES_RE.match(reply):
        return reprompt(ctx, replies.DUPLICATE_REPROMPT)

    pending = list(payload.pending)
    ctx.state.clear_mode()
    response = replies.added_message(len(pending))

    unknown_ids = [txn.id for txn in pending if txn.direction == Direction.UNKNOWN]
    if unknown_ids:
        ctx.state.enter_mode(ClarificationMode.AWAITING_DIRECTION, AwaitingDirection(unknown_ids))
        response += "\n\n" + replies.direction_question(len(unknown_ids))
        ctx.state.set_status("Awaiting direction", 100)
    else:
        ctx.state.set_status("Duplicates added", 100)
    return HandlerResult(response=response, transactions=pending)


def _pick_candidate(message: str, candidates: list) -> object:
    """Candidate chosen by list number or by (unique) description."""
    match = _CANDIDATE_NUMBER_RE.match(message)
    if match:
        index = int(match.group(1)) - 1
        if 0 <= index < len(candidates):
            return candidates[index]
        return None

    lowered = message.lower()
    named = [txn for txn in candidates if txn.description and txn.description.lower() in lowered]
    if len(named) == 1:
        return named[0]
    return None


async def handle_correction_clarification(ctx: HandlerContext) -> HandlerResult:
    payload = ctx.state.payload
    if not isinstance(payload, AwaitingCorrection):
        return declined()

    if CORRECTION_CANCEL_RE.match(ctx.message.strip()):
        ctx.state.clear_mode()
        return HandlerResult(response=replies.CORRECTION_CANCELLED)

    candidates = [txn for txn in (ctx.find(i) for i in payload.candidate_ids) if txn is not None]
    if not candidates:
        ctx.state.clear_mode()
        return HandlerResult(response=replies.CORRECTION_NOT_FOUND)

    target = _pick_candidate(ctx.message, candidates)
    if target is None:
        return reprompt(ctx, replies.CORRECTION_REPROMPT)

    ctx.state.clear_mode()
    ctx.state.last_correction_txn_id = target.id
    if payload.field is not None:
        return apply_field_updates(ctx, target, {payload.field: payload.value})
    return await resolve_correction(ctx, target, payload.message)
