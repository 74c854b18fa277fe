"""
Extraction handlers: single messages, bulk pastes, count corrections and
"mark all as ..." direction changes.
"""

import logging

from ...categorizer import apply_direction
from ...inference import has_currency_amount
from ...llm.prompts import COUNT_CORRECTION_PROMPT
from ...schemas.dedupe import dedupe_transactions
from ...schemas.transaction import Direction, ExtractionBatch, Transaction, new_id
from .. import replies
from ..intents import expected_count
from ..router import HandlerContext, HandlerResult, declined
from ..state import (
    AwaitingCountCorrection,
    AwaitingDirection,
    AwaitingDuplicateConfirmation,
    ClarificationMode,
)
from .clarification import reprompt

logger = logging.getLogger(__name__)

STATUS_EXTRACTING = "Extracting transactions..."
STATUS_BULK_STARTING = "Starting bulk processing..."
PROGRESS_BULK_STARTING = 5


def finish_extraction(
    ctx: HandlerContext,
    added: list[Transaction],
    duplicates: list[Transaction],
    response: str,
) -> HandlerResult:
    """
    Reply for freshly extracted records and open a follow-up question if needed.

    Unknown directions take precedence over duplicates: only one question is
    asked at a time.
    """
    parts = [response] if response else []
    unknown_ids = [txn.id for txn in added if txn.direction == Direction.UNKNOWN]

    if unknown_ids:
        ctx.state.enter_mode(ClarificationMode.AWAITING_DIRECTION, AwaitingDirection(unknown_ids))
        parts.append(replies.direction_question(len(unknown_ids)))
        ctx.state.set_status("Awaiting direction", 100)
    elif duplicates:
        ctx.state.enter_mode(
            ClarificationMode.AWAITING_DUPLICATE_CONFIRMATION,
            AwaitingDuplicateConfirmation(list(duplicates)),
        )
        parts.append(replies.duplicate_question(len(duplicates)))
        ctx.state.set_status("Duplicates detected", 100)
    else:
        ctx.state.set_status("Extraction complete", 100)

    return HandlerResult(response="\n\n".join(parts), transactions=list(added))


async def handle_extraction(ctx: HandlerContext) -> HandlerResult:
    message = ctx.message
    if ctx.state.last_user_message_text == message:
        logger.info("Input identical to the last extracted message")
        return HandlerResult(response=replies.ALREADY_PROCESSED)

    ctx.state.set_status(STATUS_EXTRACTING, 30)
    batch_id = new_id()
    outcome = await ctx.services.orchestrator.run(message, ctx.reference_date, batch_id)
    extracted = outcome.transactions

    # Only a non-empty extraction marks the text as processed
    if not extracted:
        if outcome.error is not None:
            ctx.state.set_status("Error during extraction")
            return HandlerResult(response=replies.fallback_response(outcome.error))
        ctx.state.set_status("No new transactions found", 100)
        return HandlerResult(response=replies.NOTHING_FOUND)

    ctx.state.last_user_message_text = message
    ctx.state.last_correction_txn_id = None

    if ctx.explicit_direction is not None:
        extracted = [apply_direction(txn, ctx.explicit_direction) for txn in extracted]

    result = dedupe_transactions(extracted, ctx.transactions)
    ctx.state.remember_batch(ExtractionBatch(batch_id, message, result.unique))
    logger.info(
        "Extraction batch %s: %d new, %d duplicate(s)",
        batch_id[:8],
        len(result.unique),
        result.duplicate_count,
    )

    response = replies.added_message(len(result.unique)) if result.unique else ""
    return finish_extraction(ctx, result.unique, result.duplicates, response)


async def handle_bulk_extraction(ctx: HandlerContext) -> HandlerResult:
    start_bulk = ctx.services.start_bulk
    if start_bulk is None:
        return declined()

    if not start_bulk(ctx.message, ctx.explicit_direction):
        return HandlerResult(response=replies.BULK_BUSY)

    ctx.state.set_status(STATUS_BULK_STARTING, PROGRESS_BULK_STARTING)
    return HandlerResult(response=replies.BULK_STARTED)


async def handle_count_correction(ctx: HandlerContext) -> HandlerResult:
    state = ctx.state
    payload = state.payload
    if isinstance(payload, AwaitingCountCorrection):
        original_text = payload.last_raw_text
    else:
        original_text = state.last_user_message_text
    if not original_text:
        return declined()
    if isinstance(payload, AwaitingCountCorrection) and has_currency_amount(ctx.message):
        state.clear_mode()
        return declined()

    count = expected_count(ctx.message)
    if count is None:
        if isinstance(payload, AwaitingCountCorrection):
            return reprompt(ctx, replies.COUNT_QUESTION)
        state.enter_mode(
            ClarificationMode.AWAITING_COUNT_CORRECTION,
            AwaitingCountCorrection(original_text, state.last_extraction_batch_id),
        )
        return HandlerResult(response=replies.COUNT_QUESTION)

    state.clear_mode()
    state.set_status("Re-evaluating extraction...", 30)
    text = COUNT_CORRECTION_PROMPT.format_text(original_text, ctx.message, count)

    batch_id = new_id()
    extracted = await ctx.services.orchestrator.extract(
        text, ctx.reference_date, batch_id, force_heavy=True
    )
    result = dedupe_transactions(extracted, ctx.transactions)
    state.remember_batch(ExtractionBatch(batch_id, original_text, result.unique))
    state.last_correction_txn_id = None

    if not result.unique:
        state.set_status("No additional transactions found", 100)
        return HandlerResult(response=replies.COUNT_NOTHING_NEW)

    response = (
        f"Okay, I've re-analyzed and found {len(result.unique)} transaction(s) based on "
        "your correction. Please check the list."
    )
    return finish_extraction(ctx, result.unique, [], response)


async def handle_bulk_direction(ctx: HandlerContext) -> HandlerResult:
    direction = ctx.explicit_direction
    if direction is None:
        return declined()

    if not ctx.transactions:
        return HandlerResult(response=replies.NO_TRANSACTIONS_FOR_DIRECTION)

    updated = [apply_direction(txn, direction) for txn in ctx.transactions]
    changed = [new for new, old in zip(updated, ctx.transactions) if new != old]
    if ctx.state.mode == ClarificationMode.AWAITING_DIRECTION:
        ctx.state.clear_mode()

    ctx.state.set_status("Direction updated", 100)
    label = replies.direction_label(direction)
    return HandlerResult(
        response=f"Okay, I've marked all {len(updated)} transaction(s) as {label}.",
        updated=changed,
    )
