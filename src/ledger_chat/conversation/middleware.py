"""
Router middleware.

Default chain, outermost first:
1. error recovery - any exception becomes a fallback reply
2. logging
3. timing
4. context injection - store snapshot, reference date, explicit direction
5. commit - the only place handler output reaches the store
"""

import logging
import time
from datetime import date

from ..inference import explicit_direction_intent
from ..store import TransactionStore
from .intents import detect_mood
from .replies import fallback_response
from .router import HandlerContext, HandlerResult, Middleware, NextFn

logger = logging.getLogger(__name__)

STATUS_ERROR = "Error"


def commit_result(store: TransactionStore, result: HandlerResult) -> tuple[int, int]:
    """
    Persist a handler result.

    Returns:
        (records added, records updated)
    """
    added = store.add(result.transactions)
    updated = sum(1 for txn in result.updated if store.update(txn))
    if added or updated:
        logger.info("Committed %d new and %d updated transaction(s)", added, updated)
    return added, updated


async def error_recovery_middleware(ctx: HandlerContext, call_next: NextFn) -> HandlerResult:
    try:
        return await call_next(ctx)
    except Exception as e:
        logger.exception("Handler failed: %s", e)
        ctx.state.clear_mode()
        ctx.state.set_status(STATUS_ERROR)
        return HandlerResult(response=fallback_response(e))


async def logging_middleware(ctx: HandlerContext, call_next: NextFn) -> HandlerResult:
    logger.info(
        "Turn received (%d chars, mode=%s)", len(ctx.message), ctx.state.mode.value
    )
    result = await call_next(ctx)
    handler = ctx.handled_by.value if ctx.handled_by else "none"
    logger.info(
        "Turn handled by %s (%d new, %d updated)",
        handler,
        len(result.transactions),
        len(result.updated),
    )
    return result


async def timing_middleware(ctx: HandlerContext, call_next: NextFn) -> HandlerResult:
    start = time.perf_counter()
    try:
        return await call_next(ctx)
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug("Turn took %.1f ms", elapsed_ms)


def context_middleware(store: TransactionStore) -> Middleware:
    """Inject the per-turn view of the world into the context."""

    async def inject(ctx: HandlerContext, call_next: NextFn) -> HandlerResult:
        ctx.transactions = store.list()
        if ctx.reference_date is None:
            ctx.reference_date = date.today()
        ctx.explicit_direction = explicit_direction_intent(ctx.message)
        ctx.state.mood = detect_mood(ctx.message)
        return await call_next(ctx)

    return inject


def commit_middleware(store: TransactionStore) -> Middleware:
    async def commit(ctx: HandlerContext, call_next: NextFn) -> HandlerResult:
        result = await call_next(ctx)
        commit_result(store, result)
        return result

    return commit


def default_middleware(store: TransactionStore) -> list[Middleware]:
    return [
        error_recovery_middleware,
        logging_middleware,
        timing_middleware,
        context_middleware(store),
        commit_middleware(store),
    ]
