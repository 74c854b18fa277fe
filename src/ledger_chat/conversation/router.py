"""
Conversation router - hands each user message to exactly one handler.

Intents are classified once per turn; the router walks them in priority
order through an Intent -> handler table. A handler may decline a message
(``handled=False``), in which case the next candidate runs. The whole
dispatch is wrapped in a middleware chain (see middleware.py).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from ..schemas.transaction import Direction, Transaction
from .intents import Intent, classify_intents
from .state import ConversationState

if TYPE_CHECKING:
    from ..config import Config
    from ..extractors.orchestrator import ExtractionOrchestrator
    from ..llm.client import OllamaClient

logger = logging.getLogger(__name__)

# (text, explicit direction) -> False when a bulk run is already in flight
StartBulkFn = Callable[[str, Optional[Direction]], bool]


@dataclass
class HandlerResult:
    """
    Outcome of one handler.

    ``transactions`` are new records and ``updated`` replacements for stored
    ones; both are persisted by the commit middleware, never by the handler.
    """

    handled: bool = True
    response: Optional[str] = None
    transactions: list[Transaction] = field(default_factory=list)
    updated: list[Transaction] = field(default_factory=list)


def declined() -> HandlerResult:
    """Result for a handler that does not want the message after all."""
    return HandlerResult(handled=False)


@dataclass
class HandlerServices:
    """Collaborators shared by all handlers of one session."""

    config: Config
    orchestrator: ExtractionOrchestrator
    llm_client: Optional[OllamaClient] = None
    start_bulk: Optional[StartBulkFn] = None

    @property
    def llm_enabled(self) -> bool:
        return self.llm_client is not None and self.llm_client.is_enabled


@dataclass
class HandlerContext:
    """Everything a handler may look at for one turn."""

    message: str
    state: ConversationState
    services: HandlerServices

    # Filled by the context middleware
    transactions: list[Transaction] = field(default_factory=list)
    reference_date: Optional[date] = None
    explicit_direction: Optional[Direction] = None

    # Set by the router once a handler claims the message
    handled_by: Optional[Intent] = None

    @property
    def today(self) -> str:
        return (self.reference_date or date.today()).isoformat()

    def find(self, txn_id: str) -> Optional[Transaction]:
        """Look up a stored transaction in this turn's snapshot."""
        for txn in self.transactions:
            if txn.id == txn_id:
                return txn
        return None


Handler = Callable[[HandlerContext], Awaitable[HandlerResult]]
NextFn = Callable[[HandlerContext], Awaitable[HandlerResult]]
Middleware = Callable[[HandlerContext, NextFn], Awaitable[HandlerResult]]


def _wrap(middleware: Middleware, call_next: NextFn) -> NextFn:
    async def call(ctx: HandlerContext) -> HandlerResult:
        return await middleware(ctx, call_next)

    return call


class ConversationRouter:
    """
    Dispatches a message to the first handler that claims it.

    Middleware is given outermost first.
    """

    def __init__(
        self,
        handlers: dict[Intent, Handler],
        middleware: Optional[list[Middleware]] = None,
    ):
        if Intent.NORMAL_RESPONSE not in handlers:
            raise ValueError("A NORMAL_RESPONSE handler is required")
        self.handlers = dict(handlers)
        self.middleware = list(middleware or [])

    async def dispatch(self, ctx: HandlerContext) -> HandlerResult:
        call: NextFn = self._route
        for middleware in reversed(self.middleware):
            call = _wrap(middleware, call)
        return await call(ctx)

    async def _route(self, ctx: HandlerContext) -> HandlerResult:
        intents = classify_intents(ctx.message, ctx.state, ctx.services.config.bulk)
        logger.debug("Candidate intents: %s", ", ".join(intent.value for intent in intents))

        for intent in intents:
            handler = self.handlers.get(intent)
            if handler is None:
                continue
            result = await handler(ctx)
            if result.handled:
                ctx.handled_by = intent
                return result
            logger.debug("Handler for %s declined", intent.value)

        # NORMAL_RESPONSE always handles; reaching here means it declined anyway
        return declined()
