"""
Conversation session - the public entry point of the chat pipeline.

One session owns one conversation state, one transaction store and the
services around them. Messages are processed strictly one at a time; bulk
pastes continue in a background task that posts its own final message.
"""

import asyncio
import logging
from datetime import date
from typing import Callable, Optional

from ..bulk.chunker import BulkChunker
from ..bulk.task import BulkProcessor, BulkReport
from ..config import Config
from ..extractors.orchestrator import ExtractionOrchestrator
from ..llm.client import OllamaClient
from ..schemas.transaction import Direction, ExtractionBatch
from ..store import TransactionStore
from . import replies
from .handlers import HANDLERS
from .middleware import commit_result, default_middleware
from .router import ConversationRouter, HandlerContext, HandlerResult, HandlerServices
from .state import AwaitingDirection, ClarificationMode, ConversationState

logger = logging.getLogger(__name__)

STATUS_BULK_ERROR = "Error processing bulk data"


class ConversationSession:
    """
    A single user's conversation.

    Usage:
        async with ConversationSession(config) as session:
            reply = await session.send_message("I spent $20 at Target yesterday")
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[TransactionStore] = None,
        llm_client: Optional[OllamaClient] = None,
        today: Callable[[], date] = date.today,
    ):
        self.config = config or Config()
        self.store = store if store is not None else TransactionStore()
        self.state = ConversationState()
        self._today = today

        self._owns_client = False
        if llm_client is None and self.config.llm.enabled:
            llm_client = OllamaClient(self.config.llm)
            self._owns_client = True
        self.llm_client = llm_client

        self.orchestrator = ExtractionOrchestrator(llm_client, self.config.extraction)
        self.bulk = BulkProcessor(
            self.orchestrator, BulkChunker(llm_client, self.config.bulk), self.config.bulk
        )
        self.services = HandlerServices(
            config=self.config,
            orchestrator=self.orchestrator,
            llm_client=llm_client,
            start_bulk=self._start_bulk,
        )
        self.router = ConversationRouter(HANDLERS, default_middleware(self.store))
        self._bulk_task: Optional[asyncio.Task] = None

    @property
    def bulk_running(self) -> bool:
        return self._bulk_task is not None and not self._bulk_task.done()

    async def send_message(self, text: str) -> Optional[str]:
        """
        Process one user message.

        Returns:
            The assistant reply (also appended to the message log), or None
            for an empty message
        """
        text = (text or "").strip()
        if not text:
            return None

        if self.state.is_processing:
            logger.warning("Message rejected: previous turn still running")
            return replies.BUSY

        self.state.add_message("user", text)
        self.state.is_processing = True
        self.state.set_status("Thinking...", 10)
        try:
            ctx = HandlerContext(
                message=text,
                state=self.state,
                services=self.services,
                reference_date=self._today(),
            )
            result = await self.router.dispatch(ctx)
        finally:
            self.state.is_processing = False

        if result.response:
            self.state.add_message("assistant", result.response)
        return result.response

    def _start_bulk(self, text: str, explicit_direction: Optional[Direction]) -> bool:
        if self.bulk_running:
            logger.info("Bulk paste refused: a bulk run is already in flight")
            return False
        self._bulk_task = asyncio.create_task(
            self._run_bulk(text, explicit_direction, self.state.generation, self._today())
        )
        return True

    async def _run_bulk(
        self,
        text: str,
        explicit_direction: Optional[Direction],
        generation: int,
        reference: date,
    ) -> None:
        def is_current() -> bool:
            return self.state.generation == generation

        def on_status(status: str, progress: int) -> None:
            if is_current():
                self.state.set_status(status, progress)

        try:
            report = await self.bulk.run(
                text,
                self.store.list,
                explicit_direction=explicit_direction,
                reference_date=reference,
                on_status=on_status,
            )
        except Exception as e:
            logger.exception("Bulk processing failed: %s", e)
            if is_current():
                self.state.add_message(
                    "assistant",
                    "Sorry, a critical error occurred during bulk processing: "
                    f"{replies.fallback_response(e)}",
                )
                self.state.set_status(STATUS_BULK_ERROR)
            return

        if not is_current():
            logger.info("Discarding results of bulk run %s after reset", report.batch_id[:8])
            return
        self._finish_bulk(text, report)

    def _finish_bulk(self, text: str, report: BulkReport) -> None:
        commit_result(self.store, HandlerResult(transactions=report.added))
        message = report.message
        if report.added:
            self.state.remember_batch(ExtractionBatch(report.batch_id, text, report.added))
            self.state.last_correction_txn_id = None
        if report.needs_direction:
            self.state.enter_mode(
                ClarificationMode.AWAITING_DIRECTION, AwaitingDirection(report.needs_direction)
            )
            message += "\n\n" + replies.direction_question(len(report.needs_direction))
        self.state.add_message("assistant", message)
        self.state.set_status(report.status, 100)

    async def wait_for_background(self) -> None:
        """Wait until the current bulk run (if any) has posted its result."""
        if self._bulk_task is not None:
            await self._bulk_task

    def reset(self) -> None:
        """
        Start a fresh conversation.

        Stored transactions are kept; a bulk run still in flight finishes but
        its results are discarded.
        """
        logger.info("Conversation reset")
        self.state.reset()

    def snapshot(self) -> dict:
        """Read-only view of the conversation for a UI."""
        return {
            "messages": [message.to_dict() for message in self.state.messages],
            "status": self.state.status,
            "progress": self.state.progress,
            "is_processing": self.state.is_processing,
            "bulk_running": self.bulk_running,
            "mode": self.state.mode.value,
            "mood": self.state.mood.value,
            "transaction_count": len(self.store),
        }

    async def aclose(self) -> None:
        if self.bulk_running:
            self._bulk_task.cancel()
            try:
                await self._bulk_task
            except asyncio.CancelledError:
                pass
        if self._owns_client and self.llm_client is not None:
            await self.llm_client.aclose()

    async def __aenter__(self) -> "ConversationSession":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
