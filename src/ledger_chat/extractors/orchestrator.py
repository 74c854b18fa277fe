"""
Extraction orchestrator - chooses and applies extraction strategies.

Cascade (first non-empty result wins):
1. Bank statement blocks (local, deterministic)
2. Conversational regex templates (local, deterministic)
3. LLM prompt (optional, only for text up to llm_max_input_chars)

Every result is post-processed the same way: non-positive amounts dropped,
UNKNOWN directions refined by keyword, categories assigned and adjusted for
direction. ``extract`` never raises.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Optional

from ..categorizer import adjust_category_for_direction, categorize
from ..errors import MalformedResponse, UpstreamUnavailable
from ..inference import has_currency_amount, infer_direction
from ..schemas.transaction import DEFAULT_CATEGORY, Direction, Transaction, new_id
from .bank_statement import BankStatementExtractor
from .base import BaseExtractor
from .conversational import ConversationalExtractor
from .llm_extractor import LLMExtractor

if TYPE_CHECKING:
    from ..config import ExtractionConfig
    from ..llm.client import OllamaClient

logger = logging.getLogger(__name__)


@dataclass
class ExtractionOutcome:
    """What one orchestrator run produced."""

    transactions: list[Transaction] = field(default_factory=list)
    strategy: str = "none"
    error: Optional[Exception] = None
    cached: bool = False


class ExtractionCache:
    """
    Process-wide TTL cache keyed by the leading characters of the input.

    Entries expire after ``ttl_seconds``; nothing invalidates them early.
    Stored and returned lists are deep copies so callers cannot alter the cache.
    """

    def __init__(self, ttl_seconds: float = 300, prefix_length: int = 100, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.prefix_length = prefix_length
        self._clock = clock
        self._entries: dict[tuple[str, str], tuple[float, ExtractionOutcome]] = {}

    def key(self, text: str, reference: date) -> tuple[str, str]:
        return (text[: self.prefix_length], reference.isoformat())

    def get(self, text: str, reference: date) -> ExtractionOutcome | None:
        key = self.key(text, reference)
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, outcome = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return copy.deepcopy(outcome)

    def put(self, text: str, reference: date, outcome: ExtractionOutcome) -> None:
        self._entries[self.key(text, reference)] = (self._clock(), copy.deepcopy(outcome))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def finalize_transaction(txn: Transaction) -> Transaction:
    """Refine direction by keyword and settle the category."""
    direction = txn.direction
    if direction == Direction.UNKNOWN:
        direction = infer_direction(f"{txn.description} {txn.details}", txn.type)

    category = txn.category
    if category == DEFAULT_CATEGORY:
        category = categorize(txn.description, txn.type)
    category = adjust_category_for_direction(category, direction)

    if direction == txn.direction and category == txn.category:
        return txn
    return txn.replace(direction=direction, category=category)


class ExtractionOrchestrator:
    """
    Routes extraction to the appropriate strategy.

    Local extractors are tried in priority order; the LLM strategy runs only
    when both come back empty.
    """

    def __init__(
        self,
        llm_client: OllamaClient | None = None,
        config: ExtractionConfig | None = None,
        cache: ExtractionCache | None = None,
    ):
        if config is None:
            from ..config import ExtractionConfig

            config = ExtractionConfig()
        self.config = config
        self.cache = cache or ExtractionCache(config.cache_ttl_seconds, config.cache_prefix_length)

        self.extractors: list[BaseExtractor] = [
            BankStatementExtractor(),
            ConversationalExtractor(),
        ]
        # Sort by priority (highest first)
        self.extractors.sort(key=lambda e: -e.priority)

        self.llm_extractor: LLMExtractor | None = None
        if llm_client is not None:
            self.llm_extractor = LLMExtractor(llm_client, config.llm_max_input_chars)

    async def extract(
        self,
        text: str,
        reference_date: date | None = None,
        batch_id: str | None = None,
        force_heavy: bool = False,
    ) -> list[Transaction]:
        """
        Extract transactions from raw text.

        Args:
            text: Raw user text
            reference_date: Date "today" refers to (defaults to date.today())
            batch_id: Stamped onto every returned transaction
            force_heavy: Skip the cache and go straight to the larger model

        Returns:
            List of transactions (possibly empty); never raises
        """
        outcome = await self.run(text, reference_date, batch_id, force_heavy)
        return outcome.transactions

    async def run(
        self,
        text: str,
        reference_date: date | None = None,
        batch_id: str | None = None,
        force_heavy: bool = False,
    ) -> ExtractionOutcome:
        """Like ``extract`` but also reports the strategy used and any LLM error."""
        reference = reference_date or date.today()
        if not text or not text.strip():
            return ExtractionOutcome()

        if not force_heavy:
            cached = self.cache.get(text, reference)
            if cached is not None:
                logger.debug("Using cached extraction (%s)", cached.strategy)
                cached.cached = True
                return self._stamp(cached, batch_id)

        outcome = await self._run_strategies(text, reference, force_heavy)
        outcome.transactions = [
            finalize_transaction(txn) for txn in outcome.transactions if txn.amount > 0
        ]
        logger.info(
            "Extracted %d transaction(s) via %s from %d chars",
            len(outcome.transactions),
            outcome.strategy,
            len(text),
        )

        if outcome.error is None and not force_heavy:
            self.cache.put(text, reference, outcome)
        return self._stamp(outcome, batch_id)

    async def _run_strategies(
        self, text: str, reference: date, force_heavy: bool
    ) -> ExtractionOutcome:
        if not has_currency_amount(text):
            logger.debug("No currency amount in text, skipping extraction")
            return ExtractionOutcome()

        # A forced re-extraction asks the model first; local rules already had their turn
        if force_heavy:
            outcome = await self._run_llm(text, reference, force_heavy)
            if outcome.transactions:
                return outcome
            local = self._run_local(text, reference)
            if local.transactions:
                return local
            return outcome

        local = self._run_local(text, reference)
        if local.transactions:
            return local
        return await self._run_llm(text, reference, force_heavy)

    def _run_local(self, text: str, reference: date) -> ExtractionOutcome:
        for extractor in self.extractors:
            if not extractor.can_extract(text):
                continue
            try:
                transactions = extractor.extract(text, reference)
            except Exception:
                logger.exception("Extractor %s failed", extractor.name)
                continue
            if transactions:
                return ExtractionOutcome(transactions=transactions, strategy=extractor.name)
        return ExtractionOutcome()

    async def _run_llm(self, text: str, reference: date, force_heavy: bool) -> ExtractionOutcome:
        if self.llm_extractor is None or not self.llm_extractor.can_extract(text):
            return ExtractionOutcome()

        try:
            transactions = await self.llm_extractor.extract(text, reference, force_heavy)
        except (UpstreamUnavailable, MalformedResponse) as e:
            logger.warning("LLM extraction failed: %s", e)
            return ExtractionOutcome(strategy=self.llm_extractor.name, error=e)
        except Exception as e:
            logger.exception("LLM extraction failed unexpectedly")
            return ExtractionOutcome(strategy=self.llm_extractor.name, error=e)

        return ExtractionOutcome(transactions=transactions, strategy=self.llm_extractor.name)

    @staticmethod
    def _stamp(outcome: ExtractionOutcome, batch_id: str | None) -> ExtractionOutcome:
        """Give every returned record a fresh id and the caller's batch id."""
        outcome.transactions = [
            dataclasses.replace(txn, id=new_id(), batch_id=batch_id) for txn in outcome.transactions
        ]
        return outcome
