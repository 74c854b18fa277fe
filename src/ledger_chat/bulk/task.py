"""
Bulk processing run.

Chunk -> schedule -> aggregate -> dedupe. The processor reports progress
through a callback and returns a BulkReport; committing the new records and
posting the final message is left to the session, which owns the store and
the conversation state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Optional

from ..categorizer import apply_direction
from ..errors import NoDataFound
from ..schemas.dedupe import dedupe_transactions
from ..schemas.transaction import (
    DEFAULT_CATEGORY,
    Chunk,
    ChunkStatus,
    Direction,
    Transaction,
    new_id,
)
from .scheduler import make_chunks, process_chunks

if TYPE_CHECKING:
    from ..config import BulkConfig
    from ..extractors.orchestrator import ExtractionOrchestrator
    from .chunker import BulkChunker

logger = logging.getLogger(__name__)

StatusFn = Callable[[str, int], None]

STATUS_IDENTIFYING = "AI identifying chunks..."
STATUS_FINALIZING = "Finalizing results..."
STATUS_DONE = "Bulk processing complete"
STATUS_DONE_WITH_ERRORS = "Completed with errors"
STATUS_NO_CHUNKS = "No transaction blocks found"

PROGRESS_START = 5
PROGRESS_CHUNKING = 10
PROGRESS_PROCESSING = 20
PROGRESS_FINALIZING = 95
PROGRESS_DONE = 100


def chunk_progress(completed: int, total: int) -> int:
    """Map completed/total chunks onto the 20-95 progress band."""
    if total <= 0:
        return PROGRESS_PROCESSING
    span = PROGRESS_FINALIZING - PROGRESS_PROCESSING
    return PROGRESS_PROCESSING + int(span * completed / total)


@dataclass
class BulkReport:
    """Result of one bulk run, ready to be committed and announced."""

    batch_id: str
    chunks: list[Chunk] = field(default_factory=list)
    added: list[Transaction] = field(default_factory=list)
    duplicates: list[Transaction] = field(default_factory=list)
    message: str = ""
    status: str = STATUS_DONE
    needs_direction: list[str] = field(default_factory=list)

    @property
    def had_errors(self) -> bool:
        return any(chunk.status == ChunkStatus.ERROR for chunk in self.chunks)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)


def format_category_summary(transactions: list[Transaction]) -> str:
    """Markdown breakdown of transactions per category (count and total)."""
    categories: dict[str, list] = {}
    for txn in transactions:
        category = txn.category or DEFAULT_CATEGORY
        entry = categories.setdefault(category, [0, Decimal("0")])
        entry[0] += 1
        entry[1] += abs(txn.amount)

    if not categories:
        return "No categories found."

    lines = ["**Transaction Summary:**"]
    for category, (count, total) in categories.items():
        lines.append(f"- {category}: {count} transaction(s) totaling ${total:.2f}")
    return "\n".join(lines)


def build_final_message(report: BulkReport) -> str:
    """Final assistant message for a finished bulk run."""
    added = len(report.added)
    if added == 0 and report.duplicate_count == 0:
        message = "I finished processing the data but couldn't extract any valid new transactions."
        if report.had_errors:
            message += " There might have been some errors during processing."
        return message + " Please check the format or try providing the data again."

    message = f"Finished processing! Added {added} new transaction(s)."
    if report.duplicate_count:
        message += f" Ignored {report.duplicate_count} duplicate(s)."
    if report.had_errors:
        failed = sum(1 for chunk in report.chunks if chunk.status == ChunkStatus.ERROR)
        message += f"\n\nNote: {failed} part(s) of your data could not be processed."
    if added:
        message += "\n\n" + format_category_summary(report.added)
        message += "\n\nYou can review the updated transaction list now."
    return message


class BulkProcessor:
    """Runs the chunk/extract/aggregate pipeline for one large paste."""

    def __init__(
        self,
        orchestrator: ExtractionOrchestrator,
        chunker: BulkChunker,
        config: BulkConfig,
    ):
        self.orchestrator = orchestrator
        self.chunker = chunker
        self.config = config

    async def run(
        self,
        text: str,
        existing: Callable[[], list[Transaction]],
        explicit_direction: Optional[Direction] = None,
        reference_date: Optional[date] = None,
        on_status: Optional[StatusFn] = None,
    ) -> BulkReport:
        """
        Process a bulk paste.

        Args:
            text: The pasted text
            existing: Returns the stored transactions (read when deduplicating)
            explicit_direction: Direction the user stated for the whole paste
            reference_date: Date relative phrases resolve against
            on_status: Called with (status text, progress 0-100)

        Returns:
            BulkReport; ``added`` still has to be committed by the caller
        """
        report = BulkReport(batch_id=new_id())
        reference = reference_date or date.today()

        def status(text: str, progress: int) -> None:
            if on_status is not None:
                on_status(text, progress)

        status(STATUS_IDENTIFYING, PROGRESS_CHUNKING)
        try:
            texts = await self.chunker.chunk(text)
        except NoDataFound as e:
            logger.info("Bulk run %s: no chunks", report.batch_id[:8])
            report.message = str(e)
            report.status = STATUS_NO_CHUNKS
            return report

        report.chunks = make_chunks(texts)
        total = len(report.chunks)
        processing = f"Processing {total} chunks..."
        status(processing, PROGRESS_PROCESSING)

        async def extract(chunk_text: str) -> list[Transaction]:
            outcome = await self.orchestrator.run(chunk_text, reference, report.batch_id)
            if outcome.error is not None and not outcome.transactions:
                raise outcome.error
            return outcome.transactions

        await process_chunks(
            report.chunks,
            extract,
            batch_size=self.config.batch_size,
            pause_seconds=self.config.batch_pause_seconds,
            on_progress=lambda done, total: status(processing, chunk_progress(done, total)),
        )

        status(STATUS_FINALIZING, PROGRESS_FINALIZING)

        extracted = [txn for chunk in report.chunks for txn in chunk.transactions]
        if explicit_direction is not None:
            extracted = [apply_direction(txn, explicit_direction) for txn in extracted]

        result = dedupe_transactions(extracted, existing())
        report.added = result.unique
        report.duplicates = result.duplicates

        if (
            explicit_direction is None
            and report.added
            and all(txn.direction == Direction.UNKNOWN for txn in report.added)
        ):
            report.needs_direction = [txn.id for txn in report.added]

        report.status = STATUS_DONE_WITH_ERRORS if report.had_errors else STATUS_DONE
        report.message = build_final_message(report)
        logger.info(
            "Bulk run %s: %d chunk(s), %d new, %d duplicate(s), errors=%s",
            report.batch_id[:8],
            total,
            len(report.added),
            report.duplicate_count,
            report.had_errors,
        )
        return report
