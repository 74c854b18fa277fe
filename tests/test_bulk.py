"""Tests for bulk chunking, batch scheduling and the bulk processor."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import SAMPLE_STATEMENT_TEXT, make_transaction

from ledger_chat.bulk import (
    EMPTY_CHUNK_MESSAGE,
    NO_CHUNKS_MESSAGE,
    BulkChunker,
    BulkProcessor,
    BulkReport,
    batched,
    build_final_message,
    chunk_progress,
    format_category_summary,
    is_bulk_data,
    make_chunks,
    process_chunks,
    split_deterministic,
)
from ledger_chat.bulk.task import STATUS_DONE, STATUS_DONE_WITH_ERRORS, STATUS_NO_CHUNKS
from ledger_chat.config import BulkConfig
from ledger_chat.errors import LLMUnavailableError, MalformedResponse, NoDataFound
from ledger_chat.extractors import ExtractionOrchestrator, ExtractionOutcome
from ledger_chat.schemas.transaction import (
    DEFAULT_CATEGORY,
    ChunkStatus,
    Direction,
)

REFERENCE = date(2025, 4, 14)

TWO_UNKNOWN_BLOCKS = """Apr 10, 2025
Cash Redemption
Other
$25.00

Apr 11, 2025
Cash Redemption
Other
$30.00"""


@pytest.fixture
def bulk_config():
    return BulkConfig(batch_pause_seconds=0)


@pytest.fixture
def processor(bulk_config):
    return BulkProcessor(ExtractionOrchestrator(), BulkChunker(None, bulk_config), bulk_config)


class TestChunker:
    """Tests for BulkChunker and the deterministic split."""

    def test_is_bulk_data(self):
        assert is_bulk_data(SAMPLE_STATEMENT_TEXT)
        assert is_bulk_data("x" * 501)
        assert not is_bulk_data("I spent $20 at Target")
        assert not is_bulk_data("")

    def test_split_on_date_headers(self):
        chunks = split_deterministic(SAMPLE_STATEMENT_TEXT)
        assert len(chunks) == 10
        assert chunks[1].startswith("Apr 2, 2025")

    def test_split_on_blank_lines(self):
        assert split_deterministic("coffee $4\n\n\nlunch $9\n") == ["coffee $4", "lunch $9"]

    @pytest.mark.asyncio
    async def test_without_llm(self, bulk_config):
        chunker = BulkChunker(None, bulk_config)
        assert len(await chunker.chunk(SAMPLE_STATEMENT_TEXT)) == 10

    @pytest.mark.asyncio
    async def test_empty_text(self, bulk_config):
        chunker = BulkChunker(None, bulk_config)
        with pytest.raises(NoDataFound) as exc_info:
            await chunker.chunk("   ")
        assert str(exc_info.value) == NO_CHUNKS_MESSAGE

    @pytest.mark.asyncio
    async def test_llm_chunks(self, bulk_config, mock_llm):
        """The model answer is used as-is when it parses."""
        mock_llm.generate_json = AsyncMock(
            return_value='{"transaction_chunks": ["Apr 1\\n$5", "Apr 2\\n$6"]}'
        )
        chunker = BulkChunker(mock_llm, bulk_config)

        assert await chunker.chunk(SAMPLE_STATEMENT_TEXT) == ["Apr 1\n$5", "Apr 2\n$6"]
        assert mock_llm.generate_json.call_args.kwargs["force_heavy"] is True

    @pytest.mark.asyncio
    async def test_llm_zero_chunks(self, bulk_config, mock_llm):
        mock_llm.generate_json = AsyncMock(return_value='{"transaction_chunks": []}')
        chunker = BulkChunker(mock_llm, bulk_config)

        with pytest.raises(NoDataFound):
            await chunker.chunk(SAMPLE_STATEMENT_TEXT)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [LLMUnavailableError("down"), MalformedResponse("garbage")]
    )
    async def test_llm_failure_falls_back(self, bulk_config, mock_llm, error):
        mock_llm.generate_json = AsyncMock(side_effect=error)
        chunker = BulkChunker(mock_llm, bulk_config)

        assert len(await chunker.chunk(SAMPLE_STATEMENT_TEXT)) == 10


class TestScheduler:
    """Tests for batched chunk processing."""

    def test_batched(self):
        chunks = make_chunks(["a", "b", "c", "d", "e"])
        assert [len(b) for b in batched(chunks, 2)] == [2, 2, 1]
        with pytest.raises(ValueError):
            batched(chunks, 0)

    @pytest.mark.asyncio
    async def test_failing_chunk_isolated(self):
        """Chunk 3 of 5 fails; the other four still succeed."""

        async def extract(text):
            if text == "c":
                raise LLMUnavailableError("backend down")
            return [make_transaction(description=text)]

        chunks = await process_chunks(make_chunks(list("abcde")), extract, pause_seconds=0)

        assert [c.status for c in chunks] == [
            ChunkStatus.SUCCESS,
            ChunkStatus.SUCCESS,
            ChunkStatus.ERROR,
            ChunkStatus.SUCCESS,
            ChunkStatus.SUCCESS,
        ]
        assert chunks[2].error == "backend down"
        assert chunks[2].transactions == []
        assert sum(len(c.transactions) for c in chunks) == 4

    @pytest.mark.asyncio
    async def test_batches_run_one_after_another(self):
        """No chunk of batch N+1 starts before batch N has resolved."""
        events = []

        async def extract(text):
            events.append(("start", text))
            await asyncio.sleep(0)
            events.append(("end", text))
            return []

        await process_chunks(make_chunks(list("abcde")), extract, batch_size=2, pause_seconds=0)

        position = {event: i for i, event in enumerate(events)}
        assert position[("start", "c")] > max(position[("end", "a")], position[("end", "b")])
        assert position[("start", "e")] > max(position[("end", "c")], position[("end", "d")])

    @pytest.mark.asyncio
    async def test_empty_chunk_message_and_progress(self):
        progress = []

        async def extract(text):
            return []

        chunks = await process_chunks(
            make_chunks(["a", "b"]),
            extract,
            pause_seconds=0,
            on_progress=lambda done, total: progress.append((done, total)),
        )

        assert all(c.message == EMPTY_CHUNK_MESSAGE for c in chunks)
        assert progress == [(1, 2), (2, 2)]

    def test_chunk_progress_band(self):
        assert chunk_progress(0, 10) == 20
        assert chunk_progress(10, 10) == 95
        assert chunk_progress(0, 0) == 20


class TestBulkProcessor:
    """Tests for the full bulk run."""

    @pytest.mark.asyncio
    async def test_statement_paste(self, processor):
        """A ten-block statement yields ten new records and a summary."""
        statuses = []
        report = await processor.run(
            SAMPLE_STATEMENT_TEXT,
            existing=lambda: [],
            reference_date=REFERENCE,
            on_status=lambda text, progress: statuses.append((text, progress)),
        )

        assert len(report.chunks) == 10
        assert len(report.added) == 10
        assert report.duplicates == []
        assert report.needs_direction == []
        assert report.status == STATUS_DONE
        assert report.message.startswith("Finished processing! Added 10 new transaction(s).")
        assert "**Transaction Summary:**" in report.message
        assert all(t.batch_id == report.batch_id for t in report.added)

        assert statuses[0] == ("AI identifying chunks...", 10)
        assert statuses[1] == ("Processing 10 chunks...", 20)
        assert statuses[-1] == ("Finalizing results...", 95)
        progress = [p for _, p in statuses]
        assert progress == sorted(progress)

    @pytest.mark.asyncio
    async def test_resubmission_is_all_duplicates(self, processor):
        first = await processor.run(SAMPLE_STATEMENT_TEXT, lambda: [], reference_date=REFERENCE)
        second = await processor.run(
            SAMPLE_STATEMENT_TEXT, lambda: first.added, reference_date=REFERENCE
        )

        assert second.added == []
        assert second.duplicate_count == 10
        assert second.message == "Finished processing! Added 0 new transaction(s). Ignored 10 duplicate(s)."

    @pytest.mark.asyncio
    async def test_all_unknown_needs_direction(self, processor):
        report = await processor.run(TWO_UNKNOWN_BLOCKS, lambda: [], reference_date=REFERENCE)

        assert len(report.added) == 2
        assert report.needs_direction == [t.id for t in report.added]

    @pytest.mark.asyncio
    async def test_explicit_direction_applied(self, processor):
        report = await processor.run(
            TWO_UNKNOWN_BLOCKS,
            lambda: [],
            explicit_direction=Direction.IN,
            reference_date=REFERENCE,
        )

        assert report.needs_direction == []
        assert all(t.direction == Direction.IN for t in report.added)
        assert all(t.category == DEFAULT_CATEGORY for t in report.added)

    @pytest.mark.asyncio
    async def test_no_chunks(self, bulk_config, mock_llm):
        mock_llm.generate_json = AsyncMock(return_value='{"transaction_chunks": []}')
        processor = BulkProcessor(
            ExtractionOrchestrator(), BulkChunker(mock_llm, bulk_config), bulk_config
        )

        report = await processor.run(SAMPLE_STATEMENT_TEXT, lambda: [])

        assert report.status == STATUS_NO_CHUNKS
        assert report.message == NO_CHUNKS_MESSAGE
        assert report.added == []

    @pytest.mark.asyncio
    async def test_failed_chunk_reported(self, bulk_config):
        """A chunk whose extraction errors is counted in the final message."""

        async def run(text, reference, batch_id):
            if "SHELL" in text:
                return ExtractionOutcome(error=LLMUnavailableError("down"))
            return ExtractionOutcome(
                transactions=[make_transaction(description=text.splitlines()[1], batch_id=batch_id)]
            )

        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(side_effect=run)
        processor = BulkProcessor(orchestrator, BulkChunker(None, bulk_config), bulk_config)

        report = await processor.run(SAMPLE_STATEMENT_TEXT, lambda: [], reference_date=REFERENCE)

        assert report.had_errors
        assert report.status == STATUS_DONE_WITH_ERRORS
        assert len(report.added) == 9
        assert "Note: 1 part(s) of your data could not be processed." in report.message


class TestFinalMessage:
    """Tests for the summary text."""

    def test_nothing_extracted(self):
        message = build_final_message(BulkReport(batch_id="b"))
        assert message.startswith("I finished processing the data but couldn't extract")
        assert "errors" not in message

    def test_category_summary(self):
        summary = format_category_summary(
            [
                make_transaction(amount="10.00", category="Groceries"),
                make_transaction(amount="5.50", category="Groceries"),
                make_transaction(amount="3.00"),
            ]
        )
        assert "- Groceries: 2 transaction(s) totaling $15.50" in summary
        assert f"- {DEFAULT_CATEGORY}: 1 transaction(s) totaling $3.00" in summary

    def test_empty_summary(self):
        assert format_category_summary([]) == "No categories found."
