"""
Bounded-concurrency batch scheduler for bulk chunks.

Chunks are processed in batches of ``batch_size``: every chunk of a batch
runs concurrently, and the next batch starts only after the whole batch has
resolved (plus a short pause). A failing chunk is marked as an error and
never affects its siblings.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..schemas.transaction import Chunk, ChunkStatus, Transaction

logger = logging.getLogger(__name__)

EMPTY_CHUNK_MESSAGE = "No transactions found in this chunk."

ExtractFn = Callable[[str], Awaitable[list[Transaction]]]
ProgressFn = Callable[[int, int], None]


def make_chunks(texts: list[str]) -> list[Chunk]:
    """Wrap chunk texts into pending Chunk records."""
    return [Chunk(index=i, text=text) for i, text in enumerate(texts)]


def batched(chunks: list[Chunk], batch_size: int) -> list[list[Chunk]]:
    """Group chunks into consecutive batches of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [chunks[i : i + batch_size] for i in range(0, len(chunks), batch_size)]


async def process_chunk(chunk: Chunk, extract: ExtractFn) -> Chunk:
    """Run extraction for one chunk, recording success or failure on it."""
    chunk.status = ChunkStatus.PROCESSING
    try:
        transactions = await extract(chunk.text)
    except Exception as e:
        logger.warning("Chunk %d failed: %s", chunk.index, e)
        chunk.status = ChunkStatus.ERROR
        chunk.error = str(e) or e.__class__.__name__
        chunk.transactions = []
        return chunk

    chunk.transactions = list(transactions)
    chunk.status = ChunkStatus.SUCCESS
    if not chunk.transactions:
        chunk.message = EMPTY_CHUNK_MESSAGE
    logger.debug("Chunk %d yielded %d transaction(s)", chunk.index, len(chunk.transactions))
    return chunk


async def process_chunks(
    chunks: list[Chunk],
    extract: ExtractFn,
    batch_size: int = 5,
    pause_seconds: float = 0.1,
    on_progress: Optional[ProgressFn] = None,
) -> list[Chunk]:
    """
    Process all chunks batch by batch.

    Args:
        chunks: Chunks to process (updated in place)
        extract: Coroutine function turning chunk text into transactions
        batch_size: Chunks run concurrently per batch
        pause_seconds: Sleep between batches
        on_progress: Called with (completed, total) after each chunk resolves

    Returns:
        The same chunks, in their original order
    """
    total = len(chunks)
    completed = 0
    batches = batched(chunks, batch_size)

    async def run_one(chunk: Chunk) -> Chunk:
        nonlocal completed
        result = await process_chunk(chunk, extract)
        completed += 1
        if on_progress is not None:
            on_progress(completed, total)
        return result

    for batch_index, batch in enumerate(batches):
        logger.debug(
            "Processing batch %d/%d (%d chunk(s))", batch_index + 1, len(batches), len(batch)
        )
        await asyncio.gather(*(run_one(chunk) for chunk in batch))

        if batch_index < len(batches) - 1 and pause_seconds > 0:
            await asyncio.sleep(pause_seconds)

    return chunks
