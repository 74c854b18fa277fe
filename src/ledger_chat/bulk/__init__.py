"""
Bulk paste processing.

Provides:
- BulkChunker: LLM chunking with a deterministic fallback
- process_chunks: bounded-concurrency batch scheduler
- BulkProcessor: full run (chunk, extract, dedupe, summarize)
"""

from .chunker import NO_CHUNKS_MESSAGE, BulkChunker, is_bulk_data, split_deterministic
from .scheduler import EMPTY_CHUNK_MESSAGE, batched, make_chunks, process_chunk, process_chunks
from .task import BulkProcessor, BulkReport, build_final_message, chunk_progress, format_category_summary

__all__ = [
    "BulkChunker",
    "BulkProcessor",
    "BulkReport",
    "EMPTY_CHUNK_MESSAGE",
    "NO_CHUNKS_MESSAGE",
    "batched",
    "build_final_message",
    "chunk_progress",
    "format_category_summary",
    "is_bulk_data",
    "make_chunks",
    "process_chunk",
    "process_chunks",
    "split_deterministic",
]
