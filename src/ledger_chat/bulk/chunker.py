"""
Bulk text chunking.

One LLM call splits a large paste into transaction-sized chunks. When the
backend cannot answer (disabled, unreachable, malformed JSON) the text is
split deterministically instead: on statement date headers when there are
any, otherwise on blank lines.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from ..errors import MalformedResponse, NoDataFound, UpstreamUnavailable
from ..extractors.bank_statement import split_statement_blocks
from ..llm.parsing import parse_chunks_payload
from ..llm.prompts import CHUNKING_PROMPT

if TYPE_CHECKING:
    from ..config import BulkConfig
    from ..llm.client import OllamaClient

logger = logging.getLogger(__name__)

NO_CHUNKS_MESSAGE = (
    "The AI could not identify distinct transaction blocks in your text. "
    "Please check the format or try again."
)

_BLANK_LINES_RE = re.compile(r"\n\s*\n")


def split_deterministic(text: str) -> list[str]:
    """Split without the LLM: statement blocks, else paragraphs, else the whole text."""
    blocks = split_statement_blocks(text)
    if blocks:
        return ["\n".join(block) for block in blocks]

    return [p.strip() for p in _BLANK_LINES_RE.split(text) if p.strip()]


def is_bulk_data(text: str, threshold_lines: int = 10, threshold_length: int = 500) -> bool:
    """True for pastes large enough to go through chunking."""
    if not text:
        return False
    return len(text.splitlines()) > threshold_lines or len(text) > threshold_length


class BulkChunker:
    """Split bulk text into chunks of one or a few transactions each."""

    def __init__(self, llm_client: OllamaClient | None, config: BulkConfig):
        self.llm_client = llm_client
        self.config = config

    async def chunk(self, text: str) -> list[str]:
        """
        Split ``text`` into chunks.

        Returns:
            Non-empty list of chunk texts

        Raises:
            NoDataFound: The model answered with zero chunks, or there was no
                text to split
        """
        if not text or not text.strip():
            raise NoDataFound(NO_CHUNKS_MESSAGE)

        if self.llm_client is not None and self.llm_client.is_enabled:
            try:
                chunks = await self._chunk_with_llm(text)
            except (UpstreamUnavailable, MalformedResponse) as e:
                logger.warning("LLM chunking failed (%s), splitting on date headers", e)
            else:
                if not chunks:
                    logger.warning("LLM chunking returned 0 chunks")
                    raise NoDataFound(NO_CHUNKS_MESSAGE)
                logger.info("LLM identified %d chunk(s)", len(chunks))
                return chunks

        chunks = split_deterministic(text)
        if not chunks:
            raise NoDataFound(NO_CHUNKS_MESSAGE)
        logger.info("Split bulk text into %d chunk(s) without the LLM", len(chunks))
        return chunks

    async def _chunk_with_llm(self, text: str) -> list[str]:
        prompt = CHUNKING_PROMPT.format_user_message(text, self.config.chunk_prompt_max_chars)
        raw = await self.llm_client.generate_json(
            prompt,
            system_prompt=CHUNKING_PROMPT.system_prompt,
            force_heavy=True,
        )
        return parse_chunks_payload(raw)
