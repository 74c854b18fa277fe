"""
LLM extraction strategy.

Used only when the local extractors come back empty. The answer goes
through ``parse_transactions_payload`` and is converted record by record;
invalid records are dropped, never repaired with invented values.
"""

from __future__ import annotations

import logging
from datetime import date

from ..llm.client import OllamaClient
from ..llm.parsing import ParsedTransaction, parse_transactions_payload
from ..llm.prompts import EXTRACTION_PROMPT, STATEMENT_EXTRACTION_PROMPT
from ..schemas.transaction import CATEGORIES, DEFAULT_CATEGORY, Transaction
from .bank_statement import looks_like_statement

logger = logging.getLogger(__name__)


def _to_transaction(record: ParsedTransaction) -> Transaction:
    return Transaction(
        date=record.date,
        description=record.description,
        details=record.details,
        type=record.type,
        amount=record.amount,
        currency=record.currency,
        direction=record.direction,
        category=record.category if record.category in CATEGORIES else DEFAULT_CATEGORY,
    )


class LLMExtractor:
    """Prompted JSON extraction via Ollama."""

    name = "llm"

    def __init__(self, client: OllamaClient, max_input_chars: int = 12000):
        self.client = client
        self.max_input_chars = max_input_chars

    def can_extract(self, text: str) -> bool:
        """Backend enabled and the text small enough for one prompt."""
        return self.client.is_enabled and 0 < len(text) <= self.max_input_chars

    async def extract(
        self, text: str, reference: date, force_heavy: bool = False
    ) -> list[Transaction]:
        """
        Run the extraction prompt and convert the validated records.

        Raises:
            UpstreamUnavailable: Backend disabled, unreachable or throttled
            MalformedResponse: Answer was not a usable transaction list
        """
        today = reference.isoformat()
        if looks_like_statement(text):
            prompt = STATEMENT_EXTRACTION_PROMPT
            force_heavy = True
        else:
            prompt = EXTRACTION_PROMPT

        logger.info(
            "LLM extraction (%s prompt, %d chars)",
            "statement" if prompt is STATEMENT_EXTRACTION_PROMPT else "conversational",
            len(text),
        )
        raw = await self.client.generate_json(
            prompt.format_user_message(text, today),
            system_prompt=prompt.system_prompt,
            force_heavy=force_heavy,
        )
        records = parse_transactions_payload(raw, reference)
        return [_to_transaction(record) for record in records]
