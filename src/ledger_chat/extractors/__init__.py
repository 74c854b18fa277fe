"""
Transaction extractors.

Provides:
- ExtractionOrchestrator: Chooses extraction strategy, caches results
- Bank statement block extractor
- Conversational regex extractor
- LLM extractor (optional)
- Base class for custom extractors

Strategies are pluggable and testable.
"""

from .bank_statement import BankStatementExtractor, looks_like_statement, split_statement_blocks
from .base import BaseExtractor
from .conversational import ConversationalExtractor
from .llm_extractor import LLMExtractor
from .orchestrator import (
    ExtractionCache,
    ExtractionOrchestrator,
    ExtractionOutcome,
    finalize_transaction,
)

__all__ = [
    "ExtractionOrchestrator",
    "ExtractionCache",
    "ExtractionOutcome",
    "finalize_transaction",
    "BankStatementExtractor",
    "ConversationalExtractor",
    "LLMExtractor",
    "BaseExtractor",
    "looks_like_statement",
    "split_statement_blocks",
]
