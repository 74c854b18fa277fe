"""
Local LLM integration (Ollama).

Provides:
- OllamaClient: async chat / JSON generation with model fallback
- Prompt templates (versioned)
- Parsing helpers: the only place raw model output is deserialized

The LLM is optional; with llm.enabled = false every caller falls back to
deterministic behaviour.
"""

from .client import LLMConcurrencyLimiter, OllamaClient
from .parsing import (
    CorrectionPayload,
    ParsedTransaction,
    parse_chunks_payload,
    parse_correction_payload,
    parse_json_payload,
    parse_transactions_payload,
)
from .prompts import PROMPT_VERSION, get_system_prompt

__all__ = [
    "OllamaClient",
    "LLMConcurrencyLimiter",
    "CorrectionPayload",
    "ParsedTransaction",
    "parse_chunks_payload",
    "parse_correction_payload",
    "parse_json_payload",
    "parse_transactions_payload",
    "PROMPT_VERSION",
    "get_system_prompt",
]
