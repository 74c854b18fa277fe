"""
Configuration management (SSOT).

This module defines ALL configuration for ledger-chat.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- The LLM backend is optional: with llm.enabled = false only the local
  extractors run and chat replies fall back to canned responses
- Bulk thresholds decide which handler owns a pasted message
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class LLMConfig:
    """Local LLM (Ollama) configuration.

    SSOT for LLM settings:
    - enabled: Master switch (default OFF)
    - ollama_url: Can be localhost, LAN IP, or remote URL
    - auth_header: Optional auth header for proxied deployments
    - max_concurrent: Upper bound on in-flight requests
    """

    # Master enable/disable (SSOT: single enforcement point)
    enabled: bool = False
    # Ollama server URL (supports localhost, LAN, remote)
    ollama_url: str = "http://localhost:11434"
    # Optional authentication header for proxied deployments
    # Format: "Bearer <token>" or "Header-Name: value"
    auth_header: str | None = None
    # Model for chat and short extractions
    model_fast: str = "llama3:latest"
    # Model for statements, chunking and re-extraction
    model_fallback: str = "deepseek-r1:8b"
    # Request timeout (seconds)
    timeout_seconds: int = 60
    # Maximum concurrent LLM requests (semaphore)
    max_concurrent: int = 5
    # Sampling temperature for free-form chat
    temperature: float = 0.7

    def is_remote(self) -> bool:
        """Check if Ollama URL is remote (not localhost)."""
        url_lower = self.ollama_url.lower()
        return not any(
            local in url_lower
            for local in ["localhost", "127.0.0.1", "::1", "host.docker.internal"]
        )


@dataclass
class ExtractionConfig:
    """Extraction orchestrator settings."""

    # How long a cached extraction result stays valid (seconds)
    cache_ttl_seconds: int = 300
    # Cache key is this many leading characters of the input
    cache_prefix_length: int = 100
    # Inputs longer than this never reach the LLM strategy
    llm_max_input_chars: int = 12000


@dataclass
class BulkConfig:
    """Bulk chunking and batch scheduling settings."""

    # Chunks extracted concurrently per batch
    batch_size: int = 5
    # Pause between batches (seconds)
    batch_pause_seconds: float = 0.1
    # A message is bulk data above either threshold
    threshold_lines: int = 10
    threshold_length: int = 500
    # Text beyond this is truncated before the chunking prompt
    chunk_prompt_max_chars: int = 15000


@dataclass
class ConversationConfig:
    """Dialogue settings."""

    # Unparsable replies tolerated inside a clarification mode
    max_clarification_attempts: int = 3
    # Previous messages sent along with a free-form chat turn
    history_window: int = 8


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    bulk: BulkConfig = field(default_factory=BulkConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if self.llm.enabled and not self.llm.ollama_url:
            errors.append("llm.ollama_url is required when LLM is enabled")
        if self.llm.timeout_seconds <= 0:
            errors.append("llm.timeout_seconds must be positive")
        if self.llm.max_concurrent < 1:
            errors.append("llm.max_concurrent must be at least 1")

        if self.bulk.batch_size < 1:
            errors.append("bulk.batch_size must be at least 1")
        if self.bulk.batch_pause_seconds < 0:
            errors.append("bulk.batch_pause_seconds must not be negative")
        if self.bulk.threshold_lines < 1 or self.bulk.threshold_length < 1:
            errors.append("bulk thresholds must be positive")

        if self.extraction.cache_prefix_length < 1:
            errors.append("extraction.cache_prefix_length must be at least 1")

        if self.conversation.max_clarification_attempts < 1:
            errors.append("conversation.max_clarification_attempts must be at least 1")

        return errors


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    A missing file yields the defaults. Environment variables can override
    config values:
    - LEDGER_CHAT_LLM_ENABLED (true/false)
    - OLLAMA_URL
    - OLLAMA_AUTH_HEADER
    - OLLAMA_MODEL (fast model name)
    - OLLAMA_MODEL_FALLBACK (fallback model name)
    - OLLAMA_TIMEOUT (request timeout in seconds)
    - LEDGER_CHAT_BATCH_SIZE (bulk batch width)

    Raises:
        ConfigValidationError: If the resulting configuration is invalid
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # LLM config
    llm_data = data.get("llm", {})
    llm_enabled_env = os.environ.get("LEDGER_CHAT_LLM_ENABLED", "").lower()
    llm_enabled = llm_data.get("enabled", False)
    if llm_enabled_env == "true":
        llm_enabled = True
    elif llm_enabled_env == "false":
        llm_enabled = False

    llm = LLMConfig(
        enabled=llm_enabled,
        ollama_url=os.environ.get(
            "OLLAMA_URL", llm_data.get("ollama_url", "http://localhost:11434")
        ),
        auth_header=os.environ.get("OLLAMA_AUTH_HEADER", llm_data.get("auth_header")),
        model_fast=os.environ.get("OLLAMA_MODEL", llm_data.get("model_fast", "llama3:latest")),
        model_fallback=os.environ.get(
            "OLLAMA_MODEL_FALLBACK", llm_data.get("model_fallback", "deepseek-r1:8b")
        ),
        timeout_seconds=int(os.environ.get("OLLAMA_TIMEOUT", llm_data.get("timeout_seconds", 60))),
        max_concurrent=llm_data.get("max_concurrent", 5),
        temperature=llm_data.get("temperature", 0.7),
    )

    # Extraction config
    extraction_data = data.get("extraction", {})
    extraction = ExtractionConfig(
        cache_ttl_seconds=extraction_data.get("cache_ttl_seconds", 300),
        cache_prefix_length=extraction_data.get("cache_prefix_length", 100),
        llm_max_input_chars=extraction_data.get("llm_max_input_chars", 12000),
    )

    # Bulk config
    bulk_data = data.get("bulk", {})
    batch_size = bulk_data.get("batch_size", 5)
    batch_size_env = os.environ.get("LEDGER_CHAT_BATCH_SIZE", "")
    if batch_size_env:
        try:
            batch_size = int(batch_size_env)
        except ValueError:
            pass  # Keep configured value

    bulk = BulkConfig(
        batch_size=batch_size,
        batch_pause_seconds=bulk_data.get("batch_pause_seconds", 0.1),
        threshold_lines=bulk_data.get("threshold_lines", 10),
        threshold_length=bulk_data.get("threshold_length", 500),
        chunk_prompt_max_chars=bulk_data.get("chunk_prompt_max_chars", 15000),
    )

    # Conversation config
    conversation_data = data.get("conversation", {})
    conversation = ConversationConfig(
        max_clarification_attempts=conversation_data.get("max_clarification_attempts", 3),
        history_window=conversation_data.get("history_window", 8),
    )

    config = Config(
        llm=llm,
        extraction=extraction,
        bulk=bulk,
        conversation=conversation,
    )

    errors = config.validate()
    if errors:
        raise ConfigValidationError("; ".join(errors))

    return config


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# ledger-chat configuration
#
# Every key can be omitted; the values below are the defaults.

# Local LLM settings (Ollama)
# Supports localhost, LAN, or remote deployments
llm:
  enabled: false                           # Set to true to enable LLM extraction and chat
  ollama_url: "http://localhost:11434"     # Ollama server URL (localhost, LAN, or remote)
  auth_header: null                        # Optional auth header for proxied deployments
  model_fast: "llama3:latest"              # Chat and short extractions
  model_fallback: "deepseek-r1:8b"         # Statements, chunking and re-extraction
  timeout_seconds: 60
  max_concurrent: 5                        # Max concurrent LLM requests
  temperature: 0.7

# Extraction orchestrator
extraction:
  cache_ttl_seconds: 300                   # Reuse results for identical input
  cache_prefix_length: 100                 # Leading characters used as cache key
  llm_max_input_chars: 12000               # Longer input never reaches the LLM strategy

# Bulk paste processing
bulk:
  batch_size: 5                            # Chunks extracted concurrently
  batch_pause_seconds: 0.1                 # Pause between batches
  threshold_lines: 10                      # More lines than this is bulk data
  threshold_length: 500                    # More characters than this is bulk data
  chunk_prompt_max_chars: 15000            # Truncate text sent to the chunking prompt

# Dialogue
conversation:
  max_clarification_attempts: 3            # Re-prompts before a question is dropped
  history_window: 8                        # Messages sent with free-form chat
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
