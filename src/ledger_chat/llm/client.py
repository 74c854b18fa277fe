"""Async Ollama client used by extraction, chunking and chat.

Features:
- Ollama /api/chat integration (localhost, LAN, or remote)
- Cascading model fallback for JSON generation (fast -> slow)
- Concurrency limiting via asyncio semaphore
- Typed errors: auth, rate limit, timeout, unavailable, malformed/empty

Privacy Constraints (non-negotiable):
- Never log prompts or raw user text at INFO level
- Remote Ollama: auth header support, no PII in logs
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING

import httpx

from ..errors import (
    LLMAuthError,
    LLMRateLimitError,
    LLMTimeoutError,
    LLMUnavailableError,
    MalformedResponse,
    UpstreamUnavailable,
)
from .parsing import parse_json_payload

if TYPE_CHECKING:
    from ..config import LLMConfig

logger = logging.getLogger(__name__)

_THINK_RE = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
_AMOUNT_RE = re.compile(r"[$£€¥]\s?-?\d[\d,]*\.?\d*")


def strip_think_tags(content: str) -> str:
    """Remove <think>...</think> blocks some reasoning models emit."""
    if not content:
        return ""
    return _THINK_RE.sub("", content).strip()


def is_simple_request(text: str) -> bool:
    """Short single-line text with at most one amount goes to the fast model."""
    if not text:
        return True
    amounts = _AMOUNT_RE.findall(text)
    return len(text) < 140 and "\n" not in text and len(amounts) <= 1


class LLMConcurrencyLimiter:
    """Semaphore-based concurrency limiter for LLM requests.

    Prevents overwhelming the Ollama server when a bulk batch fans out.
    Safe for use from a single event loop.
    """

    def __init__(self, max_concurrent: int = 5) -> None:
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._active_count = 0

    async def __aenter__(self) -> LLMConcurrencyLimiter:
        await self._semaphore.acquire()
        self._active_count += 1
        return self

    async def __aexit__(self, *args) -> None:
        self._active_count -= 1
        self._semaphore.release()

    @property
    def active_requests(self) -> int:
        """Current number of active LLM requests."""
        return self._active_count


class OllamaClient:
    """Thin async wrapper over the Ollama chat endpoint.

    LLM opt-in control (SSOT - single enforcement point):
    - config.llm.enabled is checked here and nowhere else; a disabled client
      raises LLMUnavailableError so callers fall back exactly as they would
      for an unreachable server.
    """

    def __init__(
        self,
        llm_config: LLMConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            llm_config: LLM section of the application configuration.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.llm_config = llm_config

        # Configure HTTP client with auth header support
        headers = {}
        if llm_config.auth_header:
            # Support formats: "Bearer token" or "Custom-Header: value"
            if ":" in llm_config.auth_header:
                key, value = llm_config.auth_header.split(":", 1)
                headers[key.strip()] = value.strip()
            else:
                headers["Authorization"] = llm_config.auth_header

        self._client = httpx.AsyncClient(
            base_url=llm_config.ollama_url.rstrip("/"),
            timeout=httpx.Timeout(
                connect=10.0,
                read=float(llm_config.timeout_seconds),
                write=30.0,
                pool=10.0,
            ),
            headers=headers,
            transport=transport,
        )
        self._limiter = LLMConcurrencyLimiter(max_concurrent=llm_config.max_concurrent)

    @property
    def is_enabled(self) -> bool:
        """Check if the LLM backend is enabled (SSOT)."""
        return self.llm_config.enabled

    @property
    def active_requests(self) -> int:
        return self._limiter.active_requests

    def pick_model(self, sample_text: str = "", force_heavy: bool = False) -> str:
        """Choose the fast or the fallback model for a request."""
        if force_heavy:
            return self.llm_config.model_fallback
        if is_simple_request(sample_text):
            return self.llm_config.model_fast
        return self.llm_config.model_fallback

    async def chat(
        self,
        messages: list[dict],
        *,
        model: str | None = None,
        temperature: float | None = None,
        json_format: bool = False,
    ) -> str:
        """Send a chat conversation and return the assistant text.

        Args:
            messages: [{"role": "system|user|assistant", "content": "..."}]
            model: Model override; picked from the last user message otherwise.
            temperature: Sampling temperature (config default when None).
            json_format: Ask Ollama to constrain output to JSON.

        Returns:
            Assistant reply with <think> blocks removed.

        Raises:
            UpstreamUnavailable: Disabled, unreachable, throttled or timed out.
            MalformedResponse: The backend answered with an empty message.
        """
        if not self.is_enabled:
            raise LLMUnavailableError("LLM backend is disabled")

        if model is None:
            last_user = next(
                (m["content"] for m in reversed(messages) if m.get("role") == "user"), ""
            )
            model = self.pick_model(last_user)

        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": (
                    self.llm_config.temperature if temperature is None else temperature
                ),
            },
        }
        if json_format:
            payload["format"] = "json"

        async with self._limiter:
            logger.debug(
                "Calling Ollama model %s with %d message(s) (active=%d)",
                model,
                len(messages),
                self._limiter.active_requests,
            )
            try:
                response = await self._client.post("/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as e:
                logger.warning("Ollama request timed out after %ds", self.llm_config.timeout_seconds)
                raise LLMTimeoutError(
                    f"Ollama request timed out after {self.llm_config.timeout_seconds}s"
                ) from e
            except httpx.HTTPStatusError as e:
                raise self._status_error(e, model) from e
            except httpx.RequestError as e:
                logger.error("Ollama request failed: %s (URL: %s)", e, self.llm_config.ollama_url)
                raise LLMUnavailableError(
                    "Connection to Ollama failed. Is Ollama running?"
                ) from e
            except ValueError as e:
                raise MalformedResponse("Ollama returned a non-JSON envelope") from e

        content = strip_think_tags((data.get("message") or {}).get("content", ""))
        logger.debug("Ollama %s returned %d chars", model, len(content))
        if not content:
            raise MalformedResponse("Ollama returned an empty response")
        return content

    async def generate_json(
        self,
        prompt: str,
        system_prompt: str | None = None,
        *,
        temperature: float = 0.1,
        force_heavy: bool = False,
    ) -> str:
        """Ask for a JSON answer, falling back to the larger model.

        The fast model gets one attempt (skipped when force_heavy); the
        fallback model gets one more. Auth and rate-limit errors are not
        retried.

        Returns:
            Raw model output that parses as JSON (possibly still fenced).

        Raises:
            UpstreamUnavailable: When the backend could not answer.
            MalformedResponse: When no attempt produced parseable JSON.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        models = [self.llm_config.model_fallback]
        if not force_heavy and self.llm_config.model_fast != self.llm_config.model_fallback:
            models.insert(0, self.llm_config.model_fast)

        last_error: Exception | None = None
        for model in models:
            try:
                content = await self.chat(
                    messages, model=model, temperature=temperature, json_format=True
                )
                parse_json_payload(content)
                return content
            except (LLMAuthError, LLMRateLimitError):
                raise
            except (UpstreamUnavailable, MalformedResponse) as e:
                logger.info("JSON generation with %s failed: %s", model, e)
                last_error = e

        if isinstance(last_error, UpstreamUnavailable):
            raise last_error
        raise MalformedResponse(
            f"JSON generation failed after {len(models)} attempt(s): {last_error}"
        )

    async def is_available(self) -> bool:
        """Check that Ollama answers and the fast model is installed."""
        if not self.is_enabled:
            return False
        try:
            response = await self._client.get("/api/tags", timeout=5.0)
            response.raise_for_status()
            models = response.json().get("models", [])
        except (httpx.HTTPError, ValueError) as e:
            logger.info("Ollama not available at %s: %s", self.llm_config.ollama_url, e)
            return False
        names = {m.get("name") for m in models if isinstance(m, dict)}
        return self.llm_config.model_fast in names

    def _status_error(self, error: httpx.HTTPStatusError, model: str) -> UpstreamUnavailable:
        """Map an HTTP error status onto the typed error hierarchy."""
        status = error.response.status_code
        logger.error(
            "Ollama API error %s for model '%s' at %s",
            status,
            model,
            self.llm_config.ollama_url,
        )
        if status in (401, 403):
            return LLMAuthError("Authentication failed for the LLM backend", status)
        if status == 429:
            return LLMRateLimitError("LLM backend rate limit reached", status)
        if status == 404:
            return LLMUnavailableError(
                f"The model '{model}' is not installed. Run 'ollama pull {model}' to install it.",
                status,
            )
        return LLMUnavailableError(f"LLM service is experiencing issues (HTTP {status})", status)

    async def aclose(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> OllamaClient:
        """Enter context manager."""
        return self

    async def __aexit__(self, *args) -> None:
        """Exit context manager."""
        await self.aclose()
