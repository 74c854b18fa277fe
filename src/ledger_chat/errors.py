"""
Exception hierarchy.

Upstream and malformed-response errors are recovered at the extraction
boundary or turned into a conversational reply by the handlers; they never
escape a user turn.
"""


class LedgerChatError(Exception):
    """Base exception for ledger-chat errors."""

    pass


class UpstreamUnavailable(LedgerChatError):
    """The LLM backend could not serve the request."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class LLMAuthError(UpstreamUnavailable):
    """Backend rejected our credentials (401/403)."""

    pass


class LLMRateLimitError(UpstreamUnavailable):
    """Backend is throttling us (429)."""

    pass


class LLMTimeoutError(UpstreamUnavailable):
    """No response within the configured timeout."""

    pass


class LLMUnavailableError(UpstreamUnavailable):
    """Backend unreachable, disabled, or answering with 5xx."""

    pass


class MalformedResponse(LedgerChatError):
    """LLM output was empty, not JSON, or failed schema validation."""

    def __init__(self, message: str, raw: str | None = None):
        self.raw = raw
        super().__init__(message)


class NoDataFound(LedgerChatError):
    """A strategy ran to completion but found no transactions."""

    pass


class AmbiguousInput(LedgerChatError):
    """Data was found but a required field cannot be determined."""

    def __init__(self, message: str, field: str, candidate_ids: list[str] | None = None):
        self.field = field
        self.candidate_ids = candidate_ids or []
        super().__init__(message)
