"""
Conversation state (one per session).

Invariant: at most one clarification question is pending at any time. The
state holds a single ``mode`` and a single ``payload``; both are written only
through ``enter_mode()`` / ``clear_mode()``, so entering a new mode always
discards the previous one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from ..schemas.transaction import ExtractionBatch, Transaction

logger = logging.getLogger(__name__)


class ClarificationMode(str, Enum):
    """The single follow-up question the assistant may be waiting on."""

    NONE = "none"
    AWAITING_DIRECTION = "awaiting_direction"
    AWAITING_DUPLICATE_CONFIRMATION = "awaiting_duplicate_confirmation"
    AWAITING_CORRECTION = "awaiting_correction"
    AWAITING_COUNT_CORRECTION = "awaiting_count_correction"


class Mood(str, Enum):
    NEUTRAL = "neutral"
    FRUSTRATED = "frustrated"
    CHATTY = "chatty"
    UNKNOWN = "unknown"


@dataclass
class AwaitingDirection:
    """Stored transactions whose direction the user is asked for."""

    txn_ids: list[str]


@dataclass
class AwaitingDuplicateConfirmation:
    """Extracted records held back because they match stored ones."""

    pending: list[Transaction]


@dataclass
class AwaitingCorrection:
    """A correction that could apply to several transactions."""

    candidate_ids: list[str]
    field: Optional[str]
    value: object
    message: str


@dataclass
class AwaitingCountCorrection:
    """The user disputed the count but did not say how many there were."""

    last_raw_text: str
    batch_id: Optional[str]


ModePayload = Union[
    AwaitingDirection,
    AwaitingDuplicateConfirmation,
    AwaitingCorrection,
    AwaitingCountCorrection,
]

PAYLOAD_TYPES = {
    ClarificationMode.AWAITING_DIRECTION: AwaitingDirection,
    ClarificationMode.AWAITING_DUPLICATE_CONFIRMATION: AwaitingDuplicateConfirmation,
    ClarificationMode.AWAITING_CORRECTION: AwaitingCorrection,
    ClarificationMode.AWAITING_COUNT_CORRECTION: AwaitingCountCorrection,
}


@dataclass
class Message:
    role: str  # "user" | "assistant"
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ConversationState:
    """Everything one conversation remembers between turns."""

    messages: list[Message] = field(default_factory=list)
    is_processing: bool = False
    progress: int = 0
    status: str = ""
    mood: Mood = Mood.NEUTRAL

    # Context for follow-up turns
    last_user_message_text: Optional[str] = None
    last_extraction_batch_id: Optional[str] = None
    last_correction_txn_id: Optional[str] = None
    batches: dict[str, ExtractionBatch] = field(default_factory=dict)

    # Bumped on reset; background work started under an older value is stale
    generation: int = 0

    _mode: ClarificationMode = field(default=ClarificationMode.NONE, repr=False)
    _payload: Optional[ModePayload] = field(default=None, repr=False)
    _attempts: int = field(default=0, repr=False)

    @property
    def mode(self) -> ClarificationMode:
        return self._mode

    @property
    def payload(self) -> Optional[ModePayload]:
        return self._payload

    @property
    def attempts(self) -> int:
        """Unparsable replies received in the current mode."""
        return self._attempts

    def enter_mode(self, mode: ClarificationMode, payload: ModePayload) -> None:
        """Start waiting on a clarification; any other pending one is dropped."""
        expected = PAYLOAD_TYPES.get(mode)
        if expected is None or not isinstance(payload, expected):
            raise ValueError(f"Payload {type(payload).__name__} does not fit mode {mode.value}")
        if self._mode != ClarificationMode.NONE and self._mode != mode:
            logger.debug("Leaving %s for %s", self._mode.value, mode.value)
        self._mode = mode
        self._payload = payload
        self._attempts = 0

    def clear_mode(self) -> None:
        self._mode = ClarificationMode.NONE
        self._payload = None
        self._attempts = 0

    def register_attempt(self) -> int:
        """Count one unparsable reply in the current mode and return the total."""
        self._attempts += 1
        return self._attempts

    def add_message(self, role: str, content: str) -> None:
        if content:
            self.messages.append(Message(role=role, content=content))

    def set_status(self, status: str, progress: Optional[int] = None) -> None:
        self.status = status
        if progress is not None:
            self.progress = max(0, min(100, progress))

    def remember_batch(self, batch: ExtractionBatch) -> None:
        self.batches[batch.batch_id] = batch
        self.last_extraction_batch_id = batch.batch_id

    def last_batch(self) -> Optional[ExtractionBatch]:
        if self.last_extraction_batch_id is None:
            return None
        return self.batches.get(self.last_extraction_batch_id)

    def history(self, limit: int) -> list[dict]:
        """The last ``limit`` messages in chat-API form."""
        if limit <= 0:
            return []
        return [message.to_dict() for message in self.messages[-limit:]]

    def reset(self) -> None:
        """Forget the conversation and invalidate in-flight background work."""
        self.messages.clear()
        self.is_processing = False
        self.progress = 0
        self.status = ""
        self.mood = Mood.NEUTRAL
        self.last_user_message_text = None
        self.last_extraction_batch_id = None
        self.last_correction_txn_id = None
        self.batches.clear()
        self.clear_mode()
        self.generation += 1
