"""
Intent classification.

Every turn is classified once into an ordered list of candidate intents.
The router walks that list and hands the message to the first handler that
claims it, so the order here is the dispatch order.
"""

import re
from enum import Enum
from typing import Optional

from ..bulk.chunker import is_bulk_data
from ..config import BulkConfig
from ..inference import (
    BULK_DIRECTION_IN_RE,
    BULK_DIRECTION_OUT_RE,
    has_currency_amount,
    text_looks_like_transaction,
)
from .state import ClarificationMode, ConversationState, Mood


class Intent(str, Enum):
    """What a user message is trying to do."""

    DIRECTION_CLARIFICATION = "direction_clarification"
    DUPLICATE_CONFIRMATION = "duplicate_confirmation"
    CORRECTION_CLARIFICATION = "correction_clarification"
    COUNT_CORRECTION = "count_correction"
    BULK_DIRECTION = "bulk_direction"
    FILL_DETAILS = "fill_details"
    CORRECTION = "correction"
    BULK_EXTRACTION = "bulk_extraction"
    EXTRACTION = "extraction"
    MOOD = "mood"
    NORMAL_RESPONSE = "normal_response"

    @property
    def priority(self) -> int:
        """Lower runs first."""
        return INTENT_PRIORITIES[self]


INTENT_PRIORITIES = {
    Intent.DIRECTION_CLARIFICATION: 10,
    Intent.DUPLICATE_CONFIRMATION: 20,
    Intent.CORRECTION_CLARIFICATION: 25,
    Intent.COUNT_CORRECTION: 40,
    Intent.BULK_DIRECTION: 50,
    Intent.FILL_DETAILS: 60,
    Intent.CORRECTION: 70,
    Intent.BULK_EXTRACTION: 85,
    Intent.EXTRACTION: 90,
    Intent.MOOD: 100,
    Intent.NORMAL_RESPONSE: 999,
}

# Intents that only apply while the matching question is pending
MODE_INTENTS = {
    ClarificationMode.AWAITING_DIRECTION: Intent.DIRECTION_CLARIFICATION,
    ClarificationMode.AWAITING_DUPLICATE_CONFIRMATION: Intent.DUPLICATE_CONFIRMATION,
    ClarificationMode.AWAITING_CORRECTION: Intent.CORRECTION_CLARIFICATION,
    ClarificationMode.AWAITING_COUNT_CORRECTION: Intent.COUNT_CORRECTION,
}

COUNT_CORRECTION_RE = re.compile(
    r"\b(missed|only|should be|there were|count is wrong|more than that|less than that|"
    r"wrong number|missing one|add the other|actually \d+|expected \d+)\b",
    re.IGNORECASE,
)
# Disputes that carry no count; the user is asked how many there were
COUNT_DISPUTE_RE = re.compile(
    r"\b(missed (?:one|some|a few|a couple)|count is wrong|wrong number|missing (?:one|some)|"
    r"more than that|less than that)\b",
    re.IGNORECASE,
)
CORRECTION_RE = re.compile(
    r"\b(actually|meant|instead|rather|sorry|correct|update|change|fix|no it was|no the|"
    r"should (?:be|have been))\b",
    re.IGNORECASE,
)
FILL_DETAILS_KEYWORDS = (
    "categorize",
    "category",
    "fill in",
    "details",
    "date for",
    "missing",
    "what was the",
)

GREETING_RE = re.compile(r"^(hello|hi|hey|yo|greetings|good morning|good afternoon)\b", re.IGNORECASE)
THANKS_RE = re.compile(r"\b(thanks|thank you|thx|ty|cheers|appreciated)\b", re.IGNORECASE)
AFFIRMATION_RE = re.compile(r"^(ok|okay|sounds good|got it|cool|alright|sure)[.!]*$", re.IGNORECASE)
QUESTION_RE = re.compile(r"\b(how are you|what can you do|help)\b", re.IGNORECASE)

FRUSTRATED_RE = re.compile(
    r"\b(mad|angry|annoyed|upset|pissed|frustrated|stupid|wrong)\b", re.IGNORECASE
)
CHATTY_RE = re.compile(r"(\bstory\b|\btesting\b|\bjust chat\b|\bjust saying\b)", re.IGNORECASE)

BULK_DIRECTION_MAX_LENGTH = 50

# A bare count ("there were 3"), not an amount like "$3" or "3.50"
_COUNT_NUMBER_RE = re.compile(r"(?<![$£€¥\d.,])\b(\d{1,3})\b(?![.,]\d)")


def expected_count(message: str) -> Optional[int]:
    """Transaction count mentioned in a message, if any."""
    match = _COUNT_NUMBER_RE.search(message or "")
    if match is None:
        return None
    return int(match.group(1))


def is_count_dispute(message: str) -> bool:
    """A count phrase with a bare count, or an unquantified "you missed some".

    Messages carrying a money amount ("it should be 45 dollars") are corrections.
    """
    if has_currency_amount(message):
        return False
    if COUNT_CORRECTION_RE.search(message) and expected_count(message) is not None:
        return True
    return bool(COUNT_DISPUTE_RE.search(message))


def detect_mood(message: str) -> Mood:
    if FRUSTRATED_RE.search(message):
        return Mood.FRUSTRATED
    if CHATTY_RE.search(message):
        return Mood.CHATTY
    return Mood.NEUTRAL


def is_mood_message(message: str) -> bool:
    text = message.strip()
    return bool(
        GREETING_RE.search(text)
        or THANKS_RE.search(text)
        or AFFIRMATION_RE.search(text)
        or QUESTION_RE.search(text)
    )


def is_bulk_direction(message: str) -> bool:
    if len(message) >= BULK_DIRECTION_MAX_LENGTH:
        return False
    return bool(BULK_DIRECTION_IN_RE.search(message) or BULK_DIRECTION_OUT_RE.search(message))


def classify_intents(
    message: str,
    state: ConversationState,
    bulk_config: Optional[BulkConfig] = None,
) -> list[Intent]:
    """
    Evaluate every intent predicate once.

    Args:
        message: The user message (already stripped)
        state: Conversation state (mode and follow-up context)
        bulk_config: Thresholds deciding what counts as bulk data

    Returns:
        Matching intents sorted by priority; NORMAL_RESPONSE is always last
    """
    bulk_config = bulk_config or BulkConfig()
    lowered = message.lower()
    intents: list[Intent] = []

    mode_intent = MODE_INTENTS.get(state.mode)
    if mode_intent is not None:
        intents.append(mode_intent)

    if (
        mode_intent != Intent.COUNT_CORRECTION
        and state.last_user_message_text
        and state.last_extraction_batch_id
        and is_count_dispute(message)
    ):
        intents.append(Intent.COUNT_CORRECTION)

    if is_bulk_direction(message):
        intents.append(Intent.BULK_DIRECTION)

    if any(keyword in lowered for keyword in FILL_DETAILS_KEYWORDS):
        intents.append(Intent.FILL_DETAILS)

    if CORRECTION_RE.search(message) and (
        re.search(r"\d", message)
        or state.last_correction_txn_id
        or state.last_extraction_batch_id
    ):
        intents.append(Intent.CORRECTION)

    looks_like_transaction = text_looks_like_transaction(message)
    if looks_like_transaction and is_bulk_data(
        message, bulk_config.threshold_lines, bulk_config.threshold_length
    ):
        intents.append(Intent.BULK_EXTRACTION)
    if looks_like_transaction:
        intents.append(Intent.EXTRACTION)

    if is_mood_message(message):
        intents.append(Intent.MOOD)

    intents.append(Intent.NORMAL_RESPONSE)
    intents.sort(key=lambda intent: intent.priority)
    return intents
