"""
Conversation handlers, one per intent.

Every handler takes a HandlerContext and returns a HandlerResult; none of
them writes to the transaction store.
"""

from ..intents import Intent
from .chat import handle_mood, handle_normal_response
from .clarification import (
    handle_correction_clarification,
    handle_direction_clarification,
    handle_duplicate_confirmation,
)
from .correction import handle_correction, handle_fill_details
from .extraction import (
    handle_bulk_direction,
    handle_bulk_extraction,
    handle_count_correction,
    handle_extraction,
)

HANDLERS = {
    Intent.DIRECTION_CLARIFICATION: handle_direction_clarification,
    Intent.DUPLICATE_CONFIRMATION: handle_duplicate_confirmation,
    Intent.CORRECTION_CLARIFICATION: handle_correction_clarification,
    Intent.COUNT_CORRECTION: handle_count_correction,
    Intent.BULK_DIRECTION: handle_bulk_direction,
    Intent.FILL_DETAILS: handle_fill_details,
    Intent.CORRECTION: handle_correction,
    Intent.BULK_EXTRACTION: handle_bulk_extraction,
    Intent.EXTRACTION: handle_extraction,
    Intent.MOOD: handle_mood,
    Intent.NORMAL_RESPONSE: handle_normal_response,
}

__all__ = [
    "HANDLERS",
    "handle_bulk_direction",
    "handle_bulk_extraction",
    "handle_correction",
    "handle_correction_clarification",
    "handle_count_correction",
    "handle_direction_clarification",
    "handle_duplicate_confirmation",
    "handle_extraction",
    "handle_fill_details",
    "handle_mood",
    "handle_normal_response",
]
