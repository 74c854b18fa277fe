"""
Conversational front end.

Provides:
- ConversationSession: send messages, run bulk pastes in the background
- ConversationRouter: intent classification and handler dispatch
- ConversationState: the single pending clarification and follow-up context
"""

from .intents import Intent, classify_intents
from .router import ConversationRouter, HandlerContext, HandlerResult, HandlerServices
from .session import ConversationSession
from .state import ClarificationMode, ConversationState, Message, Mood

__all__ = [
    "ClarificationMode",
    "ConversationRouter",
    "ConversationSession",
    "ConversationState",
    "HandlerContext",
    "HandlerResult",
    "HandlerServices",
    "Intent",
    "Message",
    "Mood",
    "classify_intents",
]
