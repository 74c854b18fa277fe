"""
User-facing reply texts.

Canned assistant messages shared by the handlers, the session and the error
middleware.
"""

from ..errors import (
    LLMAuthError,
    LLMRateLimitError,
    LLMTimeoutError,
    LLMUnavailableError,
    MalformedResponse,
    UpstreamUnavailable,
)
from ..schemas.transaction import Direction, Transaction

BUSY = "I'm still working on the previous request. Please wait."
BULK_BUSY = "I'm still working on the previous batch. Please wait."
BULK_STARTED = (
    "That looks like a lot of data! I'll process it in the background. "
    "You can monitor the progress below."
)

# Extraction
ALREADY_PROCESSED = "It looks like I've already processed that exact text."
NOTHING_FOUND = "I looked through that text but couldn't find any clear transactions to add."

# Direction clarification
DIRECTION_REPROMPT = (
    "Sorry, I didn't quite catch that. Are these generally 'in' (income/deposits) "
    "or 'out' (expenses/payments)?"
)
DIRECTION_CANCELLED = "Okay, I'll leave the direction of those transactions as unknown for now."
NO_TRANSACTIONS_FOR_DIRECTION = (
    "There are no transactions recorded yet to apply that direction to."
)

# Duplicate confirmation
DUPLICATE_REPROMPT = (
    "Sorry, I need a clear 'yes' or 'no'. Should I add the duplicate transaction(s)?"
)
DUPLICATES_SKIPPED = "Okay, I won't add the duplicate transaction(s)."

# Correction
CORRECTION_NOTHING_DETECTED = (
    "I didn't detect any specific correction in your message. "
    "What would you like to change about this transaction?"
)
CORRECTION_INVALID = (
    "Sorry, I couldn't apply that correction. Could you try phrasing it differently?"
)
CORRECTION_NOT_FOUND = "Sorry, I couldn't find the transaction you wanted to correct anymore."
CORRECTION_REPROMPT = (
    "Sorry, I couldn't tell which one you meant. Please reply with its number from the list."
)
CORRECTION_CANCELLED = "Okay, I won't change anything."

# Count correction
COUNT_QUESTION = "How many transactions were there?"
COUNT_NOTHING_NEW = (
    "I re-analyzed the text but didn't find any additional transactions. "
    "Could you point out which ones are missing?"
)

# Fill details
FILL_NO_TRANSACTIONS = "I don't have any transactions recorded yet to fill in details for."
FILL_UNSUPPORTED = (
    "Sorry, I can't automatically fill in those specific details just yet. "
    "You can click on a transaction to edit it manually."
)
FILL_NOTHING_TO_CATEGORIZE = "All of your transactions already have a category."

# Clarification cap
MOVE_ON = "I still couldn't work that out, so let's move on. You can edit those transactions manually."

# Normal response
EMPTY_CHAT_REPLY = "Sorry, I'm not sure how to respond to that."
OFFLINE_CHAT_REPLY = (
    "I can record transactions for you. Tell me something like "
    "\"I spent $20 at Target yesterday\" or paste your bank statement."
)
DEFAULT_ERROR = (
    "I'm having trouble processing that. Please try again in a moment or rephrase your "
    "message with simpler language."
)

# Mood
GREETING = "Hello there! How can I help you with your transactions today?"
THANKS = "You're welcome!"
AFFIRMATION = "Okay."
CAPABILITIES = (
    "I'm an AI assistant designed to help you extract and organize transaction data. "
    "Just paste your transaction data or tell me about your spending!"
)


def direction_label(direction: Direction) -> str:
    if direction == Direction.IN:
        return "income/deposits"
    return "expenses/payments"


def fallback_response(error: Exception | None = None) -> str:
    """Map an error onto a safe conversational reply."""
    if error is None:
        return DEFAULT_ERROR
    if isinstance(error, LLMAuthError):
        return (
            "I can't connect to my AI services due to an authentication issue. "
            "Please check your API configuration."
        )
    if isinstance(error, LLMRateLimitError):
        return "I've reached my usage limit. Please try again in a moment."
    if isinstance(error, (LLMUnavailableError, LLMTimeoutError)):
        return (
            "I'm currently having trouble connecting to the local Ollama AI service. "
            "Please ensure Ollama is running and the configured model is available."
        )
    if isinstance(error, (UpstreamUnavailable, MalformedResponse)):
        return DEFAULT_ERROR
    return f"Sorry, an error occurred: {error}. Please try again."


def added_message(count: int) -> str:
    return f"Added {count} transaction(s). You can see them in the list now."


def direction_question(count: int) -> str:
    subject = "this transaction is" if count == 1 else f"these {count} transactions are"
    return (
        f"I couldn't tell whether {subject} money coming in or going out. "
        "Are they 'in' (income/deposits) or 'out' (expenses/payments)?"
    )


def duplicate_question(count: int) -> str:
    return (
        f"{count} transaction(s) look like ones I've already recorded. "
        "Should I add them again? (yes/no)"
    )


def correction_candidates(transactions: list[Transaction]) -> str:
    """Numbered list used when a correction could apply to several transactions."""
    lines = ["Which transaction did you mean?"]
    for i, txn in enumerate(transactions, 1):
        lines.append(f"{i}. {txn.date}: {txn.description} (${txn.amount:,.2f})")
    return "\n".join(lines)
