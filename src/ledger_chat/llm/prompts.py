"""Prompt templates for LLM-assisted extraction and conversation.

Prompts are versioned so cached extraction results can be invalidated when
the wording changes. Every JSON-producing prompt has a matching parser in
``ledger_chat.llm.parsing``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..schemas.transaction import CATEGORIES

if TYPE_CHECKING:
    from ..schemas.transaction import Transaction

# Prompt version for cache invalidation
# v1.1: correction prompt returns field_updates instead of target_field/new_value
PROMPT_VERSION = "v1.1"


def _truncate(text: str, max_chars: int) -> str:
    if len(text) > max_chars:
        return text[:max_chars] + "\n... (truncated)"
    return text


@dataclass
class SystemPrompt:
    """System message for free-form conversation turns."""

    version: str = PROMPT_VERSION

    template: str = """You are a friendly, attentive, and highly capable financial assistant. Your primary goal is to extract and organize transaction data (Date, Description, Amount, Type, Direction IN/OUT) from user input through natural conversation.
(Today's date is {today})

**CORE RESPONSIBILITIES:**
1. Extract ALL transactions mentioned in a message, not just the first one.
2. Maintain a focused conversation about financial transactions.
3. Acknowledge and remember context from earlier in the conversation.

**DIRECTION INFERENCE:**
- Prioritize clear indicators like "spent", "bought", "paid", "received", "earned"
- Only mark money as "in" when it has DEFINITELY been received; "waiting for a refund" is not income
- DEFAULT TO "unknown" direction when genuinely unclear – NEVER guess

**CURRENCY HANDLING:**
- Recognize currency symbols and ISO 4217 codes; do NOT convert amounts.
- Assume "USD" when no currency is mentioned.

**REFERENCE RESOLUTION:**
- When the user refers to a past transaction vaguely, ask which transaction they mean.
- For correction requests, ask specifically what needs to be corrected.

Keep replies short and conversational. Never invent transactions the user did not mention."""

    def format(self, today: str) -> str:
        """Render the system message for a given reference date (YYYY-MM-DD)."""
        return self.template.format(today=today)


@dataclass
class ExtractionPrompt:
    """Prompt for conversational text ("I spent $20 at Target yesterday")."""

    version: str = PROMPT_VERSION

    system_prompt: str = """You extract financial transactions from chat messages.
Output ONLY valid JSON and nothing else."""

    user_template: str = """Extract transactions from the user's input.
Title-case each "description" field (e.g. "Whole Foods").
Convert spelled-out amounts (e.g. "twenty bucks") into numbers (e.g. 20.00).
Today's date is {today}.

If the user split a bill and their own share is unclear, do NOT extract that transaction.

Return a JSON object {{"transactions": [...]}}. Each transaction has:
1. date: "YYYY-MM-DD" or "unknown". Resolve "today", "yesterday", "last Monday" against {today}.
2. description: What the transaction was for, in Title Case.
3. details: Extra context, or "".
4. type: Payment channel if stated (Card, Cash, Transfer, Check), else "unknown".
5. amount: Positive number without symbols.
6. currency: ISO 4217 code; "USD" if not specified.
7. direction: "in" for money received, "out" for money spent, "unknown" if unclear. Do NOT guess.

Create a separate object for EACH distinct transaction mentioned.
If there are none, return {{"transactions": []}}.

Text to Analyze:
\"\"\"
{text}
\"\"\""""

    def format_user_message(self, text: str, today: str) -> str:
        return self.user_template.format(text=text, today=today)


@dataclass
class StatementExtractionPrompt:
    """Prompt for pasted bank-statement text (date / description / type / amount blocks)."""

    version: str = PROMPT_VERSION
    max_chars: int = 100000

    system_prompt: str = """You extract transactions from bank statement text.
Provide ONLY the raw JSON object. No introductory text, explanations, or summaries."""

    user_template: str = """Extract ALL financial transactions from the following bank statement text.
Today's date is {today}.

Each transaction generally looks like:
- Line 1: Date (e.g. "Apr 12, 2025" or "04/12/2025")
- Line(s) 2+: Description (merchant name, transfer details, PPD ID, etc.)
- Penultimate line (often): Transaction type (e.g. "ACH credit", "Card", "Zelle credit", "Withdrawal")
- Last line: Amount (e.g. "$599.52")

Text to Analyze:
```
{text}
```

Return a JSON object with a "transactions" array. For EACH transaction:
- date: "YYYY-MM-DD"
- description: The primary description line(s)
- details: Secondary details such as PPD IDs, otherwise ""
- type: The transaction type ("ACH", "Zelle", "Card", "Deposit", ...)
- amount: Number WITHOUT the "$" sign, greater than 0
- currency: ISO 4217 code, "USD" if not shown
- direction: "in" for credits/deposits, "out" for debits/withdrawals/card purchases. If the direction cannot be reliably determined, use "unknown". Do NOT guess.

EXAMPLE:
Input:
Apr 12, 2025
PAYPAL TRANSFER PPD ID: PAYPALSD11
ACH credit
$599.52

Output:
{{"transactions": [{{"date": "2025-04-12", "description": "PAYPAL TRANSFER", "details": "PPD ID: PAYPALSD11", "type": "ACH", "amount": 599.52, "currency": "USD", "direction": "in"}}]}}

If no transactions are found, return {{"transactions": []}}."""

    def format_user_message(self, text: str, today: str) -> str:
        return self.user_template.format(text=_truncate(text, self.max_chars), today=today)


@dataclass
class ChunkingPrompt:
    """Prompt asking the model to split bulk text into transaction blocks.

    The model must copy text verbatim; it never extracts fields here.
    """

    version: str = PROMPT_VERSION

    system_prompt: str = """You split raw financial text into blocks, one block per transaction.
Your response MUST BEGIN IMMEDIATELY with the opening brace '{'."""

    user_template: str = """Analyze the following text and split it into chunks, where each chunk
contains the complete text of exactly one transaction (or a small group of lines
that clearly belong together).

Rules:
1. Copy text VERBATIM. Do not summarize, reformat or drop lines that belong to a transaction.
2. Keep date headers with the transaction(s) that follow them.
3. Ignore page headers, balances and other text that is not a transaction.

Return JSON of the form:
{{"transaction_chunks": ["<chunk 1 text>", "<chunk 2 text>"]}}

Text:
```
{text}
```"""

    def format_user_message(self, text: str, max_chars: int = 15000) -> str:
        return self.user_template.format(text=_truncate(text, max_chars))


@dataclass
class CorrectionPrompt:
    """Prompt for parsing a user's correction of one transaction."""

    version: str = PROMPT_VERSION

    system_prompt: str = """You are a precise assistant helping to correct transaction details.
Output ONLY the requested JSON object."""

    user_template: str = """The user is likely trying to correct this transaction:

- Date: {date}
- Description: {description}
- Amount: {amount}
- Category: {category}
- Type: {type}
- Direction: {direction}
- Notes: {notes}

User Message: "{message}"

Decide whether the message requests a correction and which fields change.
Valid fields: "amount", "date", "description", "category", "direction", "notes".
- amount: positive number (e.g. 25.50)
- date: "YYYY-MM-DD"; resolve relative dates against today ({today})
- category: exactly one of [{categories}]; leave it out if the user names something else
- direction: "in" or "out"

Return:
{{"correction_possible": true, "field_updates": {{"amount": 15.75}}}}

If the message is not a correction, return:
{{"correction_possible": false, "field_updates": {{}}}}"""

    def format_user_message(self, message: str, txn: Transaction, today: str) -> str:
        """Format the user message with the target transaction.

        Args:
            message: The user's correction message.
            txn: Transaction the correction most likely refers to.
            today: Reference date (YYYY-MM-DD).

        Returns:
            Formatted user message.
        """
        return self.user_template.format(
            date=txn.date,
            description=txn.description,
            amount=f"{txn.amount:.2f}",
            category=txn.category,
            type=txn.type,
            direction=txn.direction.value.lower(),
            notes=txn.notes or "(none)",
            message=message,
            today=today,
            categories=", ".join(CATEGORIES),
        )


@dataclass
class CountCorrectionPrompt:
    """Re-extraction prompt used when the user says the count was wrong."""

    version: str = PROMPT_VERSION

    user_template: str = """The user pasted the text below and says the transaction count was wrong.
User correction: "{correction}"
{expected_line}
Re-read the text carefully and extract EVERY transaction. Apply the same rules as before.

Original text:
\"\"\"
{text}
\"\"\""""

    def format_text(self, original_text: str, correction: str, expected_count: int | None) -> str:
        """Build the combined text handed back to the extractor."""
        expected_line = ""
        if expected_count is not None:
            expected_line = f"The user expects {expected_count} transaction(s).\n"
        return self.user_template.format(
            text=original_text,
            correction=correction,
            expected_line=expected_line,
        )


# Default prompt instances
SYSTEM_PROMPT = SystemPrompt()
EXTRACTION_PROMPT = ExtractionPrompt()
STATEMENT_EXTRACTION_PROMPT = StatementExtractionPrompt()
CHUNKING_PROMPT = ChunkingPrompt()
CORRECTION_PROMPT = CorrectionPrompt()
COUNT_CORRECTION_PROMPT = CountCorrectionPrompt()


def get_system_prompt(today: str) -> str:
    """Convenience accessor for the conversation system message."""
    return SYSTEM_PROMPT.format(today)
