"""Test fixtures and utilities."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from ledger_chat.config import Config
from ledger_chat.conversation import ConversationSession
from ledger_chat.schemas.transaction import Direction, Transaction
from ledger_chat.store import TransactionStore

REFERENCE_DATE = date(2025, 4, 14)

SAMPLE_CONVERSATIONAL_TEXT = (
    "I spent $20 at Target yesterday and got $500 from Acme Corp last Monday"
)

SAMPLE_UNKNOWN_BLOCK = """Apr 10, 2025
Cash Redemption
Other
$25.00"""

# Ten statement blocks; directions settle from the type lines
SAMPLE_STATEMENT_TEXT = """Apr 1, 2025
PAYPAL TRANSFER PPD ID: PAYPALSD11
ACH credit
$599.52

Apr 2, 2025
STARBUCKS STORE 1234
Card
$6.45

Apr 3, 2025
Zelle payment from KAREN M BURRIS
Zelle credit
$250.00

Apr 4, 2025
SHELL OIL 5744
Card
$41.20

Apr 5, 2025
Coinbase Inc. PPD ID: 9000
ACH credit
$1,200.00

Apr 6, 2025
TRADER JOES #552
Card
$87.13

Apr 7, 2025
REMOTE ONLINE DEPOSIT
ACH credit
$300.00

Apr 8, 2025
NETFLIX.COM
Card
$15.49

Apr 9, 2025
YC RESEARCH PPD ID: 4410
ACH credit
$75.00

Apr 10, 2025
SAFEWAY #1711
Card
$52.10
"""


def make_transaction(
    description: str = "Target",
    amount: str = "20.00",
    txn_date: str = "2025-04-13",
    direction: Direction = Direction.OUT,
    **kwargs,
) -> Transaction:
    """Build a transaction with sensible defaults."""
    return Transaction(
        date=txn_date,
        description=description,
        amount=Decimal(amount),
        direction=direction,
        **kwargs,
    )


@pytest.fixture
def reference_date() -> date:
    return REFERENCE_DATE


@pytest.fixture
def config() -> Config:
    """Default config with the LLM disabled and no pause between batches."""
    cfg = Config()
    cfg.bulk.batch_pause_seconds = 0
    return cfg


@pytest.fixture
def store() -> TransactionStore:
    return TransactionStore()


@pytest.fixture
def session(config, store) -> ConversationSession:
    """Session pinned to the reference date, local extraction only."""
    return ConversationSession(config, store=store, today=lambda: REFERENCE_DATE)


@pytest.fixture
def mock_llm() -> MagicMock:
    """An enabled LLM client whose calls are AsyncMocks."""
    client = MagicMock()
    client.is_enabled = True
    client.chat = AsyncMock(return_value="Hello!")
    client.generate_json = AsyncMock(return_value='{"transactions": []}')
    client.aclose = AsyncMock()
    return client
