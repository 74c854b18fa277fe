"""Tests for date resolution, direction inference and categorization."""

from datetime import date

import pytest

from conftest import make_transaction

from ledger_chat.categorizer import (
    adjust_category_for_direction,
    apply_direction,
    categorize,
    recategorize,
)
from ledger_chat.dates import is_iso_date, normalize_llm_date, resolve_date
from ledger_chat.inference import (
    explicit_direction_intent,
    has_currency_amount,
    infer_direction,
    text_looks_like_transaction,
)
from ledger_chat.schemas.transaction import (
    CATEGORY_BUSINESS_INCOME,
    CATEGORY_PAYPAL,
    DEFAULT_CATEGORY,
    EXPENSE_CATEGORY,
    UNKNOWN_DATE,
    Direction,
)

REFERENCE = date(2025, 4, 14)  # a Monday


class TestResolveDate:
    """Tests for resolve_date."""

    @pytest.mark.parametrize(
        "phrase,expected",
        [
            ("today", "2025-04-14"),
            ("yesterday", "2025-04-13"),
            ("last Monday", "2025-04-07"),
            ("Monday", "2025-04-14"),
            ("friday", "2025-04-11"),
            ("2025-03-02", "2025-03-02"),
            ("4/1/2025", "2025-04-01"),
            ("4/1", "2025-04-01"),
            ("Apr 10, 2025", "2025-04-10"),
            ("March 3rd", "2025-03-03"),
        ],
    )
    def test_phrases(self, phrase, expected):
        """Relative and absolute phrases resolve against the reference date."""
        assert resolve_date(phrase, REFERENCE) == expected

    def test_unparsable_is_unknown(self):
        """Garbage never turns into a date."""
        assert resolve_date("sometime soon", REFERENCE) == UNKNOWN_DATE
        assert resolve_date("", REFERENCE) == UNKNOWN_DATE
        assert resolve_date("2/30/2025", REFERENCE) == UNKNOWN_DATE

    def test_is_iso_date(self):
        """Only real calendar dates pass."""
        assert is_iso_date("2025-04-14")
        assert not is_iso_date("2025-02-30")
        assert not is_iso_date("04/14/2025")

    def test_normalize_llm_date(self):
        """Model dates are validated, not trusted."""
        assert normalize_llm_date("2025-04-01", REFERENCE) == "2025-04-01"
        assert normalize_llm_date("yesterday", REFERENCE) == "2025-04-13"
        assert normalize_llm_date(None, REFERENCE) == UNKNOWN_DATE


class TestInferDirection:
    """Tests for keyword direction inference."""

    def test_income_keywords(self):
        assert infer_direction("Payment from Acme") == Direction.IN
        assert infer_direction("salary deposit") == Direction.IN

    def test_expense_keywords(self):
        assert infer_direction("Payment to landlord") == Direction.OUT
        assert infer_direction("bought groceries") == Direction.OUT

    def test_type_hint_settles_direction(self):
        """Statement type lines decide on their own."""
        assert infer_direction("STARBUCKS", "Card") == Direction.OUT
        assert infer_direction("Something", "Check Card 1234") == Direction.OUT
        assert infer_direction("PAYPAL TRANSFER", "ACH credit") == Direction.IN

    def test_no_guessing(self):
        """Without keywords the direction stays unknown."""
        assert infer_direction("Amazon") == Direction.UNKNOWN
        assert infer_direction("Cash Redemption", "Other") == Direction.UNKNOWN


class TestTransactionHeuristics:
    """Tests for the cheap gates in front of extraction."""

    def test_currency_amount(self):
        assert has_currency_amount("it was $20")
        assert has_currency_amount("paid 15 dollars")
        assert has_currency_amount("twenty bucks")
        assert not has_currency_amount("there were 3 of them")

    def test_looks_like_transaction(self):
        assert text_looks_like_transaction("I spent $20 at Target")
        assert text_looks_like_transaction("got paid yesterday")
        assert not text_looks_like_transaction("hello there")
        assert not text_looks_like_transaction("")

    def test_explicit_direction_intent(self):
        assert explicit_direction_intent("these are all income") == Direction.IN
        assert explicit_direction_intent("mark all as expenses") == Direction.OUT
        assert explicit_direction_intent("I spent $20") is None


class TestCategorizer:
    """Tests for the rule-based category classifier."""

    def test_description_rules(self):
        assert categorize("PAYPAL TRANSFER PPD ID: X", "ACH credit") == CATEGORY_PAYPAL
        assert categorize("Zelle payment from KAREN M BURRIS", "Zelle credit") == (
            CATEGORY_BUSINESS_INCOME
        )

    def test_card_is_expense(self):
        assert categorize("STARBUCKS", "Card") == EXPENSE_CATEGORY
        assert categorize("Cash Redemption", "Other") == EXPENSE_CATEGORY

    def test_default(self):
        assert categorize("Mystery", "unknown") == DEFAULT_CATEGORY

    def test_adjust_for_direction(self):
        assert adjust_category_for_direction(DEFAULT_CATEGORY, Direction.OUT) == EXPENSE_CATEGORY
        assert adjust_category_for_direction(EXPENSE_CATEGORY, Direction.IN) == DEFAULT_CATEGORY
        assert adjust_category_for_direction(CATEGORY_PAYPAL, Direction.OUT) == CATEGORY_PAYPAL

    def test_apply_direction_reassigns_expense_bucket(self):
        """Income filed under the expense bucket moves back to the default."""
        txn = make_transaction(
            description="Cash Redemption",
            direction=Direction.UNKNOWN,
            category=EXPENSE_CATEGORY,
        )
        updated = apply_direction(txn, Direction.IN)

        assert updated.direction == Direction.IN
        assert updated.category == DEFAULT_CATEGORY
        assert updated.id == txn.id

    def test_apply_direction_noop(self):
        txn = make_transaction(direction=Direction.OUT, category=EXPENSE_CATEGORY)
        assert apply_direction(txn, Direction.OUT) is txn

    def test_recategorize_keeps_specific_category(self):
        txn = make_transaction(
            description="PAYPAL TRANSFER", direction=Direction.IN, category=CATEGORY_PAYPAL
        )
        assert recategorize(txn) is txn
