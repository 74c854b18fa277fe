"""Tests for transaction identity keys and deduplication."""

import doctest
from decimal import Decimal

from conftest import make_transaction

from ledger_chat.schemas import dedupe
from ledger_chat.schemas.dedupe import dedupe_key, dedupe_transactions
from ledger_chat.schemas.transaction import Direction


class TestDedupeKey:
    """Tests for dedupe_key normalization."""

    def test_key_format(self):
        """Key joins date, amount, description and direction."""
        txn = make_transaction(description="  Target ", amount="20")
        assert dedupe_key(txn) == "2025-04-13|20.00|target|OUT"

    def test_whitespace_and_case_ignored(self):
        """Description case and spacing do not change the key."""
        a = make_transaction(description="TRADER   JOES #552")
        b = make_transaction(description="trader joes #552")
        assert dedupe_key(a) == dedupe_key(b)

    def test_amount_normalized(self):
        """20, 20.0 and 20.00 key identically."""
        a = make_transaction(amount="20")
        b = make_transaction(amount="20.00")
        assert dedupe_key(a) == dedupe_key(b)

    def test_id_not_part_of_key(self):
        """Two records with different ids but equal fields share a key."""
        a = make_transaction()
        b = make_transaction()
        assert a.id != b.id
        assert dedupe_key(a) == dedupe_key(b)

    def test_direction_part_of_key(self):
        """Same payment in and out are different transactions."""
        a = make_transaction(direction=Direction.IN)
        b = make_transaction(direction=Direction.OUT)
        assert dedupe_key(a) != dedupe_key(b)

    def test_docstring_example(self):
        results = doctest.testmod(dedupe)
        assert results.attempted > 0
        assert results.failed == 0


class TestDedupeTransactions:
    """Tests for dedupe_transactions."""

    def test_matching_pair_collapses(self):
        """Two candidates with the same key yield one record."""
        a = make_transaction()
        a_prime = make_transaction(description="target")
        result = dedupe_transactions([a, a_prime])

        assert result.unique == [a]
        assert result.duplicates == [a_prime]
        assert result.duplicate_count == 1

    def test_different_amount_kept(self):
        """Differing amounts keep both records."""
        a = make_transaction(amount="20.00")
        b = make_transaction(amount="21.00")
        result = dedupe_transactions([a, b])

        assert result.unique == [a, b]
        assert result.duplicates == []

    def test_existing_records_suppress_candidates(self):
        """Candidates matching stored records are reported as duplicates."""
        stored = make_transaction()
        fresh = make_transaction(description="Walmart", amount="12.00")
        again = make_transaction()

        result = dedupe_transactions([fresh, again], existing=[stored])

        assert result.unique == [fresh]
        assert result.duplicates == [again]

    def test_first_occurrence_wins(self):
        """Order of candidates is preserved and the first duplicate survives."""
        first = make_transaction(notes="first")
        second = make_transaction(notes="second")
        result = dedupe_transactions([first, second])

        assert result.unique[0].notes == "first"

    def test_inputs_not_modified(self):
        """Dedupe does not mutate the candidate list."""
        candidates = [make_transaction(), make_transaction()]
        dedupe_transactions(candidates)
        assert len(candidates) == 2

    def test_amount_type_is_decimal(self):
        """Records keep their Decimal amounts."""
        result = dedupe_transactions([make_transaction(amount="5.5")])
        assert result.unique[0].amount == Decimal("5.5")
