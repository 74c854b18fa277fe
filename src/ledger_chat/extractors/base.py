"""
Base extractor interface.
"""

from abc import ABC, abstractmethod
from datetime import date

from ..schemas.transaction import Transaction


class BaseExtractor(ABC):
    """
    Base class for local (deterministic) extractors.

    Each extractor implements a specific strategy:
    - Pasted bank statement blocks
    - Conversational sentences ("I spent $20 at Target")
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Extractor name for logging."""
        pass

    @property
    @abstractmethod
    def priority(self) -> int:
        """
        Priority for extractor selection.
        Higher = more trusted, tried first.
        """
        pass

    @abstractmethod
    def can_extract(self, text: str) -> bool:
        """
        Check if this extractor should be attempted on ``text``.

        Args:
            text: Raw user text

        Returns:
            True if this extractor should be attempted
        """
        pass

    @abstractmethod
    def extract(self, text: str, reference: date) -> list[Transaction]:
        """
        Extract transactions from text.

        Args:
            text: Raw user text
            reference: Date that relative phrases ("yesterday") resolve against

        Returns:
            Extracted transactions (possibly empty); never None
        """
        pass
