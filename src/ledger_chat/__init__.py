"""
Conversational transaction capture.

Turns free-form messages and pasted bank statements into structured
transaction records through a multi-turn dialogue that asks clarifying
questions, applies corrections, and processes large pastes in batches.
"""

__version__ = "0.1.0"
