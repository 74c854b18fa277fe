"""
CLI runner module.

Provides commands:
- chat: Interactive conversation
- extract: Transactions from a file or stdin as JSON
- init-config: Write a default config file
- check-llm: Verify the Ollama backend
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
