"""
CLI main entry point.
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path

from ..bulk import BulkChunker, BulkProcessor, is_bulk_data
from ..config import Config, create_default_config, load_config
from ..conversation import ConversationSession
from ..extractors import ExtractionOrchestrator
from ..llm import OllamaClient

logger = logging.getLogger(__name__)

CHAT_COMMANDS = "/list  /wait  /reset  /quit"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ledger-chat",
        description="Turn free-form messages and pasted bank statements into transactions",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # chat command
    subparsers.add_parser("chat", help="Interactive conversation")

    # extract command
    extract_parser = subparsers.add_parser(
        "extract", help="Extract transactions from a file (or stdin) as JSON"
    )
    extract_parser.add_argument(
        "input",
        nargs="?",
        type=Path,
        help="Text file to read (default: stdin)",
    )
    extract_parser.add_argument(
        "--reference-date",
        type=date.fromisoformat,
        default=None,
        help="Date relative phrases resolve against, YYYY-MM-DD (default: today)",
    )

    # init-config command
    init_parser = subparsers.add_parser("init-config", help="Write a default config file")
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing config file",
    )

    # check-llm command
    subparsers.add_parser("check-llm", help="Check that the Ollama backend is reachable")

    return parser


def _print_new_messages(session: ConversationSession, seen: int) -> int:
    messages = session.state.messages
    for message in messages[seen:]:
        if message.role == "assistant":
            print(f"\n{message.content}\n")
    return len(messages)


async def _chat_loop(config: Config) -> int:
    async with ConversationSession(config) as session:
        print(f"💬 ledger-chat ({CHAT_COMMANDS})")
        seen = 0
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break

            command = line.strip().lower()
            if command in ("/quit", "/exit"):
                break
            if command == "/wait":
                await session.wait_for_background()
            elif command == "/reset":
                session.reset()
                seen = 0
                print("✓ Conversation reset")
            elif command == "/list":
                for txn in session.store.list():
                    print(
                        f"  {txn.date}  {txn.direction.value:<7}  {txn.amount:>10.2f}  "
                        f"{txn.description}  [{txn.category}]"
                    )
                print(f"\n✓ {len(session.store)} transaction(s)")
            elif command:
                await session.send_message(line)
                snapshot = session.snapshot()
                if snapshot["bulk_running"]:
                    print(f"  ⏳ {snapshot['status']} ({snapshot['progress']}%)")

            seen = _print_new_messages(session, seen)
    return 0


def cmd_chat(config: Config) -> int:
    """Run the interactive conversation."""
    try:
        return asyncio.run(_chat_loop(config))
    except KeyboardInterrupt:
        print()
        return 0


async def _extract(config: Config, text: str, reference: date | None) -> list:
    llm_client = OllamaClient(config.llm) if config.llm.enabled else None
    try:
        orchestrator = ExtractionOrchestrator(llm_client, config.extraction)
        bulk = config.bulk
        if is_bulk_data(text, bulk.threshold_lines, bulk.threshold_length):
            processor = BulkProcessor(orchestrator, BulkChunker(llm_client, bulk), bulk)
            report = await processor.run(text, lambda: [], reference_date=reference)
            for line in report.message.splitlines():
                logger.info(line)
            return report.added
        return await orchestrator.extract(text, reference)
    finally:
        if llm_client is not None:
            await llm_client.aclose()


def cmd_extract(config: Config, input_path: Path | None, reference: date | None) -> int:
    """Extract transactions and print them as a JSON array."""
    if input_path is not None:
        try:
            text = input_path.read_text(encoding="utf-8")
        except OSError as e:
            print(f"❌ Cannot read {input_path}: {e}", file=sys.stderr)
            return 1
    else:
        text = sys.stdin.read()

    transactions = asyncio.run(_extract(config, text, reference))
    print(json.dumps([txn.to_dict() for txn in transactions], indent=2))
    return 0


def cmd_init_config(config_path: Path, force: bool) -> int:
    """Write a default configuration file."""
    if config_path.exists() and not force:
        print(f"❌ {config_path} already exists (use --force to overwrite)")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote {config_path}")
    return 0


async def _check_llm(config: Config) -> bool:
    async with OllamaClient(config.llm) as client:
        return await client.is_available()


def cmd_check_llm(config: Config) -> int:
    """Check the Ollama backend."""
    if not config.llm.enabled:
        print("ℹ️  LLM is disabled (llm.enabled = false); only local extraction runs")
        return 0

    print(f"  → Connecting to Ollama: {config.llm.ollama_url}")
    if not asyncio.run(_check_llm(config)):
        print(f"❌ Ollama not reachable or model {config.llm.model_fast} missing")
        return 1
    print("  ✓ Ollama connection OK")
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config, parsed.force)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "chat":
        return cmd_chat(config)
    elif parsed.command == "extract":
        return cmd_extract(config, parsed.input, parsed.reference_date)
    elif parsed.command == "check-llm":
        return cmd_check_llm(config)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
