#!/usr/bin/env python3
"""
NimbusERP Assistant - Command Line Interface

Commands:
    search      - Look a question up in the knowledge base only
    ask         - Ask a single question (knowledge base, then AI fallback)
    chat        - Start an interactive chat session
    stats       - Show dataset statistics and thresholds
    validate    - Check a dataset file for errors

Usage:
    python -m nimbus_assistant.cli search "Nimbus Core"
    python -m nimbus_assistant.cli ask "How do I close the books?" --role business
    python -m nimbus_assistant.cli chat --role technical
    python -m nimbus_assistant.cli validate data/dataset.json

For help on a specific command:
    python -m nimbus_assistant.cli <command> --help
"""

import argparse
import asyncio
import sys

from nimbus_assistant.config import settings
from nimbus_assistant.knowledge.dataset import DatasetError, load_dataset
from nimbus_assistant.knowledge.aggregator import KnowledgeBase
from nimbus_assistant.logger import init_logging, get_logger
from nimbus_assistant.roles import Role, get_profile

logger = get_logger(__name__)

ROLE_CHOICES = [role.value for role in Role]


def _knowledge_base(path=None) -> KnowledgeBase:
    dataset = load_dataset(path or settings.knowledge.path)
    return KnowledgeBase(dataset, thresholds=settings.knowledge.thresholds)


def cmd_search(args: argparse.Namespace) -> int:
    """
    Search the knowledge base without calling the AI service.
    """
    print(f"\n🔎 Query: {args.query}")
    print("-" * 50)

    try:
        result = _knowledge_base(args.dataset).search(args.query)
    except DatasetError as e:
        print(f"❌ Dataset error: {e}")
        return 1

    if not result.matched:
        print("No confident match in the knowledge base.")
        return 2

    print(f"Source:     {result.source}")
    print(f"Confidence: {result.confidence_percent}%\n")
    print(result.response_text)
    return 0


def cmd_ask(args: argparse.Namespace) -> int:
    """
    Ask a single question through the full pipeline.
    """
    from nimbus_assistant.assistant import create_pipeline

    profile = get_profile(args.role)
    print(f"\n❓ Question ({profile.title}): {args.question}")
    print("-" * 50)

    try:
        pipeline = create_pipeline(dataset_path=args.dataset)
        answer = asyncio.run(pipeline.respond(args.question, role=args.role))
    except (DatasetError, ValueError) as e:
        print(f"❌ Ask failed: {e}")
        logger.exception("Ask error")
        return 1

    print(f"\n💬 Answer:\n{answer.response}")
    if args.verbose:
        print(f"\n📚 Source: {answer.source} ({round(answer.confidence * 100)}%)")
    return 0


def cmd_chat(args: argparse.Namespace) -> int:
    """
    Start an interactive chat session.
    """
    from nimbus_assistant.assistant import create_pipeline

    profile = get_profile(args.role)

    print("\n" + "=" * 60)
    print(f"🤖 NimbusERP Assistant - {profile.title}")
    print("=" * 60)
    print("Type your questions below. Commands:")
    print("  /role <technical|business|customer>  - Switch role")
    print("  /quit                                - Exit chat")
    print("-" * 60)

    try:
        pipeline = create_pipeline(dataset_path=args.dataset)
    except DatasetError as e:
        print(f"❌ Dataset error: {e}")
        return 1

    role = Role.parse(args.role)
    print(f"Bot: {profile.default_message}\n")

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n👋 Goodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() == "/quit":
            print("\n👋 Goodbye!")
            break
        if user_input.lower().startswith("/role"):
            role = Role.parse(user_input[5:].strip(), default=role)
            print(f"🔄 Now answering as {get_profile(role).title}.\n")
            continue

        answer = asyncio.run(pipeline.respond(user_input, role=role))
        print(f"Bot [{answer.source}]: {answer.response}\n")

    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """
    Show dataset statistics.
    """
    print("\n📊 Knowledge Base Statistics")
    print("-" * 50)

    try:
        stats = _knowledge_base(args.dataset).stats()
    except DatasetError as e:
        print(f"❌ Failed to load dataset: {e}")
        return 1

    print("Collections:")
    for name, count in stats["collections"].items():
        print(f"  {name:<26}{count}")

    print("\nThresholds:")
    for name, value in stats["thresholds"].items():
        print(f"  {name:<26}{value}")

    print("\nConfiguration:")
    print(f"  Dataset:                  {args.dataset or settings.knowledge.dataset_path}")
    print(f"  Generation model:         {settings.gemini.model}")
    print(f"  Generation timeout:       {settings.knowledge.generation_timeout}s")
    print(f"  Environment:              {settings.app_env}")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """
    Load a dataset file and report the first error found.
    """
    path = args.path or settings.knowledge.dataset_path
    try:
        dataset = load_dataset(path)
    except DatasetError as e:
        print(f"❌ {e}")
        return 1

    print(f"✅ {path} is valid: {dataset.counts()}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog="nimbus-assistant",
        description="NimbusERP demo chat assistant CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Knowledge base lookup:
    python -m nimbus_assistant.cli search "How do I reset my password?"

  Ask a question:
    python -m nimbus_assistant.cli ask "What does Nimbus HR cost?" --role business

  Interactive chat:
    python -m nimbus_assistant.cli chat --role technical

  Data management:
    python -m nimbus_assistant.cli stats
    python -m nimbus_assistant.cli validate data/dataset.json
        """
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--dataset",
        default=None,
        help="Dataset file to use instead of the configured one"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    search_parser = subparsers.add_parser(
        "search",
        help="Search the knowledge base only"
    )
    search_parser.add_argument("query", help="Question to look up")
    search_parser.set_defaults(func=cmd_search)

    ask_parser = subparsers.add_parser(
        "ask",
        help="Ask a single question"
    )
    ask_parser.add_argument("question", help="Question to ask")
    ask_parser.add_argument(
        "--role", "-r",
        choices=ROLE_CHOICES,
        default=Role.CUSTOMER.value,
        help="Assistant role (default: customer)"
    )
    ask_parser.set_defaults(func=cmd_ask)

    chat_parser = subparsers.add_parser(
        "chat",
        help="Start interactive chat"
    )
    chat_parser.add_argument(
        "--role", "-r",
        choices=ROLE_CHOICES,
        default=Role.CUSTOMER.value,
        help="Assistant role (default: customer)"
    )
    chat_parser.set_defaults(func=cmd_chat)

    stats_parser = subparsers.add_parser(
        "stats",
        help="Show dataset statistics"
    )
    stats_parser.set_defaults(func=cmd_stats)

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a dataset file"
    )
    validate_parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="Dataset file (default: configured dataset)"
    )
    validate_parser.set_defaults(func=cmd_validate)

    return parser


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    init_logging()
    if args.verbose:
        import logging
        logging.getLogger().setLevel(logging.DEBUG)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
