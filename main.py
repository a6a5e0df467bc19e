#!/usr/bin/env python3
"""
ElizaBot - Main Entry Point
===========================

Command-line interface for chatting with the rule-based engine.

Usage:
    python main.py                          # Interactive chat
    python main.py --seed 1234              # Reproducible chat
    python main.py --say "I remember my childhood" "bye"
    python main.py --script my_script.yaml  # Custom rule script
    python main.py --write-config PATH      # Write default config
"""

import sys
import argparse
import random
import uuid
from pathlib import Path
from typing import List, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from core.config import Config, load_config, save_config
from core.exceptions import ElizaError
from core.logging import setup_logging, get_logger, set_session
from eliza.engine import ElizaEngine
from eliza.random_source import SeededRandom
from eliza.script import load_script

logger = get_logger("main")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="ElizaBot - rule-based conversational response engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                            Chat interactively
  python main.py --seed 42                  Chat with a reproducible sequence
  python main.py --say "Hello" "bye"        Print replies and exit
  python main.py --write-config cfg.yaml    Write the default configuration
        """
    )

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--say",
        nargs="+",
        metavar="TEXT",
        help="Reply to each TEXT in turn and exit"
    )
    mode_group.add_argument(
        "--write-config",
        type=str,
        metavar="PATH",
        help="Write the effective configuration to PATH and exit"
    )

    parser.add_argument(
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--script",
        type=str,
        metavar="PATH",
        help="Rule script (YAML); defaults to the bundled doctor script"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the reproducible random source"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log rule matches"
    )

    return parser.parse_args(argv)


def build_engine(config: Config) -> ElizaEngine:
    """
    Load the configured script and start a conversation.

    Raises:
        ElizaError: If the script cannot be loaded or compiled
    """
    script = load_script(config.script.path or None)

    if config.script.seed is not None:
        random_func = SeededRandom(config.script.seed)
    else:
        random_func = random.random

    return ElizaEngine.from_script(script, random_func, config.engine)


def run_once(engine: ElizaEngine, messages: List[str]) -> None:
    """Print one reply per message, stopping at a quit phrase."""
    for message in messages:
        print(f"> {message}")
        print(engine.transform(message))
        if engine.quit:
            break


def run_chat(engine: ElizaEngine) -> None:
    """Interactive loop until a quit phrase or end of input."""
    print(engine.get_initial())

    while True:
        try:
            line = input("> ")
        except EOFError:
            print()
            print(engine.get_final())
            return

        print(engine.transform(line))
        if engine.quit:
            return


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)

        # Command-line overrides
        if args.script:
            config.script.path = args.script
        if args.seed is not None:
            config.script.seed = args.seed
        if args.debug:
            config.engine.debug = True
            config.logging.level = "DEBUG"
        config.validate()

        setup_logging(
            log_dir=config.logging.log_dir or None,
            log_level=config.logging.level,
            json_format=config.logging.json_format,
        )

        if args.write_config:
            path = save_config(config, args.write_config)
            print(f"Configuration written to {path}")
            return 0

        engine = build_engine(config)
        set_session(uuid.uuid4().hex[:8])
        logger.info("Session started", extra={"trace": {"seed": config.script.seed}})

        if args.say:
            run_once(engine, args.say)
        else:
            run_chat(engine)

        return 0

    except ElizaError as e:
        print(f"\nError: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
