"""Command line entry point.

    unified-ci -config config.yaml [-mode local|server|worker] [-verbose]
    unified-ci -help | -version

Flags are accepted with one or two leading dashes.
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from . import user_agent
from .checker.mode import WorkingMode, set_working_mode
from .config.exceptions import ConfigurationError
from .config.loader import load_config, set_config, with_verbose_logging
from .supervisor import StartupError, Supervisor

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unified-ci",
        description="Run code-quality and security checks against pull requests",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("-config", "--config", default="", help="config file")
    parser.add_argument(
        "-mode",
        "--mode",
        default=WorkingMode.LOCAL.value,
        help="working mode: local, server, worker",
    )
    parser.add_argument(
        "-help", "--help", action="store_true", help="show help message"
    )
    parser.add_argument(
        "-verbose", "--verbose", action="store_true", help="show verbose debug log"
    )
    parser.add_argument(
        "-version", "--version", action="store_true", help="show version"
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run unified-ci and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.help:
        print(user_agent() + "\n")
        parser.print_help()
        return 0
    if args.version:
        print(user_agent())
        return 0
    if not args.config:
        print("Please specify a config file", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    try:
        mode = WorkingMode(args.mode)
    except ValueError:
        print(f"Unknown working mode: {args.mode}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logging.basicConfig(
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        logger.critical(f"error: {e}")
        return 1
    if args.verbose:
        config = set_config(with_verbose_logging(config))

    set_working_mode(mode)

    try:
        asyncio.run(Supervisor(config, mode).start())
    except StartupError as e:
        logger.critical(f"error: {e}")
        return 1
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())
