from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from carefollow.cli.commands import (
    assess_cmd,
    cases_cmd,
    init_cmd,
    otp_cmd,
    prescriptions_cmd,
    web_cmd,
)
from carefollow.cli.context import CLIContext
from carefollow.core.config import load_paths, load_settings
from carefollow.core.errors import CareFollowError
from carefollow.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="carefollow",
        description="carefollow CLI: patient follow-up and adverse event collection",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root to use for .carefollow data (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    init_cmd.register(subparsers)
    prescriptions_cmd.register(subparsers)
    cases_cmd.register(subparsers)
    assess_cmd.register(subparsers)
    otp_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    paths = load_paths(args.project_root)
    ctx = CLIContext(paths=paths, console=console, settings=load_settings())

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args, ctx)
    except CareFollowError as exc:
        logger.error(str(exc))
        return 1
