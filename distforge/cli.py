from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from distforge import __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="distforge",
        description="Build, test and release source distributions.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--color",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Colourise status lines (default: when stdout is a terminal)",
    )
    parser.add_argument(
        "--debug",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Keep the scratch directory and built archives for inspection",
    )
    parser.add_argument(
        "--verbose",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Log diagnostics to stderr",
    )
    parser.add_argument(
        "--auto-install",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Install missing dependencies instead of warning about them",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("test", help="Stage the project and run its test suite")

    dist = sub.add_parser("dist", help="Build <name>-<version>.tar.gz")
    dist.add_argument("--test", action=argparse.BooleanOptionalAction, default=True)

    install = sub.add_parser("install", help="Build the archive and install it")
    install.add_argument("--test", action=argparse.BooleanOptionalAction, default=False)

    release = sub.add_parser("release", help="Bump the version, build, test and upload")
    release.add_argument("--test", action=argparse.BooleanOptionalAction, default=True)

    sub.add_parser("help", help="Show this message")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.command in (None, "help"):
        parser.print_help()
        return 0

    from distforge.app.orchestrator import Orchestrator
    from distforge.foundation.logging_utils import setup_logger
    from distforge.foundation.reporter import Reporter

    setup_logger(args.verbose)

    options = {}
    if hasattr(args, "test"):
        options["test"] = args.test

    orchestrator = Orchestrator(
        reporter=Reporter(color=args.color),
        debug=args.debug,
        auto_install=args.auto_install,
    )
    return orchestrator.run(args.command, **options)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
