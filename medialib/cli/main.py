"""Command line entry point for the ``medialib`` tool."""

import argparse
from collections.abc import Sequence

from . import server

# Modules contributing subcommands through an ``add_parser(subparsers)`` hook.
COMMAND_MODULES = [server]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="medialib",
        description="Serve and maintain a media library backed by an object store",
    )
    subparsers = parser.add_subparsers(
        dest="command", metavar="COMMAND", required=True
    )
    for module in COMMAND_MODULES:
        module.add_parser(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
