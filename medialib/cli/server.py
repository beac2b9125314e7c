"""Server CLI commands."""

import asyncio
import json
import logging
import sys

from medialib.server.config import ServerConfig
from medialib.server.constants import BucketContext

_LOGGER = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def subcommand_serve(args) -> None:
    """Handler for serve subcommand."""
    from medialib.server import app

    app.run(args)


async def async_reconcile(config: ServerConfig, buckets: list[BucketContext], fix: bool) -> bool:
    """Run a reconciliation sweep and print each report as JSON."""
    from medialib.server.app import create_media_library, create_object_store
    from medialib.server.db.session import DatabaseSessionManager

    session_manager = DatabaseSessionManager(config.db_url)
    library = create_media_library(config, session_manager, create_object_store(config))
    ok = True
    try:
        await session_manager.create_all()
        for bucket in buckets:
            report = await library.reconcile(bucket, fix=fix)
            print(json.dumps(report.to_dict(), indent=2))
            ok = ok and report.success
    finally:
        await library.close()
        await session_manager.close()
    return ok


def subcommand_reconcile(args) -> None:
    """Handler for reconcile subcommand."""
    setup_logging(args.verbose)
    config = ServerConfig.load(args.config)
    if args.bucket:
        buckets = [BucketContext.from_value(args.bucket)]
    else:
        buckets = list(BucketContext)
    if not asyncio.run(async_reconcile(config, buckets, args.fix)):
        _LOGGER.error("Reconciliation failed")
        sys.exit(1)


def add_parser(subparsers):
    # 'serve' subcommand
    parser_serve = subparsers.add_parser("serve", help="run the media library server")
    parser_serve.add_argument("--config", type=str, help="path to a YAML config file")
    parser_serve.add_argument("--host", type=str, help="address to bind to")
    parser_serve.add_argument("--port", type=int, help="port to listen on")
    parser_serve.set_defaults(func=subcommand_serve)

    # 'reconcile' subcommand
    parser_reconcile = subparsers.add_parser(
        "reconcile", help="correlate stored objects with metadata rows"
    )
    parser_reconcile.add_argument("--config", type=str, help="path to a YAML config file")
    parser_reconcile.add_argument(
        "--bucket",
        choices=[b.value for b in BucketContext],
        help="only check this bucket context",
    )
    parser_reconcile.add_argument(
        "--fix",
        action="store_true",
        help="delete dangling metadata rows and orphan favorites",
    )
    parser_reconcile.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging"
    )
    parser_reconcile.set_defaults(func=subcommand_reconcile)
