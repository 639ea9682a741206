"""
Command line entry point.

    skywrite start
    skywrite database insert-posts URL[,URL...]
    skywrite database remove-posts URL[,URL...]
    skywrite database export-posts
"""
import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional
from urllib.parse import urlparse

from core.errors import DuplicateKeyError
from services.config import Config, load_config
from services.logging import setup_logging
from services.ledger import Ledger
from delivery.base import Publisher
from delivery.bluesky import BlueskyPublisher
from delivery.file_delivery import FilePublisher
from workflows.orchestrator import PollingOrchestrator, create_pollers_from_config

logger = logging.getLogger(__name__)


def _url_list(value: str) -> List[str]:
    """Parse a comma-separated list of http(s) urls."""
    urls = []
    for raw in value.split(","):
        url = raw.strip()
        if not url:
            continue
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise argparse.ArgumentTypeError(f"invalid url: {url}")
        urls.append(url)
    return urls


def _ensure_parent_dir(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _open_ledger(args: argparse.Namespace) -> Ledger:
    path = args.database_path or os.getenv("DATABASE_PATH") or load_config(args.config).DATABASE_PATH
    _ensure_parent_dir(path)
    return Ledger(path)


async def _create_publisher(config: Config) -> Publisher:
    if config.DRY_RUN:
        logger.warning("Dry run enabled, posts are written to output/posts.jsonl")
        return FilePublisher()

    if not config.BLUESKY_IDENTIFIER or not config.BLUESKY_PASSWORD:
        raise ValueError("SKYWRITE_APP_IDENTIFIER and SKYWRITE_APP_PASSWORD must be set")

    return await BlueskyPublisher.create(
        service=config.BLUESKY_SERVICE,
        data_path=config.DATA_PATH,
        identifier=config.BLUESKY_IDENTIFIER,
        password=config.BLUESKY_PASSWORD,
        disable_comments=config.DISABLE_POST_COMMENTS,
    )


async def start(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    if args.database_path:
        config.DATABASE_PATH = args.database_path
    if args.data_path:
        config.DATA_PATH = args.data_path
    logging.getLogger().setLevel(config.LOG_LEVEL)

    os.makedirs(config.DATA_PATH, exist_ok=True)
    _ensure_parent_dir(config.DATABASE_PATH)

    ledger = Ledger(config.DATABASE_PATH)
    await ledger.initialize()

    publisher = await _create_publisher(config)
    pollers = create_pollers_from_config(config, ledger, publisher)
    if not pollers:
        logger.error("No enabled sources configured")
        return 1

    orchestrator = PollingOrchestrator(
        pollers,
        restart_failed_sources=config.RESTART_FAILED_SOURCES,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.stop)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform, Ctrl+C still terminates the process
            pass

    errors = await orchestrator.run()
    return 1 if errors else 0


async def insert_posts(args: argparse.Namespace) -> int:
    ledger = _open_ledger(args)
    for url in args.urls:
        try:
            await ledger.record(url)
            logger.info(f"Marked {url} as already posted")
        except DuplicateKeyError:
            logger.info(f"{url} is already marked as posted")
    return 0


async def remove_posts(args: argparse.Namespace) -> int:
    ledger = _open_ledger(args)
    for url in args.urls:
        if await ledger.remove(url):
            logger.info(f"Removed {url} from already posted list")
        else:
            logger.info(f"{url} is not marked as posted")
    return 0


async def export_posts(args: argparse.Namespace) -> int:
    ledger = _open_ledger(args)
    posts = await ledger.export_all()
    if posts is None:
        logger.error("There are no posts saved in the database")
        return 1
    print(",".join(posts))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skywrite",
        description="Post new news and feed entries to Bluesky",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yml (default: $SKYWRITE_CONFIG or resources/config.yml)",
    )
    parser.add_argument(
        "--database-path",
        default=None,
        help="Path to the sqlite database holding already posted urls",
    )
    parser.add_argument(
        "--data-path",
        default=None,
        help="Directory for persistent data such as the cached Bluesky session",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    start_parser = commands.add_parser("start", help="Start the bot and check sources on an interval")
    start_parser.set_defaults(handler=start)

    database_parser = commands.add_parser("database", help="Maintenance actions on the posted urls database")
    database_commands = database_parser.add_subparsers(dest="database_command", required=True)

    insert_parser = database_commands.add_parser(
        "insert-posts",
        help="Mark urls as already posted without posting them",
    )
    insert_parser.add_argument("urls", type=_url_list, help="Comma-separated list of urls")
    insert_parser.set_defaults(handler=insert_posts)

    remove_parser = database_commands.add_parser(
        "remove-posts",
        help="Forget urls so they can be posted again (does not delete the Bluesky post)",
    )
    remove_parser.add_argument("urls", type=_url_list, help="Comma-separated list of urls")
    remove_parser.set_defaults(handler=remove_posts)

    export_parser = database_commands.add_parser(
        "export-posts",
        help="Print every posted url as a comma-separated list",
    )
    export_parser.set_defaults(handler=export_posts)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    return asyncio.run(args.handler(args))


if __name__ == "__main__":
    sys.exit(main())
