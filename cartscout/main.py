"""Command-line interface entry point for CartScout."""

from __future__ import annotations

import argparse
import asyncio
import signal
from typing import Any, Iterable
from urllib.parse import urlparse

from playwright.async_api import async_playwright

from cartscout.ai.client import CompletionClient
from cartscout.catalog import CatalogAdapter
from cartscout.config import load_config
from cartscout.credentials import CredentialPool
from cartscout.errors import PersistenceBlockedError
from cartscout.health import SessionMonitor
from cartscout.logging_config import configure_from_config, get_logger, set_level
from cartscout.navigation import LAYOUTS
from cartscout.playwright_env import open_browser
from cartscout.processing import ProductProcessor
from cartscout.session import ScrapeSession
from cartscout.stealth import apply_stealth
from cartscout.storage.db import get_engine, has_catalog_tables, init_db_safe, make_session
from cartscout.timing import TimingPolicy

LOGGER = get_logger(__name__)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the application."""

    parser = argparse.ArgumentParser(description="Walk a storefront listing and import products into the catalog.")
    parser.add_argument("--url", type=str, help="Listing URL to start from (overrides listing.url).")
    parser.add_argument(
        "--layout",
        choices=sorted(LAYOUTS),
        help="Listing layout: shuffled 2x2 grid or top-down vertical slots.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        help="Stop after this many product pages (0 means no limit).",
    )
    parser.add_argument("--config", type=str, help="Path to an alternative config.yml.")
    parser.add_argument(
        "--reprice",
        action="store_true",
        help="Recompute every stored price with the current pricing rule and exit.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override LOG_LEVEL for this run.",
    )

    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.limit is not None and args.limit < 0:
        parser.error("--limit must not be negative")
    return args


def apply_cli_overrides(config: dict[str, Any], args: argparse.Namespace) -> dict[str, Any]:
    listing = config["listing"]
    if args.url:
        listing["url"] = args.url
    if args.layout:
        listing["layout"] = args.layout
    if args.limit is not None:
        listing["product_limit"] = args.limit
    return config


def _session_factory(config: dict[str, Any]):
    engine = get_engine(config["output"]["database_url"])
    if not has_catalog_tables(engine):
        LOGGER.info("Creating missing catalog tables")
    init_db_safe(engine)
    return engine, make_session(engine)


def run_reprice(config: dict[str, Any]) -> tuple[int, int]:
    engine, session_factory = _session_factory(config)
    try:
        return CatalogAdapter.from_config(config, session_factory).reprice_all()
    finally:
        engine.dispose()


def _install_interrupt(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _request_stop() -> None:
        if not cancel_event.is_set():
            LOGGER.info("Interrupt received; finishing the current iteration")
        cancel_event.set()

    try:
        loop.add_signal_handler(signal.SIGINT, _request_stop)
    except (NotImplementedError, RuntimeError):
        # Windows event loops do not support signal handlers.
        LOGGER.debug("SIGINT handler unavailable on this platform")


async def run_scrape(config: dict[str, Any], *, cancel_event: asyncio.Event | None = None) -> int:
    cancel_event = cancel_event or asyncio.Event()
    _install_interrupt(cancel_event)

    policy = TimingPolicy()
    engine, session_factory = _session_factory(config)
    client = CompletionClient.from_config(config)
    catalog = CatalogAdapter.from_config(config, session_factory, client=client)
    processor = ProductProcessor.from_config(config, client)
    monitor = SessionMonitor.from_config(config)
    credentials = CredentialPool(config["credentials"]["directory"])
    target_host = urlparse(config["listing"]["url"]).hostname

    try:
        async with async_playwright() as playwright:
            handle = await open_browser(playwright, policy, target_host=target_host)
            try:
                await apply_stealth(handle.context)
                session = ScrapeSession(
                    handle.page,
                    handle.context,
                    config=config,
                    policy=policy,
                    monitor=monitor,
                    credentials=credentials,
                    catalog=catalog,
                    processor=processor,
                    cancel_event=cancel_event,
                )
                return await session.run()
            finally:
                await handle.close()
    finally:
        engine.dispose()


async def _async_main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    config = apply_cli_overrides(load_config(args.config), args)
    configure_from_config(config)
    if args.log_level:
        set_level(args.log_level)

    if args.reprice:
        products, variants = run_reprice(config)
        print(f"Repriced {products} product(s) and {variants} variant(s)")
        return

    stored = await run_scrape(config)
    LOGGER.info("Run complete; %d new product(s) stored", stored)


def main() -> None:
    try:
        asyncio.run(_async_main())
    except PersistenceBlockedError as exc:
        LOGGER.error("Catalog writes are blocked: %s", exc)
        raise SystemExit(2) from exc
    except KeyboardInterrupt:  # pragma: no cover - interactive safety
        LOGGER.info("Interrupted by user")


if __name__ == "__main__":
    main()
