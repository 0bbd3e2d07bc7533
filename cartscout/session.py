"""The click-and-scrape traversal loop.

One ``ScrapeSession`` owns a page, the credential pool and the shared
``SessionMonitor``. Each iteration starts from the listing, taps one product
slot, processes the detail view if one opened, and walks back. Block signals
rotate credentials and reload the listing root; 429 responses are served as a
hard cooldown before the next iteration.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from cartscout.catalog import CatalogAdapter
from cartscout.config import bounds
from cartscout.credentials import CredentialPool
from cartscout.errors import (
    BlockDetectedError,
    ExtractionFatalError,
    PersistenceBlockedError,
    TransientNavigationError,
)
from cartscout.extractors.product import ProductExtractor
from cartscout.health import SessionMonitor
from cartscout.logging_config import get_logger
from cartscout.models import RawProductSnapshot
from cartscout.motion import HumanMotion
from cartscout.navigation import (
    ListingCursor,
    NavigationState,
    RestScheduler,
    compute_click_target,
    measure_column,
    observe_state,
    return_to,
    safe_goto,
)
from cartscout.normalizers import normalize_product_url
from cartscout.processing import ProductProcessor
from cartscout.timing import TimingPolicy

LOGGER = get_logger(__name__)

Extract = Callable[[Any, HumanMotion, TimingPolicy], Awaitable[RawProductSnapshot]]

_DETAIL_STATES = (NavigationState.PRODUCT_DETAIL, NavigationState.REVIEW_DETAIL)


class ScrapeSession:
    def __init__(
        self,
        page: Any,
        context: Any,
        *,
        config: dict[str, Any],
        policy: TimingPolicy,
        monitor: SessionMonitor,
        credentials: CredentialPool,
        catalog: CatalogAdapter,
        processor: ProductProcessor,
        extract: Extract | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.page = page
        self.context = context
        self.policy = policy
        self.monitor = monitor
        self.credentials = credentials
        self.catalog = catalog
        self.processor = processor
        self.cancel_event = cancel_event or asyncio.Event()

        listing = config["listing"]
        pacing = config["pacing"]
        self.listing_url: str = listing["url"]
        self.layout: str = listing.get("layout", "grid-2x2")
        self.product_limit = int(listing.get("product_limit") or 0)

        self.observation_ms = bounds(pacing.get("observation_ms"), (5000, 10000))
        self.between_products_ms = bounds(pacing.get("between_products_ms"), (15000, 30000))
        self.screen_settle_ms = bounds(pacing.get("screen_settle_ms"), (4000, 8000))
        self.rotation_settle_ms = bounds(pacing.get("rotation_settle_ms"), (5000, 10000))
        self.back_settle_ms = bounds(pacing.get("back_settle_ms"), (2000, 4000))
        self.rest_ms = bounds(pacing.get("rest_ms"), (60000, 120000))
        self.failure_pause_ms = bounds(pacing.get("failure_pause_ms"), (10000, 20000))
        self.back_attempts = int(pacing.get("back_attempts", 2))
        self.max_consecutive_failures = int(pacing.get("max_consecutive_failures", 5))

        self.motion = HumanMotion(page, policy)
        self.cursor = ListingCursor(self.layout, policy)
        self.rest = RestScheduler(policy, bounds(pacing.get("rest_every"), (15, 24)))
        self._extract = extract or self._default_extract

        self.processed = 0
        self.stored = 0
        self.consecutive_failures = 0

    @property
    def finished(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self.product_limit > 0 and self.processed >= self.product_limit

    # Lifecycle --------------------------------------------------------------

    async def start(self) -> None:
        """Install credentials, hook observers and open the listing."""

        await self.credentials.install(self.context)
        self.monitor.attach(self.page)
        LOGGER.info("Opening listing %s (layout=%s)", self.listing_url, self.layout)
        await safe_goto(self.page, self.listing_url, self.policy)
        await self.policy.wait(*self.screen_settle_ms)
        await self.credentials.persist(self.context)

    async def run(self) -> int:
        """Loop until the product limit, an interrupt, or a persistence block; returns products stored."""

        await self.start()
        try:
            while not self.finished:
                try:
                    await self.run_iteration()
                    self.consecutive_failures = 0
                except BlockDetectedError as exc:
                    LOGGER.warning("%s; recovering on the next iteration", exc)
                except PersistenceBlockedError:
                    LOGGER.critical("Catalog refuses writes; stopping session")
                    raise
                except Exception as exc:
                    self.consecutive_failures += 1
                    LOGGER.exception("Iteration failed (%d in a row): %s", self.consecutive_failures, exc)
                    if self.consecutive_failures > self.max_consecutive_failures:
                        LOGGER.warning("Too many consecutive failures; pausing")
                        await self.policy.wait(*self.failure_pause_ms)
                        self.consecutive_failures = 0
        finally:
            await self.catalog.drain()
        LOGGER.info("Session finished: %d product page(s) visited, %d stored", self.processed, self.stored)
        return self.stored

    # Iteration --------------------------------------------------------------

    async def run_iteration(self) -> str:
        """One pass of the state machine; returns a short outcome label."""

        if self.monitor.rate_limit.pending:
            await self.serve_cooldown()
        if self.monitor.blocked:
            await self.recover_from_block()
            return "recovered"

        state = await self._state()
        if state in _DETAIL_STATES:
            LOGGER.info("Iteration started on a %s page; going back first", state.value)
            await self.return_to_listing()
            return "returned"

        slot, new_screen = self.cursor.next_slot()
        if new_screen and self.cursor.screens > 1:
            LOGGER.info("Screen consumed; sliding to the next one")
            _, height = await self.motion.viewport()
            await self.motion.scroll(height)
            await self.policy.wait(*self.screen_settle_ms)

        viewport = await self.motion.viewport()
        column = await measure_column(self.page, viewport)
        x, y = compute_click_target(self.layout, slot, column, viewport, self.policy)
        LOGGER.info("Tapping %s at (%.1f, %.1f)", slot.name, x, y)
        await self.motion.click(x, y)
        await self.policy.wait(*self.observation_ms)

        state = await self._state()
        if state is NavigationState.BLOCKED:
            return "blocked"
        if state is not NavigationState.PRODUCT_DETAIL:
            self.monitor.record_miss(slot=slot.name, url=self.page.url)
            LOGGER.info("Tap on %s did not open a product (state=%s)", slot.name, state.value)
            if state is NavigationState.REVIEW_DETAIL:
                await self.return_to_listing()
            return "miss"

        self.processed += 1
        try:
            await self.process_current_product()
        finally:
            # A blocked page is left by recover_from_block instead.
            if not self.monitor.blocked:
                await self.return_to_listing()
        await self.credentials.persist(self.context)

        if self.rest.record_visit():
            await self.rest_pause()
        elif not self.finished:
            await self.policy.wait(*self.between_products_ms)
        return "product"

    async def process_current_product(self) -> int | None:
        url = normalize_product_url(self.page.url) or self.page.url
        if self.catalog.exists(url):
            return None
        try:
            snapshot = await self._extract(self.page, self.motion, self.policy)
        except ExtractionFatalError as exc:
            LOGGER.warning("Abandoning product: %s", exc)
            return None
        if self.monitor.blocked:
            # Whatever was read came from a challenge page.
            raise BlockDetectedError(self.monitor.block_reason or "flagged during extraction")

        normalized = await self.processor.normalize_snapshot(snapshot)
        if normalized is None:
            return None
        product_id = await self.catalog.upsert_if_new(normalized)
        if product_id is not None:
            self.stored += 1
        return product_id

    # Recovery ---------------------------------------------------------------

    async def recover_from_block(self) -> None:
        reason = self.monitor.block_reason or "unknown"
        LOGGER.warning("[security-check] Blocked (%s); rotating credentials", reason)
        profile = await self.credentials.rotate(self.context)
        self.monitor.record_rotation(profile.name if profile else None)
        try:
            await safe_goto(self.page, self.listing_url, self.policy)
        except TransientNavigationError as exc:
            LOGGER.error("Reloading listing after rotation failed: %s", exc)
        await self.policy.wait(*self.rotation_settle_ms)
        self.cursor = ListingCursor(self.layout, self.policy)
        self.monitor.clear_block()

    async def serve_cooldown(self) -> None:
        backoff = self.monitor.rate_limit.backoff_s
        LOGGER.warning("Rate limited; cooling down for %.0fs", backoff)
        self.monitor.log_event("cooldown", "rate-limit cooldown", seconds=backoff)
        await self.policy.pause(backoff)
        self.monitor.rate_limit.complete_cooldown()

    async def return_to_listing(self) -> None:
        async def _off_detail() -> bool:
            return await self._state() not in _DETAIL_STATES

        used_history = await return_to(
            self.page,
            self.policy,
            arrived=_off_detail,
            fallback_url=self.listing_url,
            attempts=self.back_attempts,
            settle_ms=self.back_settle_ms,
        )
        if not used_history:
            # A forced reload lands at the top of the listing again.
            self.cursor = ListingCursor(self.layout, self.policy)

    async def rest_pause(self) -> None:
        seconds = self.policy.delay_seconds(*self.rest_ms)
        LOGGER.info("Taking a %.0fs break", seconds)
        self.monitor.record_rest(seconds)
        if self.policy.chance(0.5):
            await self.motion.fidget()
        else:
            await self.motion.browse(max_scrolls=self.policy.randint(3, 6))
            # Taps restart from whatever screen the reading left in view.
            self.cursor = ListingCursor(self.layout, self.policy)
        await self.policy.pause(seconds)

    # Helpers ----------------------------------------------------------------

    async def _state(self) -> NavigationState:
        return await observe_state(self.page, self.monitor, listing_url=self.listing_url)

    async def _default_extract(self, page: Any, motion: HumanMotion, policy: TimingPolicy) -> RawProductSnapshot:
        return await ProductExtractor(page, motion, policy, back_attempts=self.back_attempts).extract()
