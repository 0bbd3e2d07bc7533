"""Product detail view extraction.

Every field is resolved by an ordered list of strategies; the first one that
yields a value wins. A field whose strategies all fail is left empty, so a
missing gallery or an unopened review sheet never costs the whole product.
Only a login wall or a nameless page aborts the product.
"""

from __future__ import annotations

from typing import Any, Iterable

from cartscout import selectors
from cartscout.errors import ExtractionFatalError
from cartscout.extractors.dom_utils import (
    first_success,
    inner_text_safe,
    option_price_to_float,
    price_to_float,
    safe_evaluate,
)
from cartscout.logging_config import get_logger
from cartscout.models import RawProductSnapshot, Review, VariantOption
from cartscout.motion import HumanMotion
from cartscout.navigation import return_to
from cartscout.normalizers import (
    clean_option_label,
    is_product_url,
    is_review_url,
    is_valid_option_label,
    looks_like_product_page,
    normalize_product_url,
)
from cartscout.timing import TimingPolicy

LOGGER = get_logger(__name__)

ANONYMOUS_REVIEWER = "Anonymous"


def resolve_source(entry: Any) -> str:
    """Pick ``src`` unless it is empty or an inline data URI, then ``data-src``."""

    if isinstance(entry, str):
        return entry.strip()
    if not isinstance(entry, dict):
        return ""
    src = (entry.get("src") or "").strip()
    if not src or src.startswith("data:") or "base64" in src:
        src = (entry.get("dataSrc") or "").strip()
    return src


def dedupe_image_urls(entries: Iterable[Any], *, deny: Iterable[str] = selectors.IMAGE_DENYLIST) -> list[str]:
    """Keep http(s) URLs once each, compared without their query string."""

    denied = tuple(deny)
    seen: set[str] = set()
    urls: list[str] = []
    for entry in entries or ():
        src = resolve_source(entry)
        if not src.startswith("http"):
            continue
        clean = src.split("?")[0]
        if clean in seen or any(marker in clean for marker in denied):
            continue
        seen.add(clean)
        urls.append(clean)
    return urls


def order_uniqid_images(entries: Iterable[dict[str, Any]] | None) -> list[dict[str, Any]]:
    ordered: list[tuple[int, dict[str, Any]]] = []
    for entry in entries or ():
        try:
            ordered.append((int(str(entry.get("id", "")).strip()), entry))
        except ValueError:
            continue
    ordered.sort(key=lambda item: item[0])
    return [entry for _, entry in ordered]


def filter_viewport_images(entries: Iterable[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Large images in the top 60% of the viewport that are neither banners nor strips."""

    kept = []
    for entry in entries or ():
        viewport_height = float(entry.get("viewportHeight") or 0)
        if float(entry.get("top", 0)) >= viewport_height * 0.6:
            continue
        width = float(entry.get("naturalWidth") or 0)
        height = float(entry.get("naturalHeight") or 0)
        if width <= 300:
            continue
        if height > 0 and not 0.4 <= width / height <= 2.2:
            continue
        kept.append(entry)
    return kept


def parse_main_price(texts: Iterable[str] | None) -> float | None:
    for text in texts or ():
        value = price_to_float(text)
        if value is not None and value > 0:
            return value
    return None


def parse_option_items(items: Iterable[dict[str, Any]] | None) -> tuple[VariantOption, ...]:
    """Clean, filter and de-duplicate raw option sheet rows."""

    options: list[VariantOption] = []
    seen: set[str] = set()
    for item in items or ():
        raw_label = item.get("label") or ""
        label = clean_option_label(raw_label)
        if not is_valid_option_label(label):
            LOGGER.debug("Skipping option label %r", raw_label)
            continue
        # First row wins for a repeated label.
        if label in seen:
            continue
        seen.add(label)
        options.append(
            VariantOption(
                label=label,
                source_price=option_price_to_float(item.get("price"), item.get("fallbackPrice"), raw_label),
                thumbnail=item.get("thumbnail") or None,
            )
        )
    return tuple(options)


def parse_reviews(items: Iterable[dict[str, Any]] | None) -> tuple[Review, ...]:
    reviews = []
    for item in items or ():
        text = (item.get("text") or "").strip()
        photos = tuple(photo for photo in item.get("photos") or () if photo)
        if not text and not photos:
            continue
        reviews.append(
            Review(
                name=(item.get("name") or "").strip() or ANONYMOUS_REVIEWER,
                text=text,
                purchased_variant=(item.get("variant") or "").strip() or None,
                photos=photos,
            )
        )
    return tuple(reviews)


def is_login_wall(name: str | None, url: str | None) -> bool:
    if name and any(marker in name for marker in selectors.LOGIN_NAME_MARKERS):
        return True
    return bool(url) and "login." in url


class ProductExtractor:
    """Reads one product detail view into a ``RawProductSnapshot``."""

    def __init__(
        self,
        page: Any,
        motion: HumanMotion,
        policy: TimingPolicy,
        *,
        back_attempts: int = 2,
    ) -> None:
        self.page = page
        self.motion = motion
        self.policy = policy
        self.back_attempts = back_attempts

    async def extract(self) -> RawProductSnapshot:
        url = self.page.url
        LOGGER.info("Analyzing product page: %s", url)
        await self.policy.wait(1000, 3000)

        name = await self.name()
        if not name:
            raise ExtractionFatalError(url, "empty product name")
        if is_login_wall(name, self.page.url):
            raise ExtractionFatalError(url, "login wall")

        images = await self.images()
        description_text = await inner_text_safe(self.page, selectors.DESCRIPTION_TEXT) or ""
        price = await self.main_price()
        LOGGER.info("Scraped %s (%d images, price=%s)", name[:20], len(images), price)

        options = await self.options()
        reviews = await self.reviews()
        description_images = await self.description_images()

        return RawProductSnapshot(
            source_url=normalize_product_url(url) or url,
            name=name,
            images=tuple(images),
            description_text=description_text,
            main_page_price=price,
            variant_options=options,
            reviews=reviews,
            description_images=tuple(description_images),
        )

    # Fields -----------------------------------------------------------------

    async def name(self) -> str:
        async def _title() -> str:
            return (await self.page.title() or "").strip()

        return await first_success(
            [
                ("name", lambda: inner_text_safe(self.page, selectors.NAME)),
                ("name-alt", lambda: inner_text_safe(self.page, selectors.NAME_ALT)),
                ("title", _title),
            ],
            field="name",
            default="",
        )

    async def images(self) -> list[str]:
        async def _uniqid() -> list[str]:
            raw = await safe_evaluate(self.page, selectors.UNIQID_IMAGES_SCRIPT, selectors.GALLERY_UNIQID, default=[])
            return dedupe_image_urls(order_uniqid_images(raw))

        def _sources(selector: str):
            async def _strategy() -> list[str]:
                raw = await safe_evaluate(self.page, selectors.IMAGE_SOURCES_SCRIPT, selector, default=[])
                return dedupe_image_urls(raw)

            return _strategy

        async def _heuristic() -> list[str]:
            raw = await safe_evaluate(self.page, selectors.VIEWPORT_IMAGES_SCRIPT, default=[])
            return dedupe_image_urls(filter_viewport_images(raw))

        return await first_success(
            [
                ("uniqid", _uniqid),
                ("gallery", _sources(selectors.GALLERY)),
                ("gallery-alt", _sources(selectors.GALLERY_ALT)),
                ("slider", _sources(selectors.SLIDER_IMAGES)),
                ("heuristic", _heuristic),
            ],
            field="images",
            default=[],
        )

    async def main_price(self) -> float | None:
        async def _leaf_texts() -> float | None:
            return parse_main_price(await safe_evaluate(self.page, selectors.LEAF_PRICE_TEXTS_SCRIPT, default=[]))

        return await first_success([("leaf-text", _leaf_texts)], field="price", default=None)

    async def options(self) -> tuple[VariantOption, ...]:
        """Open the variant sheet with two geometric presses, read it, then dismiss it."""

        try:
            width, height = await self.motion.viewport()

            x = self._clamp(width * 0.5 + self.policy.uniform(270, 300), width)
            y = self._clamp(height * self.policy.uniform(0.97, 0.99), height)
            LOGGER.info("[options] Pressing buy button at (%.1f, %.1f)", x, y)
            await self.motion.press(x, y, hold_ms=(150, 250))
            await self.policy.wait(3000, 6000)

            x = self._clamp(width * 0.5 - 300 + self.policy.jitter(10), width)
            y = self._clamp(height * 0.5 + self.policy.jitter(10), height)
            LOGGER.info("[options] Pressing thumbnail at (%.1f, %.1f)", x, y)
            await self.motion.press(x, y, hold_ms=(100, 200))
            await self.policy.wait(3000, 6000)

            options = parse_option_items(await safe_evaluate(self.page, selectors.OPTION_ITEMS_SCRIPT, default=[]))
            LOGGER.info("[options] Collected %d options", len(options))

            await self.motion.click(width * 0.5, height * 0.1)
            await self.policy.wait(2000, 5000)
            await self.motion.click(width * 0.5, height * 0.1)
            await self.policy.wait(3000, 6000)
            return options
        except Exception as exc:
            LOGGER.warning("[extract] options failed: %s", exc)
            return ()

    async def reviews(self) -> tuple[Review, ...]:
        product_url = self.page.url
        try:
            if not await self._open_reviews(product_url):
                LOGGER.info("[reviews] No review entry opened; skipping reviews")
                return ()

            await self.motion.slow_slide(3)
            reviews = parse_reviews(await safe_evaluate(self.page, selectors.REVIEW_ITEMS_SCRIPT, default=[]))
            LOGGER.info("[reviews] Collected %d reviews", len(reviews))
        except Exception as exc:
            LOGGER.warning("[extract] reviews failed: %s", exc)
            reviews = ()

        if self.page.url != product_url:
            await return_to(
                self.page,
                self.policy,
                arrived=self._back_on_product,
                fallback_url=product_url,
                attempts=self.back_attempts,
                settle_ms=(2000, 3500),
            )
        return reviews

    async def description_images(self) -> list[str]:
        try:
            await self.policy.wait(3000, 6000)
            url = self.page.url
            if not looks_like_product_page(url):
                LOGGER.warning("Not on a product page (%s); skipping description images", url)
                return []

            present = await safe_evaluate(
                self.page, selectors.EXISTS_SCRIPT, list(selectors.DESCRIPTION_CONTAINERS), default=False
            )
            if not present:
                LOGGER.info("Description container not found")
                return []

            height = await safe_evaluate(self.page, selectors.DESCRIPTION_TARGET_SCRIPT, default=0)
            if height:
                await self.policy.wait(1000, 1000, obey_policy=False)
                await self.motion.slide_through(float(height))
            await self.policy.wait(3000, 6000)

            raw = await safe_evaluate(self.page, selectors.DESCRIPTION_IMAGES_SCRIPT, default={}) or {}
            return dedupe_image_urls(raw.get("tagged") or (), deny=()) or dedupe_image_urls(
                raw.get("any") or (), deny=()
            )
        except Exception as exc:
            LOGGER.warning("[extract] description images failed: %s", exc)
            return []

    # Helpers ----------------------------------------------------------------

    async def _open_reviews(self, product_url: str) -> bool:
        for selector in selectors.REVIEW_ENTRY_BUTTONS:
            try:
                handle = await self.page.query_selector(selector)
                if handle is None:
                    continue
                LOGGER.info("[reviews] Clicking review entry %s", selector)
                await handle.click()
            except Exception as exc:
                LOGGER.info("[reviews] Entry %s failed: %s", selector, exc)
                continue
            await self.policy.wait(3000, 6000)
            current = self.page.url
            if current != product_url or is_review_url(current):
                return True
            LOGGER.info("[reviews] Clicked %s but the address did not change", selector)
        return False

    async def _back_on_product(self) -> bool:
        url = self.page.url
        return is_product_url(url) and not is_review_url(url)

    @staticmethod
    def _clamp(value: float, limit: float) -> float:
        return min(max(value, 1.0), max(limit - 1.0, 1.0))
