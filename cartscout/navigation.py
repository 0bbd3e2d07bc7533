"""Listing/product state classification, click geometry and recovery navigation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from cartscout import selectors
from cartscout.errors import TransientNavigationError
from cartscout.health import SessionMonitor
from cartscout.logging_config import get_logger
from cartscout.normalizers import is_listing_url, is_product_url, is_review_url
from cartscout.timing import TimingPolicy

LOGGER = get_logger(__name__)

GOTO_TIMEOUT_MS = 60000
PHONE_COLUMN_WIDTH = 450
WIDE_COLUMN_THRESHOLD = 800


class NavigationState(str, Enum):
    LISTING = "listing"
    PRODUCT_DETAIL = "product_detail"
    REVIEW_DETAIL = "review_detail"
    BLOCKED = "blocked"
    UNKNOWN = "unknown"


def classify(
    url: str | None,
    *,
    blocked: bool = False,
    block_url: bool = False,
    has_product_markers: bool = False,
    listing_url: str | None = None,
) -> NavigationState:
    """Map the current address and rendered markers onto a navigation state."""

    if blocked or block_url:
        return NavigationState.BLOCKED
    if is_review_url(url):
        return NavigationState.REVIEW_DETAIL
    if is_product_url(url) or has_product_markers:
        return NavigationState.PRODUCT_DETAIL
    if is_listing_url(url) or (url and listing_url and url.split("#")[0] == listing_url.split("#")[0]):
        return NavigationState.LISTING
    return NavigationState.UNKNOWN


async def has_product_markers(page: Any) -> bool:
    try:
        return bool(await page.evaluate(selectors.EXISTS_SCRIPT, list(selectors.PRODUCT_MARKERS)))
    except Exception as exc:
        LOGGER.debug("Product marker probe failed: %s", exc)
        return False


async def observe_state(page: Any, monitor: SessionMonitor, *, listing_url: str | None = None) -> NavigationState:
    """Recompute the state from the live page; nothing is cached between calls."""

    url = page.url
    return classify(
        url,
        blocked=monitor.blocked,
        block_url=monitor.is_block_url(url),
        has_product_markers=await has_product_markers(page),
        listing_url=listing_url,
    )


# Click geometry ---------------------------------------------------------------


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class ClickSlot:
    """A tappable position expressed as fractions of the product column."""

    name: str
    x_pct: float
    y_pct: float


GRID_SLOTS = (
    ClickSlot("top-left", 0.25, 0.25),
    ClickSlot("top-right", 0.75, 0.25),
    ClickSlot("bottom-left", 0.25, 0.75),
    ClickSlot("bottom-right", 0.75, 0.75),
)

VERTICAL_SLOTS = (
    ClickSlot("slot-1", 0.5, 0.2),
    ClickSlot("slot-2", 0.5, 0.4),
    ClickSlot("slot-3", 0.5, 0.6),
    ClickSlot("slot-4", 0.5, 0.8),
)

LAYOUTS = {"grid-2x2": GRID_SLOTS, "vertical-4": VERTICAL_SLOTS}
_JITTER = {"grid-2x2": 10.0, "vertical-4": 15.0}


def phone_column(container: Rect, viewport_width: float) -> Rect:
    """Desktop renders of the mobile site centre a narrow column inside a wide container."""

    if container.width > WIDE_COLUMN_THRESHOLD:
        return Rect(
            x=(viewport_width - PHONE_COLUMN_WIDTH) / 2,
            y=container.y,
            width=PHONE_COLUMN_WIDTH,
            height=container.height,
        )
    return container


def compute_click_target(
    layout: str,
    slot: ClickSlot,
    column: Rect,
    viewport: tuple[float, float],
    policy: TimingPolicy,
) -> tuple[float, float]:
    """Return a jittered, viewport-clamped point for ``slot``."""

    if layout not in LAYOUTS:
        raise ValueError(f"Unsupported listing layout: {layout!r}")
    width, height = viewport
    spread = _JITTER[layout]

    x = column.x + column.width * slot.x_pct + policy.jitter(spread)
    if layout == "grid-2x2":
        y = height * 0.3 + height * 0.4 * slot.y_pct + policy.jitter(spread)
    else:
        y = height * slot.y_pct + policy.jitter(spread)

    x = min(max(x, 1.0), max(width - 1.0, 1.0))
    y = min(max(y, 1.0), max(height - 1.0, 1.0))
    return x, y


def visiting_order(layout: str, policy: TimingPolicy) -> list[ClickSlot]:
    """Grid slots are shuffled per screen; vertical slots go top-down."""

    slots = list(LAYOUTS[layout])
    if layout == "grid-2x2":
        policy.shuffle(slots)
    return slots


async def measure_column(page: Any, viewport: tuple[float, float]) -> Rect:
    width, height = viewport
    try:
        data = await page.evaluate(selectors.CONTAINER_RECT_SCRIPT, list(selectors.LISTING_CONTAINERS))
        container = Rect(float(data["x"]), float(data["y"]), float(data["width"]), float(data["height"]))
    except Exception as exc:
        LOGGER.debug("Container measurement failed (%s); using full viewport", exc)
        container = Rect(0.0, 0.0, width, height)
    return phone_column(container, width)


class ListingCursor:
    """Queue of slots still to visit on the current screen."""

    def __init__(self, layout: str, policy: TimingPolicy) -> None:
        if layout not in LAYOUTS:
            raise ValueError(f"Unsupported listing layout: {layout!r}")
        self.layout = layout
        self.policy = policy
        self.queue: list[ClickSlot] = []
        self.screens = 0

    def next_slot(self) -> tuple[ClickSlot, bool]:
        """Pop the next slot; the flag is True when a new screen had to be started."""

        refilled = False
        if not self.queue:
            self.queue = visiting_order(self.layout, self.policy)
            self.screens += 1
            refilled = True
        return self.queue.pop(0), refilled


class RestScheduler:
    """Counts detail visits and asks for a long pause every 15-24 of them."""

    def __init__(self, policy: TimingPolicy, every: tuple[int, int] = (15, 24)) -> None:
        self.policy = policy
        self.every = every
        self.visits = 0
        self.threshold = policy.randint(*every)

    def record_visit(self) -> bool:
        self.visits += 1
        if self.visits < self.threshold:
            return False
        self.visits = 0
        self.threshold = self.policy.randint(*self.every)
        return True


# Recovery navigation ----------------------------------------------------------


async def _goto_once(page: Any, url: str, timeout_ms: int, wait_until: str) -> Any:
    try:
        response = await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
    except Exception as exc:
        raise TransientNavigationError(url, reason=str(exc).splitlines()[0] if str(exc) else None) from exc
    status = getattr(response, "status", None)
    if isinstance(status, int) and status >= 500:
        raise TransientNavigationError(url, status=status)
    return response


async def safe_goto(
    page: Any,
    url: str,
    policy: TimingPolicy,
    *,
    attempts: int = 3,
    timeout_ms: int = GOTO_TIMEOUT_MS,
    wait_until: str = "domcontentloaded",
) -> Any:
    """Navigate with bounded retries; raises ``TransientNavigationError`` when exhausted."""

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_random_exponential(multiplier=0.5, max=5),
        retry=retry_if_exception_type(TransientNavigationError),
        sleep=policy.sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await _goto_once(page, url, timeout_ms, wait_until)
    return None


async def return_to(
    page: Any,
    policy: TimingPolicy,
    *,
    arrived: Callable[[], Awaitable[bool]],
    fallback_url: str,
    attempts: int = 2,
    settle_ms: tuple[int, int] = (2000, 4000),
) -> bool:
    """Go back up to ``attempts`` times until ``arrived()``; otherwise force-load ``fallback_url``.

    Returns True when the history navigation alone was enough.
    """

    for attempt in range(1, attempts + 1):
        try:
            await page.go_back(wait_until="domcontentloaded", timeout=10000)
        except Exception as exc:
            LOGGER.debug("go_back attempt %d failed: %s", attempt, exc)
        await policy.wait(*settle_ms)
        if await arrived():
            return True
        LOGGER.info("Still not back after go_back attempt %d/%d (at %s)", attempt, attempts, page.url)

    LOGGER.warning("Back navigation exhausted; reloading %s", fallback_url)
    try:
        await safe_goto(page, fallback_url, policy)
    except TransientNavigationError as exc:
        LOGGER.error("Forced reload of %s failed: %s", fallback_url, exc)
    await policy.wait(*settle_ms)
    return False
