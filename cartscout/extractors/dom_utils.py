"""Helper utilities for safely reading storefront DOM content."""

from __future__ import annotations

import re
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from playwright.async_api import Error as PlaywrightError

from cartscout import selectors
from cartscout.logging_config import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

Strategy = Callable[[], Awaitable[T]]

_HANDLEABLE_ERRORS: tuple[type[BaseException], ...] = (PlaywrightError, Exception)

_CURRENCY_PRICE = re.compile(r"^(?:¥|￥)\s*(\d+(?:\.\d+)?)")
_EMBEDDED_PRICE = re.compile(r"(?:¥|￥)\s*(\d+(?:\.\d+)?)")
_SOLD_COUNTER = re.compile(r"已拼\s*[\d.]+\s*[万+]?件")
_SOLD_ENGLISH = re.compile(r"[\d.]+\s*sold", re.IGNORECASE)
_NUMBER = re.compile(r"\d+(?:\.\d+)?")


async def safe_evaluate(page: Any, script: str, arg: Any = None, *, default: Any = None) -> Any:
    """Evaluate *script* on the page, swallowing transient browser errors."""

    try:
        if arg is None:
            return await page.evaluate(script)
        return await page.evaluate(script, arg)
    except _HANDLEABLE_ERRORS as exc:
        LOGGER.debug("Evaluate failed: %s", exc)
        return default


async def inner_text_safe(page: Any, selector: str) -> str | None:
    """Return the stripped inner text of the first *selector* match, or ``None``."""

    text = await safe_evaluate(page, selectors.TEXT_SCRIPT, selector)
    if not isinstance(text, str):
        return None
    text = text.strip()
    return text or None


async def first_success(
    strategies: Sequence[tuple[str, Strategy[T]]],
    *,
    field: str,
    default: T,
) -> T:
    """Run strategies in order and return the first non-empty result.

    A strategy that raises is logged and skipped; when every strategy comes up
    empty the field is left at *default*.
    """

    for label, strategy in strategies:
        try:
            result = await strategy()
        except _HANDLEABLE_ERRORS as exc:
            LOGGER.info("[extract] %s strategy %s failed: %s", field, label, exc)
            continue
        if result:
            LOGGER.debug("[extract] %s resolved by %s", field, label)
            return result
    LOGGER.info("[extract] %s: no strategy produced a value", field)
    return default


def price_to_float(text: str | None) -> float | None:
    """Parse a ``¥``/``￥``-prefixed amount at the start of *text*."""

    if not text:
        return None
    match = _CURRENCY_PRICE.match(text.strip())
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def option_price_to_float(primary: str | None, fallback: str | None, label: str | None) -> float:
    """Resolve a variant's source price from its price cell, fallback cells, then its label."""

    if primary:
        cleaned = re.sub(r"[¥￥\s]", "", primary)
        match = _NUMBER.match(cleaned)
        if match:
            value = float(match.group(0))
            if value > 0:
                return value

    text = fallback or label or ""
    match = _EMBEDDED_PRICE.search(text)
    if match:
        return float(match.group(1))

    text = _SOLD_COUNTER.sub("", text)
    text = _SOLD_ENGLISH.sub("", text)
    numbers = _NUMBER.findall(text)
    if numbers:
        return float(numbers[-1])
    return 0.0
