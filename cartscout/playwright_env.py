"""Centralised helpers for Playwright launch, attach and anti-bot launch flags."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from playwright.async_api import Browser, BrowserContext, Page, Playwright

from cartscout.logging_config import get_logger
from cartscout.stealth import random_context_options
from cartscout.timing import TimingPolicy

LOGGER = get_logger(__name__)

_FALSE_VALUES = {"0", "false", "no", "off"}
LOCK_FILES = ("SingletonLock", "SingletonCookie", "SingletonSocket")
_LOCK_ERROR_MARKERS = ("already in use", "already running", "processsingleton", "singletonlock")


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in _FALSE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def headless_enabled() -> bool:
    """Headful by default: the storefront scores headless sessions harshly."""

    return _as_bool(os.getenv("CARTSCOUT_HEADLESS"), False)


def guest_mode() -> bool:
    """Return True when no persistent profile or attach should be used."""

    return _as_bool(os.getenv("CARTSCOUT_GUEST"), True)


def cdp_url() -> str | None:
    raw = os.getenv("CARTSCOUT_CDP_URL")
    if raw:
        return raw.strip()
    port = _env_int("CARTSCOUT_DEBUG_PORT", 0)
    return f"http://127.0.0.1:{port}" if port > 0 else None


def attach_attempts() -> int:
    return max(_env_int("CARTSCOUT_CDP_ATTEMPTS", 5), 1)


def user_data_dir() -> Path | None:
    raw = os.getenv("CARTSCOUT_USER_DATA_DIR")
    if not raw or guest_mode():
        return None
    path = Path(raw).expanduser()
    path.mkdir(parents=True, exist_ok=True)
    return path


def _proxy_config() -> dict[str, str] | None:
    raw = os.getenv("CARTSCOUT_PROXY")
    if not raw:
        return None
    parsed = urlparse(raw)
    if not parsed.scheme:
        return {"server": f"http://{raw}"}
    proxy = {"server": f"{parsed.scheme}://{parsed.hostname}:{parsed.port}" if parsed.port else raw}
    if parsed.username:
        proxy["username"] = parsed.username
    if parsed.password:
        proxy["password"] = parsed.password
    return proxy


def launch_kwargs() -> dict[str, Any]:
    """Return kwargs passed to chromium.launch / launch_persistent_context."""

    args = [
        "--disable-blink-features=AutomationControlled",
        "--disable-dev-shm-usage",
        "--disable-features=IsolateOrigins,site-per-process",
        "--disable-infobars",
        "--lang=zh-CN,zh",
        "--no-default-browser-check",
        "--no-first-run",
        "--window-position=0,0",
    ]
    debug_port = _env_int("CARTSCOUT_DEBUG_PORT", 0)
    if debug_port > 0:
        args.append(f"--remote-debugging-port={debug_port}")
    profile = os.getenv("CARTSCOUT_PROFILE_DIR")
    if profile and not guest_mode():
        args.append(f"--profile-directory={profile}")
    extra_args = os.getenv("CARTSCOUT_CHROMIUM_ARGS")
    if extra_args:
        args.extend(shlex.split(extra_args))

    kwargs: dict[str, Any] = {
        "headless": headless_enabled(),
        "args": args,
    }

    channel = os.getenv("CARTSCOUT_BROWSER_CHANNEL")
    if channel:
        kwargs["channel"] = channel

    executable = os.getenv("CARTSCOUT_CHROME_PATH")
    if executable and Path(executable).exists():
        kwargs["executable_path"] = executable

    proxy = _proxy_config()
    if proxy:
        kwargs["proxy"] = proxy

    return kwargs


@dataclass
class BrowserHandle:
    """A live browser/context/page triple and how it was obtained."""

    browser: Browser | None
    context: BrowserContext
    page: Page
    attached: bool = False

    async def close(self) -> None:
        """Close without raising; attached browsers are only disconnected."""

        try:
            if self.attached:
                if self.browser is not None:
                    await self.browser.close()
                return
            await self.context.close()
            if self.browser is not None:
                await self.browser.close()
        except Exception as exc:
            LOGGER.debug("Browser close raised: %s", exc)


async def _first_page(context: BrowserContext, target_host: str | None = None) -> Page:
    pages = list(context.pages)
    if target_host:
        for page in pages:
            if target_host in page.url:
                LOGGER.info("Using existing tab at %s", page.url)
                return page
    if pages:
        return pages[0]
    return await context.new_page()


async def _attached_handle(browser: Browser, target_host: str | None) -> BrowserHandle:
    context = browser.contexts[0] if browser.contexts else await browser.new_context()
    return BrowserHandle(browser, context, await _first_page(context, target_host), attached=True)


async def _try_attach(playwright: Playwright, endpoint: str, attempts: int, policy: TimingPolicy) -> Browser | None:
    for attempt in range(1, attempts + 1):
        try:
            browser = await playwright.chromium.connect_over_cdp(endpoint)
            LOGGER.info("Attached to running browser at %s", endpoint)
            return browser
        except Exception as exc:
            LOGGER.info("Attach attempt %d/%d to %s failed: %s", attempt, attempts, endpoint, exc)
            if attempt < attempts:
                await policy.wait(2000, 5000, obey_policy=False)
    return None


def remove_stale_locks(profile_dir: Path) -> list[str]:
    """Delete Chromium singleton lock files left behind by a crashed browser."""

    removed: list[str] = []
    for name in LOCK_FILES:
        lock_path = profile_dir / name
        if lock_path.exists() or lock_path.is_symlink():
            try:
                lock_path.unlink()
                removed.append(name)
            except OSError as exc:
                LOGGER.warning("Unable to remove stale lock %s: %s", lock_path, exc)
    return removed


def _is_lock_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _LOCK_ERROR_MARKERS)


async def open_browser(
    playwright: Playwright,
    policy: TimingPolicy,
    *,
    target_host: str | None = None,
) -> BrowserHandle:
    """Attach to a running browser when possible, otherwise launch one.

    A persistent-profile launch that fails on a profile lock retries the attach,
    then clears stale lock files and launches once more.
    """

    endpoint = cdp_url()
    if endpoint and not guest_mode():
        browser = await _try_attach(playwright, endpoint, attach_attempts(), policy)
        if browser is not None:
            return await _attached_handle(browser, target_host)
        LOGGER.info("No browser to attach to at %s; launching a fresh one", endpoint)

    kwargs = launch_kwargs()
    profile_dir = user_data_dir()
    if profile_dir is None:
        browser = await playwright.chromium.launch(**kwargs)
        context = await browser.new_context(**random_context_options(policy))
        return BrowserHandle(browser, context, await context.new_page())

    persistent_kwargs = {**kwargs, "no_viewport": True}
    try:
        context = await playwright.chromium.launch_persistent_context(str(profile_dir), **persistent_kwargs)
    except Exception as exc:
        if not _is_lock_error(exc):
            raise
        LOGGER.warning("Profile %s appears locked: %s", profile_dir, exc)
        if endpoint:
            browser = await _try_attach(playwright, endpoint, attach_attempts(), policy)
            if browser is not None:
                return await _attached_handle(browser, target_host)
        removed = remove_stale_locks(profile_dir)
        LOGGER.warning("Removed stale lock files %s; relaunching", removed or "(none)")
        context = await playwright.chromium.launch_persistent_context(str(profile_dir), **persistent_kwargs)

    return BrowserHandle(context.browser, context, await _first_page(context, target_host))
