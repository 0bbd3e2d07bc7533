"""Fingerprint masking applied to every browser context and document."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any
from weakref import WeakSet

from playwright_stealth import Stealth

from cartscout.logging_config import get_logger
from cartscout.timing import TimingPolicy

LOGGER = get_logger(__name__)

_FALSE_VALUES = {"0", "false", "no", "off"}

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
)

VIEWPORTS = ((1920, 1080), (1536, 864), (1440, 900), (1366, 768))

# Each override is wrapped so re-running the script on the same document is harmless.
STEALTH_INIT_SCRIPT = """
(() => {
  const define = (target, key, value) => {
    try { Object.defineProperty(target, key, { get: () => value, configurable: true }); } catch (e) {}
  };
  define(navigator, 'webdriver', false);
  if (!window.chrome) { try { window.chrome = { runtime: {} }; } catch (e) {} }
  try {
    const query = window.navigator.permissions && window.navigator.permissions.query;
    if (query && !query.__cartscout) {
      const patched = (parameters) => (
        parameters && parameters.name === 'notifications'
          ? Promise.resolve({ state: 'denied' })
          : query.call(window.navigator.permissions, parameters)
      );
      patched.__cartscout = true;
      window.navigator.permissions.query = patched;
    }
  } catch (e) {}
  define(navigator, 'hardwareConcurrency', 8);
  define(navigator, 'deviceMemory', 8);
  define(navigator, 'languages', __LANGUAGES__);
  define(navigator, 'plugins', [1, 2, 3, 4, 5]);
})();
"""


def stealth_enabled() -> bool:
    """Return True when stealth evasion scripts should be applied."""

    raw = os.getenv("CARTSCOUT_STEALTH")
    if raw is None:
        return True
    return raw.strip().lower() not in _FALSE_VALUES


def languages() -> tuple[str, ...]:
    lang_env = os.getenv("CARTSCOUT_LANGS") or "zh-CN,zh,en-US,en"
    return tuple(entry.strip() for entry in lang_env.split(",") if entry.strip()) or ("zh-CN", "zh")


def init_script() -> str:
    rendered = "[" + ", ".join(f"'{lang}'" for lang in languages()) + "]"
    return STEALTH_INIT_SCRIPT.replace("__LANGUAGES__", rendered)


@lru_cache(maxsize=1)
def _stealth_instance() -> Stealth:
    langs = languages()
    return Stealth(
        navigator_languages_override=(langs[0], langs[1] if len(langs) > 1 else langs[0]),
        navigator_platform_override=os.getenv("CARTSCOUT_PLATFORM", "Win32"),
        navigator_user_agent_override=os.getenv("CARTSCOUT_USER_AGENT") or None,
        navigator_vendor_override=os.getenv("CARTSCOUT_VENDOR", "Google Inc."),
    )


_applied: "WeakSet[Any]" = WeakSet()


async def apply_stealth(target: Any) -> None:
    """Register evasions on a context or page and patch its current document.

    Init scripts registered here run again on every navigation. Failures are
    logged and never raised.
    """

    if not stealth_enabled():
        return

    try:
        if target not in _applied:
            await _stealth_instance().apply_stealth_async(target)
            await target.add_init_script(script=init_script())
            _applied.add(target)
    except Exception as exc:
        LOGGER.warning("Stealth registration failed (continuing): %s", exc)

    pages = getattr(target, "pages", None)
    documents = list(pages) if pages is not None else [target]
    for page in documents:
        try:
            await page.evaluate(init_script())
        except Exception as exc:
            LOGGER.debug("Stealth patch on current document failed: %s", exc)


def random_context_options(policy: TimingPolicy) -> dict[str, Any]:
    """Viewport, user agent and locale for a fresh browser context."""

    width, height = policy.choice(list(VIEWPORTS))
    return {
        "viewport": {
            "width": width - policy.randint(0, 40),
            "height": height - policy.randint(0, 60),
        },
        "user_agent": os.getenv("CARTSCOUT_USER_AGENT") or policy.choice(list(USER_AGENTS)),
        "locale": languages()[0],
    }
