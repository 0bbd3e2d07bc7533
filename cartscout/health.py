"""Shared block/rate-limit state observed by page hooks and read by the loop."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from cartscout.logging_config import get_logger

LOGGER = get_logger(__name__)


@dataclass
class RateLimitState:
    """Exponential 429 backoff: starts at ``initial_s``, doubles per hit, capped."""

    initial_s: float = 60.0
    max_s: float = 300.0
    hits: int = 0
    backoff_s: float = 0.0
    last_hit_at: float | None = None
    pending: bool = False

    def record_hit(self, now: float | None = None) -> float:
        self.hits += 1
        self.backoff_s = min(self.backoff_s * 2 if self.backoff_s > 0 else self.initial_s, self.max_s)
        self.last_hit_at = time.time() if now is None else now
        self.pending = True
        return self.backoff_s

    def complete_cooldown(self) -> None:
        """Reset after the enforced pause has been served."""

        self.hits = 0
        self.backoff_s = 0.0
        self.pending = False


@dataclass
class SessionMonitor:
    """Adverse network signals shared between page observers and the traversal loop."""

    log_path: Path
    url_markers: tuple[str, ...] = ("verification", "punish", "captcha")
    block_statuses: frozenset[int] = frozenset({403, 424, 429})
    rate_limit: RateLimitState = field(default_factory=RateLimitState)
    clock: Callable[[], float] = time.time

    def __post_init__(self) -> None:
        self.blocked = False
        self.block_reason: str | None = None
        self.last_main_frame_url: str | None = None
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "SessionMonitor":
        block = config.get("block", {})
        limits = config.get("rate_limit", {})
        return cls(
            log_path=Path(config.get("health_log", "logs/session.log")),
            url_markers=tuple(block.get("url_markers") or ("verification", "punish", "captcha")),
            block_statuses=frozenset(int(code) for code in block.get("status_codes") or (403, 424, 429)),
            rate_limit=RateLimitState(
                initial_s=float(limits.get("initial_backoff_s", 60)),
                max_s=float(limits.get("max_backoff_s", 300)),
            ),
        )

    def log_event(self, event_type: str, message: str, **details: Any) -> None:
        entry = {
            "ts": self.clock(),
            "blocked": self.blocked,
            "event": event_type,
            "message": message,
            "details": details,
        }
        try:
            with self.log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as exc:
            LOGGER.debug("Unable to write session event: %s", exc)

    def flag_block(self, reason: str, **details: Any) -> None:
        if not self.blocked:
            LOGGER.warning("[security-check] Block signal: %s", reason)
        self.blocked = True
        self.block_reason = reason
        self.log_event("block", reason, **details)

    def clear_block(self) -> None:
        self.blocked = False
        self.block_reason = None

    def is_block_url(self, url: str | None) -> bool:
        if not url:
            return False
        lowered = url.lower()
        return any(marker in lowered for marker in self.url_markers)

    # Page observers -------------------------------------------------------------

    def on_response(self, response: Any) -> None:
        try:
            status = int(response.status)
        except (AttributeError, TypeError, ValueError):
            return
        if status == 429:
            backoff = self.rate_limit.record_hit(self.clock())
            LOGGER.warning("Rate limited (429); backoff now %.0fs", backoff)
            self.log_event("rate_limit", "HTTP 429", hits=self.rate_limit.hits, backoff_s=backoff)
        if status in self.block_statuses:
            self.flag_block(f"HTTP {status}", url=getattr(response, "url", None))

    def on_frame_navigated(self, frame: Any) -> None:
        try:
            if frame.parent_frame is not None:
                return
            url = frame.url
        except AttributeError:
            return
        self.last_main_frame_url = url
        if self.is_block_url(url):
            self.flag_block("captcha/verification page", url=url)

    def on_page_error(self, error: Any) -> None:
        text = str(error)
        LOGGER.debug("[browser error] %s", text)
        if "424" in text or "403" in text:
            self.flag_block("page error", error=text[:200])

    def attach(self, page: Any) -> None:
        page.on("response", self.on_response)
        page.on("framenavigated", self.on_frame_navigated)
        page.on("pageerror", self.on_page_error)

    def record_miss(self, *, slot: str, url: str) -> None:
        self.log_event("miss", "click did not open a product", slot=slot, url=url)

    def record_rotation(self, profile: str | None) -> None:
        self.log_event("rotation", "credentials rotated", profile=profile)

    def record_rest(self, seconds: float) -> None:
        self.log_event("rest", "long idle pause", seconds=round(seconds, 1))

