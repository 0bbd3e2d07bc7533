"""Rotating pool of saved browser cookie sets."""

from __future__ import annotations

import json
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cartscout.logging_config import get_logger

LOGGER = get_logger(__name__)

_SAME_SITE = {"strict": "Strict", "lax": "Lax", "none": "None", "no_restriction": "None"}


@dataclass
class CredentialProfile:
    """Cookies for one account identity and the file they were read from."""

    path: Path
    cookies: list[dict[str, Any]] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.name


def normalize_cookie(raw: dict[str, Any]) -> dict[str, Any] | None:
    """Convert an exported cookie record into Playwright's ``add_cookies`` shape."""

    name = raw.get("name")
    value = raw.get("value")
    if not name or value is None:
        return None

    cookie: dict[str, Any] = {"name": str(name), "value": str(value)}
    if raw.get("url"):
        cookie["url"] = raw["url"]
    else:
        domain = raw.get("domain")
        if not domain:
            return None
        cookie["domain"] = domain
        cookie["path"] = raw.get("path") or "/"

    expires = raw.get("expires", raw.get("expirationDate"))
    if isinstance(expires, (int, float)) and expires > 0 and not raw.get("session"):
        cookie["expires"] = float(expires)
    if "httpOnly" in raw:
        cookie["httpOnly"] = bool(raw["httpOnly"])
    if "secure" in raw:
        cookie["secure"] = bool(raw["secure"])
    same_site = _SAME_SITE.get(str(raw.get("sameSite", "")).lower())
    if same_site:
        cookie["sameSite"] = same_site
    return cookie


class CredentialPool:
    """Directory of independent cookie files, one per account."""

    def __init__(self, directory: Path | str, *, rng: random.Random | None = None) -> None:
        self.directory = Path(directory)
        self.rng = rng or random.Random()
        self.active: CredentialProfile | None = None

    def files(self) -> list[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(path for path in self.directory.glob("*.json") if path.is_file())

    def load_random(self) -> CredentialProfile | None:
        """Pick a cookie file at random; ``None`` when the pool is empty or unreadable."""

        candidates = self.files()
        if not candidates:
            LOGGER.info("No cookie files found in %s; proceeding without credentials", self.directory)
            return None

        path = self.rng.choice(candidates)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.error("Failed to read cookie file %s: %s", path.name, exc)
            return None

        if not isinstance(data, list):
            LOGGER.error("Cookie file %s does not contain a list", path.name)
            return None

        cookies = [cookie for cookie in (normalize_cookie(item) for item in data if isinstance(item, dict)) if cookie]
        return CredentialProfile(path=path, cookies=cookies)

    async def clear_active(self, context: Any) -> None:
        """Wipe every cookie from the live context before a new profile goes in."""

        try:
            await context.clear_cookies()
        except Exception as exc:
            LOGGER.error("Failed to clear existing cookies: %s", exc)

    async def install(self, context: Any) -> CredentialProfile | None:
        await self.clear_active(context)
        profile = self.load_random()
        self.active = profile
        if profile is None:
            return None
        if profile.cookies:
            try:
                await context.add_cookies(profile.cookies)
            except Exception as exc:
                LOGGER.error("Failed to install cookies from %s: %s", profile.name, exc)
                return profile
        LOGGER.info("[cookie-rotation] Loaded %d cookies from %s", len(profile.cookies), profile.name)
        return profile

    async def rotate(self, context: Any) -> CredentialProfile | None:
        LOGGER.warning("[cookie-rotation] Rotating credentials after block signal")
        return await self.install(context)

    async def persist(self, context: Any) -> bool:
        """Write the context's current cookies back to the active profile's file."""

        if self.active is None:
            return False
        try:
            cookies = await context.cookies()
            self.active.path.write_text(json.dumps(cookies, ensure_ascii=False, indent=2), encoding="utf-8")
        except Exception as exc:
            LOGGER.error("Failed to save cookies to %s: %s", self.active.name, exc)
            return False
        self.active.cookies = list(cookies)
        return True
