"""Configuration loading for CartScout (YAML file merged over defaults)."""

from __future__ import annotations

import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from cartscout.logging_config import get_logger

LOGGER = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yml")

DEFAULT_CONFIG: dict[str, Any] = {
    "listing": {
        "url": "https://mobile.pinduoduo.com/?lastTabItemID=16",
        "layout": "grid-2x2",
        "product_limit": 45,
    },
    "credentials": {"directory": "cookies"},
    "pricing": {
        "exchange_rate": 200,
        "margin": 0.15,
        "denomination": 10,
    },
    "pacing": {
        "observation_ms": [5000, 10000],
        "between_products_ms": [15000, 30000],
        "screen_settle_ms": [4000, 8000],
        "rotation_settle_ms": [5000, 10000],
        "back_settle_ms": [2000, 4000],
        "back_attempts": 2,
        "rest_every": [15, 24],
        "rest_ms": [60000, 120000],
        "failure_pause_ms": [10000, 20000],
        "max_consecutive_failures": 5,
    },
    "rate_limit": {
        "initial_backoff_s": 60,
        "max_backoff_s": 300,
    },
    "block": {
        "url_markers": ["verification", "punish", "captcha"],
        "status_codes": [403, 424, 429],
    },
    "ai": {
        "base_url": "https://api.deepinfra.com/v1/openai",
        "primary_model": "google/gemma-3-12b-it",
        "fallback_model": "google/gemma-3-4b-it",
        "request_timeout_s": 120,
        "client_timeout_s": 110,
        "option_attempts": 3,
        "max_options": 30,
        "max_reviews": 8,
    },
    "embedding": {
        "enabled": True,
        "model": "google/embeddinggemma-300m",
        "dimensions": 384,
        "timeout_s": 30,
        "max_chars": 1000,
    },
    "catalog": {
        "color_option": "اللون",
        "size_option": "المقاس",
        "skip_edible": False,
    },
    "output": {
        "database_url": "sqlite:///cartscout.sqlite",
        "blocked_markers": ["allow_list"],
    },
    "health_log": "logs/session.log",
    "logging": {
        "level": None,
        "file": "logs/cartscout.log",
        "max_bytes": 2_000_000,
        "backup_count": 5,
        "console": True,
    },
}


def deep_merge(default: Any, override: Any) -> Any:
    if not isinstance(default, dict) or not isinstance(override, dict):
        return deepcopy(override)

    merged: dict[str, Any] = deepcopy(default)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _apply_env_overrides(config: dict[str, Any]) -> None:
    database_url = os.getenv("CARTSCOUT_DATABASE_URL")
    if database_url:
        config["output"]["database_url"] = database_url

    listing_url = os.getenv("CARTSCOUT_LISTING_URL")
    if listing_url:
        config["listing"]["url"] = listing_url

    cookies_dir = os.getenv("CARTSCOUT_COOKIES_DIR")
    if cookies_dir:
        config["credentials"]["directory"] = cookies_dir

    log_dir = os.getenv("CARTSCOUT_LOG_DIR")
    if log_dir:
        config["logging"]["file"] = os.path.join(log_dir, "cartscout.log")


def load_config(path: Path | str | None = None) -> dict[str, Any]:
    """Load ``config.yml`` (if present) over the defaults and apply env overrides."""

    load_dotenv()

    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    else:
        LOGGER.warning("Configuration file %s not found; using defaults", config_path)
        data = {}

    if not isinstance(data, dict):
        raise RuntimeError(f"Configuration root must be a mapping: {config_path}")

    merged = deep_merge(DEFAULT_CONFIG, data) if data else deepcopy(DEFAULT_CONFIG)
    _apply_env_overrides(merged)
    _validate(merged)
    return merged


def _validate(config: dict[str, Any]) -> None:
    layout = config["listing"].get("layout")
    if layout not in {"grid-2x2", "vertical-4"}:
        raise RuntimeError(f"Unsupported listing layout: {layout!r}")

    pricing = config["pricing"]
    if float(pricing.get("margin", 0)) < 0:
        raise RuntimeError("pricing.margin must not be negative")
    if float(pricing.get("denomination", 0)) <= 0:
        raise RuntimeError("pricing.denomination must be positive")

    level = config["logging"].get("level")
    if level is not None and not isinstance(logging.getLevelName(str(level).upper()), int):
        raise RuntimeError(f"Unknown logging.level: {level!r}")

    ai = config["ai"]
    if float(ai["client_timeout_s"]) >= float(ai["request_timeout_s"]):
        LOGGER.warning(
            "ai.client_timeout_s (%s) should be shorter than ai.request_timeout_s (%s)",
            ai["client_timeout_s"],
            ai["request_timeout_s"],
        )


def bounds(value: Any, default: tuple[int, int]) -> tuple[int, int]:
    """Coerce a ``[min, max]`` config entry into an ordered integer pair."""

    try:
        low, high = int(value[0]), int(value[1])
    except (TypeError, ValueError, IndexError):
        return default
    low = max(low, 0)
    if high < low:
        high = low
    return low, high
