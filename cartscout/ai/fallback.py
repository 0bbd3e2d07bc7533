"""Ordered model tiers with per-tier retry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_none

from cartscout.errors import RemoteServiceError, TiersExhaustedError
from cartscout.logging_config import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

# Option and review batches start on the small model; naming and structured
# output start on the large one.
_TIER_ORDER = {
    "name": ("primary_model", "fallback_model"),
    "description": ("primary_model", "fallback_model"),
    "metadata": ("primary_model", "fallback_model"),
    "option": ("fallback_model", "primary_model"),
    "review": ("fallback_model", "primary_model"),
}


@dataclass(frozen=True)
class Tier:
    model: str
    attempts: int = 1


def tiers_for(ai_config: dict[str, Any], context: str) -> list[Tier]:
    order = _TIER_ORDER.get(context, _TIER_ORDER["name"])
    attempts = int(ai_config.get("option_attempts", 3)) if context == "option" else 1
    return [Tier(model=str(ai_config[key]), attempts=attempts) for key in order if ai_config.get(key)]


async def run_tiers(
    tiers: Sequence[Tier],
    call: Callable[[str], Awaitable[T]],
    *,
    label: str,
) -> T:
    """Try ``call(model)`` tier by tier; raise ``TiersExhaustedError`` when none succeeds."""

    last_error: RemoteServiceError | None = None
    for tier in tiers:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(tier.attempts, 1)),
            wait=wait_none(),
            retry=retry_if_exception_type(RemoteServiceError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        LOGGER.info("[ai] %s retry %d on %s", label, attempt.retry_state.attempt_number, tier.model)
                    return await call(tier.model)
        except RemoteServiceError as exc:
            LOGGER.warning("[ai] %s failed on %s: %s", label, tier.model, exc)
            last_error = exc
    raise TiersExhaustedError(f"{label}: every model tier failed") from last_error
