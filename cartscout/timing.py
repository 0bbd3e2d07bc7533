"""Central jitter/delay policy used by every human-paced interaction."""

from __future__ import annotations

import asyncio
import os
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, MutableSequence, TypeVar

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


@dataclass
class TimingPolicy:
    """Randomness and sleeping in one injectable object.

    ``multiplier`` scales every policy-obeying wait (``CARTSCOUT_WAIT_MULTIPLIER``);
    tests pass a seeded ``rng`` and a recording ``sleep``.
    """

    rng: random.Random = field(default_factory=random.Random)
    multiplier: float = field(default_factory=lambda: max(_env_float("CARTSCOUT_WAIT_MULTIPLIER", 1.0), 0.0))
    sleep: Sleeper = asyncio.sleep

    @classmethod
    def seeded(cls, seed: int, *, sleep: Sleeper | None = None, multiplier: float = 1.0) -> "TimingPolicy":
        return cls(rng=random.Random(seed), multiplier=multiplier, sleep=sleep or asyncio.sleep)

    def scaled_bounds(self, min_ms: int, max_ms: int) -> tuple[int, int]:
        if min_ms < 0:
            min_ms = 0
        if max_ms < min_ms:
            max_ms = min_ms
        return int(min_ms * self.multiplier), int(max_ms * self.multiplier)

    def delay_seconds(self, min_ms: int, max_ms: int, *, obey_policy: bool = True) -> float:
        if obey_policy:
            min_ms, max_ms = self.scaled_bounds(min_ms, max_ms)
        else:
            min_ms, max_ms = max(min_ms, 0), max(max_ms, min_ms, 0)
        return self.rng.uniform(min_ms / 1000, max_ms / 1000)

    async def wait(self, min_ms: int = 350, max_ms: int = 900, *, obey_policy: bool = True) -> float:
        """Sleep for a random, human-like interval between the provided bounds."""

        delay = self.delay_seconds(min_ms, max_ms, obey_policy=obey_policy)
        await self.sleep(delay)
        return delay

    async def pause(self, seconds: float) -> None:
        """Sleep for an exact duration (backoff cooldowns)."""

        if seconds > 0:
            await self.sleep(seconds)

    def uniform(self, low: float, high: float) -> float:
        return self.rng.uniform(low, high)

    def randint(self, low: int, high: int) -> int:
        return self.rng.randint(low, high)

    def chance(self, probability: float) -> bool:
        return self.rng.random() < probability

    def jitter(self, spread: float) -> float:
        """Return a symmetric offset in ``[-spread / 2, spread / 2]``."""

        return (self.rng.random() - 0.5) * spread

    def choice(self, items: list[T]) -> T:
        return self.rng.choice(items)

    def shuffle(self, items: MutableSequence[T]) -> None:
        self.rng.shuffle(items)
