"""Human-like scroll and pointer trajectories."""

from __future__ import annotations

from typing import Any

from cartscout.logging_config import get_logger
from cartscout.timing import TimingPolicy

LOGGER = get_logger(__name__)

VIEWPORT_SCRIPT = "() => ({ width: window.innerWidth || 1280, height: window.innerHeight || 800 })"
SCROLL_HEIGHT_SCRIPT = "() => document.body ? document.body.scrollHeight : 0"


class HumanMotion:
    """Scroll and click primitives that always complete their delays.

    Coordinates and distances are used as given; callers clamp them to the
    visible surface.
    """

    def __init__(self, page: Any, policy: TimingPolicy, *, hold_ms: tuple[int, int] = (50, 150)) -> None:
        self.page = page
        self.policy = policy
        self.hold_ms = hold_ms

    async def viewport(self) -> tuple[float, float]:
        try:
            size = await self.page.evaluate(VIEWPORT_SCRIPT)
            return float(size["width"]), float(size["height"])
        except Exception:
            return 1280.0, 800.0

    async def scroll(
        self,
        distance: float | None = None,
        variance: float = 0.1,
        *,
        steps: int | None = None,
        step_delay_ms: tuple[int, int] = (10, 40),
        hesitation: float = 0.2,
        distraction: float = 0.05,
    ) -> float:
        """Slide the page by ``distance`` pixels in many small wheel deltas.

        With probability ``hesitation`` the slide backs up a little partway
        through and then carries on; with probability ``distraction`` it ends
        in a 10-15 s idle break. Returns the net distance scrolled.
        """

        if distance is None:
            _, height = await self.viewport()
            distance = height * 0.8
        if steps is None:
            steps = self.policy.randint(20, 35)
        steps = max(steps, 1)

        actual = distance * (1 + self.policy.uniform(-variance, variance))
        step_size = actual / steps
        hesitate_at = None
        if steps > 2 and self.policy.chance(hesitation):
            hesitate_at = self.policy.randint(2, steps - 1)
        travelled = 0.0
        for index in range(steps):
            if index == hesitate_at:
                await self._hesitate()
            delta = step_size * self.policy.uniform(0.9, 1.1)
            await self.page.mouse.wheel(0, delta)
            travelled += delta
            await self.policy.wait(*step_delay_ms, obey_policy=False)
        if self.policy.chance(distraction):
            LOGGER.info("Distraction break after scroll")
            await self.policy.wait(10000, 15000)
        return travelled

    async def browse(self, max_scrolls: int = 20) -> int:
        """Reading scroll with hesitation noise; stops when the page stops growing."""

        scrolls = 0
        previous_height = 0
        while scrolls < max_scrolls:
            if scrolls > 1 and self.policy.chance(0.2):
                await self.page.mouse.wheel(0, -self.policy.randint(100, 300))
                await self.policy.wait(1000, 2000)

            await self.page.mouse.wheel(0, self.policy.randint(200, 500))
            scrolls += 1

            if self.policy.chance(0.05):
                LOGGER.info("Distraction break during browse")
                await self.policy.wait(10000, 15000)
            else:
                await self.policy.wait(500, 1500)

            height = await self._scroll_height()
            if height == previous_height and scrolls > 5:
                await self.page.mouse.wheel(0, max(height, 1000))
                await self.policy.wait(2000, 2000)
                if await self._scroll_height() == height:
                    LOGGER.info("Reached bottom of page after %d scrolls", scrolls)
                    break
            previous_height = height
        return scrolls

    async def slow_slide(self, screens: int = 3, *, steps_per_screen: int = 30) -> None:
        """Slide down whole screens at a steady pace to trigger lazy loading."""

        _, height = await self.viewport()
        for _ in range(screens):
            step = height / steps_per_screen
            for _ in range(steps_per_screen):
                await self.page.mouse.wheel(0, step)
                await self.policy.wait(20, 40, obey_policy=False)
            await self.policy.wait(800, 1500)

    async def slide_through(self, total_height: float) -> None:
        """Cover ``total_height`` pixels in 10-20 px steps, then nudge up and back."""

        covered = 0.0
        while covered < total_height:
            step = self.policy.randint(10, 20)
            await self.page.mouse.wheel(0, step)
            covered += step
            await self.policy.wait(15, 25, obey_policy=False)
        await self.page.mouse.wheel(0, -200)
        await self.policy.wait(500, 500, obey_policy=False)
        await self.page.mouse.wheel(0, 200)

    async def click(self, x: float, y: float, *, steps: int | None = None) -> None:
        """Approach the target in sub-steps, hover briefly, then press and release."""

        if steps is None:
            steps = self.policy.randint(10, 15)
        await self.page.mouse.move(x, y, steps=steps)
        await self.policy.wait(100, 300, obey_policy=False)
        await self.press(x, y, hold_ms=self.hold_ms, move=False)

    async def press(
        self,
        x: float,
        y: float,
        *,
        hold_ms: tuple[int, int] = (150, 250),
        move: bool = True,
    ) -> None:
        if move:
            await self.page.mouse.move(x, y)
        await self.page.mouse.down()
        await self.policy.wait(*hold_ms, obey_policy=False)
        await self.page.mouse.up()

    async def fidget(self) -> None:
        """Small scroll up and back, used to look active during long pauses."""

        await self.page.mouse.wheel(0, -300)
        await self.policy.wait(2000, 2000)
        await self.page.mouse.wheel(0, 300)

    async def _hesitate(self) -> None:
        """Back up a short way, pause, and cover the same ground again."""

        back = self.policy.randint(30, 120)
        await self.page.mouse.wheel(0, -back)
        await self.policy.wait(300, 800, obey_policy=False)
        await self.page.mouse.wheel(0, back)

    async def _scroll_height(self) -> int:
        try:
            return int(await self.page.evaluate(SCROLL_HEIGHT_SCRIPT) or 0)
        except Exception:
            return 0
