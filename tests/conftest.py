from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Callable

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cartscout.health import SessionMonitor
from cartscout.storage.db import init_db_safe
from cartscout.timing import TimingPolicy


class FakeMouse:
    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []
        self.on_up: Callable[[], None] | None = None

    async def move(self, x: float, y: float, steps: int = 1) -> None:
        self.events.append(("move", x, y, steps))

    async def down(self) -> None:
        self.events.append(("down",))

    async def up(self) -> None:
        self.events.append(("up",))
        if self.on_up:
            self.on_up()

    async def wheel(self, dx: float, dy: float) -> None:
        self.events.append(("wheel", dx, dy))

    def of(self, kind: str) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] == kind]


class FakeHandle:
    def __init__(self, on_click: Callable[[], None] | None = None) -> None:
        self.on_click = on_click
        self.clicked = 0

    async def click(self) -> None:
        self.clicked += 1
        if self.on_click:
            self.on_click()


class FakePage:
    """Just enough of a Playwright page: scripted ``evaluate`` keyed by script text."""

    def __init__(self, url: str = "about:blank", *, width: int = 390, height: int = 844) -> None:
        self.url = url
        self.mouse = FakeMouse()
        self.scripts: dict[str, Any] = {}
        self.handles: dict[str, FakeHandle] = {}
        self.listeners: dict[str, list[Callable[..., Any]]] = {}
        self.visited: list[str] = []
        self.back_to: list[str] = []
        self.back_calls = 0
        self.goto_failures = 0
        self.page_title = ""
        self.viewport = {"width": width, "height": height}

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if "innerWidth" in script:
            return dict(self.viewport)
        value = self.scripts.get(script)
        if callable(value):
            return value(arg)
        return value

    async def goto(self, url: str, wait_until: str = "load", timeout: int = 0) -> Any:
        if self.goto_failures > 0:
            self.goto_failures -= 1
            raise RuntimeError("net::ERR_TIMED_OUT")
        self.visited.append(url)
        self.url = url
        return SimpleNamespace(status=200)

    async def go_back(self, wait_until: str = "load", timeout: int = 0) -> None:
        self.back_calls += 1
        if self.back_to:
            self.url = self.back_to.pop(0)

    async def title(self) -> str:
        return self.page_title

    async def query_selector(self, selector: str) -> FakeHandle | None:
        return self.handles.get(selector)

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.listeners.setdefault(event, []).append(handler)


class FakeContext:
    def __init__(self) -> None:
        self.jar: list[dict[str, Any]] = []
        self.cleared = 0
        self.added: list[list[dict[str, Any]]] = []

    async def clear_cookies(self) -> None:
        self.cleared += 1
        self.jar = []

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        self.added.append(list(cookies))
        self.jar.extend(cookies)

    async def cookies(self) -> list[dict[str, Any]]:
        return list(self.jar)


class FakeCompletionClient:
    """Stands in for ``CompletionClient``; ``responder(model, messages)`` returns text or raises."""

    def __init__(self, responder: Callable[[str, list[dict[str, str]]], str], *, vector: list[float] | None = None) -> None:
        self.responder = responder
        self.vector = vector or [0.1, 0.2, 0.3]
        self.calls: list[tuple[str, list[dict[str, str]]]] = []
        self.embedded: list[str] = []
        self.enabled = True

    async def complete(self, *, model: str, messages: list[dict[str, str]], **_: Any) -> str:
        self.calls.append((model, messages))
        return self.responder(model, messages)

    async def embed(self, text: str, *, model: str, dimensions: int, timeout_s: float) -> list[float]:
        self.embedded.append(text)
        return list(self.vector[:dimensions])

    def models(self) -> list[str]:
        return [model for model, _ in self.calls]


def echo_batch(model: str, messages: list[dict[str, str]]) -> str:
    items = json.loads(messages[-1]["content"])
    return json.dumps({"translations": [f"ت-{index}" for index, _ in enumerate(items)]}, ensure_ascii=False)


AI_CONFIG = {
    "primary_model": "big-model",
    "fallback_model": "small-model",
    "option_attempts": 3,
}


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def policy(sleeps: list[float]) -> TimingPolicy:
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return TimingPolicy.seeded(7, sleep=_sleep)


@pytest.fixture()
def monitor(tmp_path) -> SessionMonitor:
    return SessionMonitor(log_path=tmp_path / "session.log", clock=lambda: 1000.0)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db_safe(engine)
    try:
        yield sessionmaker(engine, expire_on_commit=False, future=True)
    finally:
        engine.dispose()
