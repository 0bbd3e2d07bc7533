import asyncio

import pytest

from conftest import FakePage

from cartscout.playwright_env import attach_attempts, launch_kwargs, open_browser, remove_stale_locks


class FakeBrowserContext:
    def __init__(self, pages=None) -> None:
        self.pages = list(pages or [])

    async def new_page(self):
        page = FakePage()
        self.pages.append(page)
        return page


class FakeBrowser:
    def __init__(self, contexts=None) -> None:
        self.contexts = list(contexts or [])
        self.context_options = None

    async def new_context(self, **options):
        self.context_options = options
        context = FakeBrowserContext()
        self.contexts.append(context)
        return context


class FakeChromium:
    def __init__(self, *, attach_failures: int, attached=None) -> None:
        self.attach_failures = attach_failures
        self.attached = attached
        self.connects = 0
        self.launches = 0

    async def connect_over_cdp(self, endpoint: str):
        self.connects += 1
        if self.connects <= self.attach_failures:
            raise RuntimeError(f"connect ECONNREFUSED {endpoint}")
        return self.attached

    async def launch(self, **kwargs):
        self.launches += 1
        return FakeBrowser()


class FakePlaywright:
    def __init__(self, chromium: FakeChromium) -> None:
        self.chromium = chromium


@pytest.fixture()
def attach_env(monkeypatch):
    monkeypatch.setenv("CARTSCOUT_CDP_URL", "http://127.0.0.1:9222")
    monkeypatch.setenv("CARTSCOUT_GUEST", "0")
    for name in ("CARTSCOUT_USER_DATA_DIR", "CARTSCOUT_CDP_ATTEMPTS", "CARTSCOUT_PROXY"):
        monkeypatch.delenv(name, raising=False)


def test_attach_is_retried_before_giving_up(attach_env, policy, sleeps) -> None:
    shop_tab = FakePage("https://mobile.pinduoduo.com/")
    running = FakeBrowser([FakeBrowserContext([FakePage("about:blank"), shop_tab])])
    chromium = FakeChromium(attach_failures=2, attached=running)

    handle = asyncio.run(open_browser(FakePlaywright(chromium), policy, target_host="mobile.pinduoduo.com"))

    assert chromium.connects == 3
    assert chromium.launches == 0
    assert handle.attached is True
    assert handle.page is shop_tab
    assert len(sleeps) == 2 and all(2 <= seconds <= 5 for seconds in sleeps)


def test_fresh_launch_after_attach_attempts_run_out(attach_env, monkeypatch, policy) -> None:
    monkeypatch.setenv("CARTSCOUT_CDP_ATTEMPTS", "2")
    chromium = FakeChromium(attach_failures=10)

    handle = asyncio.run(open_browser(FakePlaywright(chromium), policy))

    assert chromium.connects == 2
    assert chromium.launches == 1
    assert handle.attached is False
    assert handle.browser.context_options["viewport"]


def test_attach_attempts_default_and_floor(monkeypatch) -> None:
    monkeypatch.delenv("CARTSCOUT_CDP_ATTEMPTS", raising=False)
    assert attach_attempts() == 5
    monkeypatch.setenv("CARTSCOUT_CDP_ATTEMPTS", "0")
    assert attach_attempts() == 1


def test_stale_singleton_locks_are_removed(tmp_path) -> None:
    (tmp_path / "SingletonLock").write_text("host-1234", encoding="utf-8")
    (tmp_path / "SingletonCookie").write_text("", encoding="utf-8")
    (tmp_path / "Preferences").write_text("{}", encoding="utf-8")

    assert remove_stale_locks(tmp_path) == ["SingletonLock", "SingletonCookie"]
    assert sorted(path.name for path in tmp_path.iterdir()) == ["Preferences"]


def test_launch_flags_hide_automation(monkeypatch) -> None:
    monkeypatch.setenv("CARTSCOUT_PROXY", "http://user:pw@10.0.0.2:8080")
    monkeypatch.setenv("CARTSCOUT_CHROMIUM_ARGS", "--mute-audio")
    kwargs = launch_kwargs()
    assert "--disable-blink-features=AutomationControlled" in kwargs["args"]
    assert kwargs["args"][-1] == "--mute-audio"
    assert kwargs["proxy"] == {"server": "http://10.0.0.2:8080", "username": "user", "password": "pw"}
