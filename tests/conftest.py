"""Shared fixtures: in-memory Playwright fakes and a SQLite-backed gateway."""

from typing import Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from sqlalchemy.ext.asyncio import create_async_engine

from gold_price_bot.db.gateway import PriceGateway
from gold_price_bot.db.models import Base
from gold_price_bot.db.session import build_session_factory
from gold_price_bot.ingest.base import ScraperSessionConfig


class FakeElement:
    def __init__(self, text: Optional[str]):
        self.text = text

    async def text_content(self):
        return self.text


class FakePage:
    """
    Page whose DOM is a mapping of url -> {selector: text}.

    Selectors missing for the current url time out like Playwright does.
    """

    def __init__(self, content: dict[str, dict[str, str]], fail_urls=(), body_text=""):
        self.content = content
        self.fail_urls = set(fail_urls)
        self.body_text = body_text
        self.url: Optional[str] = None
        self.visited: list[str] = []
        self.waits: list[tuple[str, str, int]] = []
        self.screenshots: list[str] = []
        self.routes: list[str] = []
        self.default_timeout = None
        self.default_navigation_timeout = None
        self.closed = False
        self.screenshot_error: Optional[Exception] = None

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        if url in self.fail_urls:
            raise RuntimeError(f"net::ERR_CONNECTION_RESET at {url}")
        self.url = url

    async def wait_for_selector(self, selector, state="visible", timeout=None):
        self.waits.append((selector, state, timeout))
        text = self.content.get(self.url, {}).get(selector)
        if text is None:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return FakeElement(text)

    async def title(self):
        return "Gold quote"

    async def evaluate(self, script):
        return self.body_text

    async def screenshot(self, path=None, full_page=False):
        if self.screenshot_error:
            raise self.screenshot_error
        self.screenshots.append(path)
        with open(path, "wb") as f:
            f.write(b"\x89PNG")

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    def set_default_navigation_timeout(self, timeout):
        self.default_navigation_timeout = timeout

    async def route(self, pattern, handler):
        self.routes.append(pattern)

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, page_factory, options):
        self.page_factory = page_factory
        self.options = options
        self.init_scripts: list[str] = []
        self.headers: dict = {}
        self.pages: list[FakePage] = []
        self.closed = False

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def set_extra_http_headers(self, headers):
        self.headers = headers

    async def new_page(self):
        page = self.page_factory()
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, page_factory, launch_options):
        self.page_factory = page_factory
        self.launch_options = launch_options
        self.connected = True
        self.contexts: list[FakeContext] = []

    def is_connected(self):
        return self.connected

    async def new_context(self, **options):
        context = FakeContext(self.page_factory, options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.connected = False


class FakeChromium:
    def __init__(self, page_factory, fail_launch=False):
        self.page_factory = page_factory
        self.fail_launch = fail_launch
        self.browsers: list[FakeBrowser] = []

    async def launch(self, **options):
        if self.fail_launch:
            raise RuntimeError("Executable doesn't exist")
        browser = FakeBrowser(self.page_factory, options)
        self.browsers.append(browser)
        return browser


class FakePlaywright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stopped = False

    async def start(self):
        self.stopped = False
        return self

    async def stop(self):
        self.stopped = True


class FakePlaywrightFactory:
    """Stands in for ``async_playwright``; every launch shares one FakeChromium."""

    def __init__(self, page_factory=None, fail_launch=False):
        self.pages: list[FakePage] = []
        self._page_factory = page_factory or (lambda: FakePage({}))
        self.chromium = FakeChromium(self._make_page, fail_launch=fail_launch)
        self.instances: list[FakePlaywright] = []

    def _make_page(self):
        page = self._page_factory()
        self.pages.append(page)
        return page

    def __call__(self):
        instance = FakePlaywright(self.chromium)
        self.instances.append(instance)
        return instance

    @property
    def launch_count(self):
        return len(self.chromium.browsers)


@pytest.fixture
def session_config(tmp_path):
    """Session config with every delay and timeout shrunk for tests."""
    return ScraperSessionConfig.with_defaults(
        timeout_ms=100,
        retry_count=3,
        retry_base_delay_ms=0,
        selector_timeout_ms=10,
        human_delay_ms=(0, 0),
        screenshot_dir=str(tmp_path / "screenshots"),
    )


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def gateway(db_engine):
    return PriceGateway(build_session_factory(db_engine))
