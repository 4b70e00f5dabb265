"""Tests for browser session lifecycle."""

import pytest

from conftest import FakePage, FakePlaywrightFactory
from gold_price_bot.ingest.base import BrowserSessionError
from gold_price_bot.ingest.browser_session import (
    LAUNCH_ARGS,
    BrowserSessionManager,
    detect_system_browser,
    should_block_resource,
)
from gold_price_bot.ingest.stealth_browser import EXTRA_HTTP_HEADERS, STEALTH_SCRIPTS


@pytest.mark.parametrize("resource_type", ["image", "stylesheet", "font", "media"])
def test_heavy_resources_are_blocked(resource_type):
    assert should_block_resource(resource_type) is True


@pytest.mark.parametrize("resource_type", ["document", "script", "xhr", "fetch"])
def test_page_resources_are_allowed(resource_type):
    assert should_block_resource(resource_type) is False


def test_detect_system_browser_unknown_platform():
    assert detect_system_browser("sunos5") is None


def test_detect_system_browser_finds_existing_path(monkeypatch):
    monkeypatch.setattr(
        "gold_price_bot.ingest.browser_session.os.path.exists",
        lambda path: path == "/usr/bin/chromium",
    )
    assert detect_system_browser("linux") == "/usr/bin/chromium"


@pytest.mark.asyncio
async def test_session_is_created_once_and_reused(session_config):
    factory = FakePlaywrightFactory()
    manager = BrowserSessionManager(session_config, playwright_factory=factory)

    first = await manager.ensure_session()
    second = await manager.ensure_session()
    await manager.new_page()

    assert first is second
    assert manager.launch_count == 1
    assert factory.launch_count == 1


@pytest.mark.asyncio
async def test_launch_and_context_options(session_config):
    factory = FakePlaywrightFactory()
    manager = BrowserSessionManager(session_config, playwright_factory=factory)

    context = await manager.ensure_session()

    browser = factory.chromium.browsers[0]
    assert browser.launch_options["headless"] is True
    assert browser.launch_options["args"] == LAUNCH_ARGS
    assert "executable_path" not in browser.launch_options
    assert context.options["viewport"] == {"width": 1920, "height": 1080}
    assert context.options["locale"] == "en-US"
    assert context.options["timezone_id"] == "America/New_York"
    assert context.options["user_agent"] == session_config.user_agent
    assert context.init_scripts == STEALTH_SCRIPTS
    assert context.headers == EXTRA_HTTP_HEADERS


@pytest.mark.asyncio
async def test_new_page_applies_timeouts_and_resource_filter(session_config):
    factory = FakePlaywrightFactory()
    manager = BrowserSessionManager(session_config, playwright_factory=factory)

    page = await manager.new_page()

    assert page.default_timeout == session_config.timeout_ms
    assert page.default_navigation_timeout == session_config.timeout_ms
    assert page.routes == ["**/*"]


@pytest.mark.asyncio
async def test_disconnected_browser_is_relaunched(session_config):
    factory = FakePlaywrightFactory()
    manager = BrowserSessionManager(session_config, playwright_factory=factory)

    await manager.new_page()
    factory.chromium.browsers[0].connected = False
    await manager.new_page()

    assert manager.launch_count == 2
    assert factory.instances[0].stopped is True


@pytest.mark.asyncio
async def test_cleanup_is_idempotent(session_config):
    factory = FakePlaywrightFactory()
    manager = BrowserSessionManager(session_config, playwright_factory=factory)

    context = await manager.ensure_session()
    await manager.cleanup()
    await manager.cleanup()

    assert context.closed is True
    assert factory.chromium.browsers[0].connected is False
    assert factory.instances[0].stopped is True
    assert manager.is_alive is False


@pytest.mark.asyncio
async def test_cleanup_after_cleanup_then_relaunch(session_config):
    factory = FakePlaywrightFactory()
    manager = BrowserSessionManager(session_config, playwright_factory=factory)

    await manager.ensure_session()
    await manager.cleanup()
    await manager.ensure_session()

    assert manager.launch_count == 2
    assert manager.is_alive is True


@pytest.mark.asyncio
async def test_launch_failure_raises_session_error(session_config):
    factory = FakePlaywrightFactory(fail_launch=True)
    manager = BrowserSessionManager(session_config, playwright_factory=factory)

    with pytest.raises(BrowserSessionError):
        await manager.ensure_session()

    assert manager.is_alive is False
    assert factory.instances[0].stopped is True


def failing_page_factory(failures):
    """Page factory whose first ``failures`` calls raise, like a crashed renderer."""
    calls = {"count": 0}

    def make_page():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise RuntimeError("Target page, context or browser has been closed")
        return FakePage({})

    return make_page


@pytest.mark.asyncio
async def test_page_creation_failure_rebuilds_session_once(session_config):
    factory = FakePlaywrightFactory(page_factory=failing_page_factory(1))
    manager = BrowserSessionManager(session_config, playwright_factory=factory)

    page = await manager.new_page()

    assert manager.launch_count == 2
    assert factory.chromium.browsers[0].connected is False
    assert page.routes == ["**/*"]
    assert page.default_timeout == session_config.timeout_ms
    assert page.default_navigation_timeout == session_config.timeout_ms


@pytest.mark.asyncio
async def test_page_creation_error_propagates_after_one_rebuild(session_config):
    factory = FakePlaywrightFactory(page_factory=failing_page_factory(2))
    manager = BrowserSessionManager(session_config, playwright_factory=factory)

    with pytest.raises(RuntimeError):
        await manager.new_page()

    assert manager.launch_count == 2
    assert factory.pages == []
