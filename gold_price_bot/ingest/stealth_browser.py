"""Anti-detection tweaks applied to the scraper's browser context.

Hides the WebDriver flag, mocks a few navigator properties, and sends the
request headers a regular desktop Chrome would send.
"""

import logging

from playwright.async_api import BrowserContext

logger = logging.getLogger(__name__)


STEALTH_SCRIPTS = [
    # Hide webdriver property
    """
    Object.defineProperty(navigator, 'webdriver', {
        get: () => false
    });
    """,

    # Mock plugins
    """
    Object.defineProperty(navigator, 'plugins', {
        get: () => [1, 2, 3, 4, 5]
    });
    """,

    # Mock languages
    """
    Object.defineProperty(navigator, 'languages', {
        get: () => ['zh-CN', 'zh', 'en-US', 'en']
    });
    """,

    # Chrome runtime
    """
    window.chrome = {
        runtime: {}
    };
    """,
]

EXTRA_HTTP_HEADERS = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Cache-Control": "max-age=0",
    "Sec-Ch-Ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}


async def apply_stealth(context: BrowserContext) -> None:
    """
    Install stealth init scripts and browser-like headers on a context.

    Individual script failures are logged and skipped; a context without
    one of the tweaks is still usable.
    """
    for script in STEALTH_SCRIPTS:
        try:
            await context.add_init_script(script)
        except Exception as e:
            logger.debug(f"Error injecting stealth script: {e}")

    await context.set_extra_http_headers(EXTRA_HTTP_HEADERS)
    logger.debug("Stealth enhancements applied to context")
