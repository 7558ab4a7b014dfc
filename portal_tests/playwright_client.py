"""
Direct Playwright client for the portal helpers.

Launches a browser in-process and hands out isolated contexts, one per
simulated user. Nothing is shared between contexts: each has its own cookie
jar and storage.

Usage:
    from portal_tests.playwright_client import PlaywrightClient

    async with PlaywrightClient() as client:
        staff_ctx = await client.new_context()
        driver_ctx = await client.new_context()
"""

import logging
from typing import Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from portal_tests.config import settings

logger = logging.getLogger(__name__)

BROWSER_TYPES = ("chromium", "firefox", "webkit")


class PlaywrightClient:
    """
    In-process Playwright browser with a default context and page.

    Example:
        async with PlaywrightClient(headless=True) as client:
            await client.page.goto("http://localhost:8849/login/")
    """

    def __init__(
        self,
        browser_type: str = "chromium",
        headless: Optional[bool] = None,
        timeout: int = 30000,
    ):
        """
        Args:
            browser_type: Browser to use (chromium, firefox, webkit)
            headless: Run in headless mode (None = PLAYWRIGHT_HEADLESS setting)
            timeout: Default action timeout in milliseconds
        """
        if browser_type not in BROWSER_TYPES:
            raise ValueError(f"Unsupported browser type: {browser_type}")
        self.browser_type = browser_type
        self.headless = settings.playwright_headless if headless is None else headless
        self.timeout = timeout

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self):
        """Launch the browser and open the default context and page."""
        self._playwright = await async_playwright().start()
        try:
            launcher = getattr(self._playwright, self.browser_type)
            self._browser = await launcher.launch(headless=self.headless)
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise

        self._context = await self._browser.new_context()
        self._context.set_default_timeout(self.timeout)
        self._page = await self._context.new_page()
        logger.debug(f"Launched {self.browser_type} (headless={self.headless})")

    async def new_context(self, **kwargs) -> BrowserContext:
        """
        Create a new isolated browser context.

        Args:
            **kwargs: Context options (viewport, base_url, locale, ...)
        """
        if not self._browser:
            raise RuntimeError("Client not connected. Use 'async with' or call connect()")

        context = await self._browser.new_context(**kwargs)
        context.set_default_timeout(self.timeout)
        return context

    async def close(self):
        """Close all connections and cleanup resources."""
        if self._page:
            await self._page.close()
            self._page = None

        if self._context:
            await self._context.close()
            self._context = None

        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    @property
    def browser(self) -> Browser:
        if not self._browser:
            raise RuntimeError("Client not connected")
        return self._browser

    @property
    def context(self) -> BrowserContext:
        if not self._context:
            raise RuntimeError("Client not connected")
        return self._context

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("Client not connected or page not created")
        return self._page
