import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from playwright.async_api import async_playwright, Browser, Page, Playwright

logger = logging.getLogger(__name__)


class BrowserManager:
    """
    Headless-Browser Lifecycle.

    Der Browser-Prozess wird lazy einmal gestartet und wiederverwendet.
    Jede Fetch-Session bekommt einen eigenen BrowserContext (eigene Cookies),
    der beim Verlassen von session() garantiert geschlossen wird - auch bei
    Timeouts und Exceptions.
    """

    def __init__(self, user_agent: str, headless: bool = True):
        self.user_agent = user_agent
        self.headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    def is_browser_open(self) -> bool:
        return self._browser is not None

    async def _ensure_browser(self) -> Browser:
        async with self._lock:
            if self._browser is None:
                logger.info("Starting Playwright browser...")
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                try:
                    self._browser = await self._playwright.chromium.launch(
                        headless=self.headless,
                        args=[
                            '--no-sandbox',
                            '--disable-setuid-sandbox',
                            '--disable-dev-shm-usage'
                        ]
                    )
                except Exception as e:
                    # Treiber nicht weiterlaufen lassen, wenn kein Browser startet
                    logger.error(f"Browser launch failed: {e}")
                    await self._playwright.stop()
                    self._playwright = None
                    raise
                logger.info("Browser started")
            return self._browser

    @asynccontextmanager
    async def session(self, cookies: Optional[List[Dict[str, str]]] = None):
        """
        Scoped Browser-Session.

        Usage:
            async with browser_manager.session(cookies) as page:
                await page.goto(url)
        """
        browser = await self._ensure_browser()
        context = await browser.new_context(user_agent=self.user_agent)
        try:
            if cookies:
                await context.add_cookies(cookies)
            page: Page = await context.new_page()
            yield page
        finally:
            await context.close()

    async def close(self):
        """Shutdown Browser"""
        async with self._lock:
            if self._browser:
                await self._browser.close()
                self._browser = None

            if self._playwright:
                await self._playwright.stop()
                self._playwright = None

            logger.info("Browser closed")
