"""
Playwright Fetcher - Browser Tier: rendert die Seite im Headless-Browser
"""

import logging
from datetime import datetime
from typing import Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ...utils.url_utils import get_cookie_domain, parse_cookie_header
from ..browser_manager import BrowserManager
from .types import FetchResult, Tier

logger = logging.getLogger(__name__)

NAVIGATION_TIMEOUT = 60.0
SELECTOR_TIMEOUT = 15.0


class PlaywrightFetcher:
    """
    Fetcht URLs mit Playwright.

    Pro URL wird eine eigene Session (BrowserContext + Page) über den
    BrowserManager geöffnet und danach wieder geschlossen. Sessions werden
    nie zwischen parallelen Fetches geteilt.

    Timeouts beim Navigieren oder beim Warten auf den Content-Selector sind
    nicht fatal: gelesen wird, was bis dahin gerendert wurde.
    """

    def __init__(self, browser_manager: BrowserManager,
                 navigation_timeout: float = NAVIGATION_TIMEOUT,
                 selector_timeout: float = SELECTOR_TIMEOUT):
        self.browser_manager = browser_manager
        self.navigation_timeout = navigation_timeout
        self.selector_timeout = selector_timeout

    async def fetch(self, url: str, credential: str = "",
                    content_marker: Optional[str] = None) -> FetchResult:
        """
        Fetcht eine URL mit Playwright.

        Args:
            url: Die zu fetchende URL
            credential: Cookie-Header, wird als Session-Cookies gesetzt
            content_marker: Selector, dessen Erscheinen "fertig gerendert" bedeutet

        Returns:
            FetchResult (tier_used=BROWSER)
        """
        cookies = []
        domain = get_cookie_domain(url)
        if credential and domain:
            cookies = parse_cookie_header(credential, domain)

        async with self.browser_manager.session(cookies) as page:
            status = 0
            try:
                response = await page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=int(self.navigation_timeout * 1000),
                )
                if response is not None:
                    status = response.status
            except PlaywrightTimeoutError:
                logger.warning(f"Navigation timeout for {url}, reading partial content")

            if content_marker:
                try:
                    await page.wait_for_selector(content_marker, timeout=int(self.selector_timeout * 1000))
                except PlaywrightTimeoutError:
                    # Kein Abbruch: Teilinhalt ist oft trotzdem brauchbar
                    logger.info(f"Selector '{content_marker}' not found within {self.selector_timeout}s for {url}")

            content = await page.content()

            return FetchResult(
                tier_used=Tier.BROWSER,
                raw_content=content,
                url=url,
                final_url=page.url or url,
                status=status,
                fetched_at=datetime.now().isoformat(),
            )
