"""
Fetch Manager - Orchestriert die Retrieval-Tiers und entscheidet die Eskalation
"""

import dataclasses
import logging
import re
from typing import List, Optional

import httpx
from playwright.async_api import Error as PlaywrightError

from ...config import PipelineConfig
from ..browser_manager import BrowserManager
from ..errors import AllTiersExhausted, CredentialMissing, TierBlocked, TierUnavailable
from .httpx_fetcher import HttpxFetcher
from .playwright_fetcher import PlaywrightFetcher
from .render_proxy_fetcher import RenderProxyFetcher
from .types import FetchResult, ResourceRequest, Tier

logger = logging.getLogger(__name__)

# Anti-Bot Interstitials (Cloudflare "Just a moment...", Challenge-Skripte)
CHALLENGE_PATTERN = re.compile(r"Just a moment\.\.\.|cf_chl_opt|challenge-platform", re.IGNORECASE)


def is_challenge_page(content: str) -> bool:
    """Prüft, ob der Inhalt eine Challenge-/Block-Seite statt echtem Inhalt ist"""
    return bool(content) and CHALLENGE_PATTERN.search(content) is not None


def looks_like_markup(content: str) -> bool:
    """HTML/XML beginnt (nach BOM und Whitespace) mit '<'"""
    return bool(content) and content.lstrip("\ufeff \t\r\n").startswith("<")


class FetchManager:
    """
    Versucht die Tiers in fester Reihenfolge DIRECT → BROWSER → EXTERNAL_RENDER.

    Eskalation:
    - DIRECT läuft immer (außer er braucht Credentials und es gibt keine)
    - BROWSER nur wenn DIRECT gescheitert ist und allow_browser_tier gesetzt ist
    - EXTERNAL_RENDER nur wenn BROWSER gescheitert ist und
      allow_external_render_tier gesetzt ist; ohne Endpoint wird der Tier
      übersprungen

    Jeder Tier wird pro fetch() höchstens einmal versucht. Ein Tier gilt auch
    dann als gescheitert, wenn der Transport erfolgreich war, der Inhalt aber
    kein Markup oder eine Challenge-Seite ist.
    """

    def __init__(self, direct: HttpxFetcher,
                 browser: Optional[PlaywrightFetcher] = None,
                 render_proxy: Optional[RenderProxyFetcher] = None,
                 browser_manager: Optional[BrowserManager] = None):
        self.direct = direct
        self.browser = browser
        self.render_proxy = render_proxy
        self.browser_manager = browser_manager

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "FetchManager":
        browser_manager = BrowserManager(user_agent=config.user_agent)
        return cls(
            direct=HttpxFetcher(user_agent=config.user_agent, timeout=config.direct_timeout),
            browser=PlaywrightFetcher(
                browser_manager,
                navigation_timeout=config.browser_nav_timeout,
                selector_timeout=config.selector_timeout,
            ),
            render_proxy=RenderProxyFetcher(config.render_proxy_url),
            browser_manager=browser_manager,
        )

    async def __aenter__(self):
        await self.direct.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Alle Ressourcen freigeben (httpx Client, Browser)"""
        await self.direct.close()
        if self.browser_manager and self.browser_manager.is_browser_open():
            await self.browser_manager.close()

    async def fetch(self, request: ResourceRequest) -> FetchResult:
        """
        Holt eine Ressource über den ersten Tier, der brauchbaren Inhalt liefert.

        Raises:
            AllTiersExhausted: Kein erlaubter Tier hat brauchbaren Inhalt geliefert
        """
        url = request.target_url
        preferences = request.tier_preferences
        failures: List[TierBlocked] = []
        last_tier: Optional[Tier] = None

        for tier in Tier:
            if tier is Tier.BROWSER and not preferences.allow_browser_tier:
                break
            if tier is Tier.EXTERNAL_RENDER and not (
                preferences.allow_external_render_tier and last_tier is Tier.BROWSER
            ):
                break

            if last_tier is not None:
                logger.info(f"Escalating to {tier.label} tier for {url}")

            try:
                result = await self._attempt(tier, request)
            except TierUnavailable as e:
                logger.info(f"Skipping {tier.label} tier for {url}: {e.reason}")
                continue
            except TierBlocked as e:
                logger.warning(f"{tier.label} tier failed for {url}: {e.reason}")
                failures.append(e)
                last_tier = tier
                continue

            logger.info(f"Fetched {url} via {tier.label} tier ({len(result.raw_content)} chars)")
            return result

        logger.error(f"All permitted tiers exhausted for {url}")
        raise AllTiersExhausted(url, last_tier, failures)

    async def _attempt(self, tier: Tier, request: ResourceRequest) -> FetchResult:
        if tier is Tier.DIRECT:
            return await self._fetch_direct(request)
        if tier is Tier.BROWSER:
            return await self._fetch_browser(request)
        return await self._fetch_external(request)

    async def _fetch_direct(self, request: ResourceRequest) -> FetchResult:
        credential = request.credentials or ""
        if request.tier_preferences.direct_requires_credentials and not credential:
            raise CredentialMissing(Tier.DIRECT)

        try:
            result = await self.direct.fetch(
                request.target_url,
                credential=credential,
                timeout=request.timeout_ms / 1000 if request.timeout_ms else None,
            )
        except httpx.HTTPError as e:
            raise TierBlocked(Tier.DIRECT, f"request failed: {e!r}") from e

        if result.status >= 400:
            raise TierBlocked(Tier.DIRECT, f"HTTP status {result.status}", self._flag(result))
        if not looks_like_markup(result.raw_content):
            raise TierBlocked(Tier.DIRECT, "response is not markup", self._flag(result))
        return self._judge(result)

    async def _fetch_browser(self, request: ResourceRequest) -> FetchResult:
        if self.browser is None:
            raise TierUnavailable(Tier.BROWSER, "browser tier not configured")

        try:
            result = await self.browser.fetch(
                request.target_url,
                credential=request.credentials or "",
                content_marker=request.content_marker,
            )
        except PlaywrightError as e:
            raise TierBlocked(Tier.BROWSER, f"browser session failed: {e}") from e

        if not result.raw_content.strip():
            raise TierBlocked(Tier.BROWSER, "rendered document is empty", result)
        return self._judge(result)

    async def _fetch_external(self, request: ResourceRequest) -> FetchResult:
        if self.render_proxy is None:
            raise TierUnavailable(Tier.EXTERNAL_RENDER, "no render proxy configured")

        result = await self.render_proxy.fetch(request.target_url, selector=request.content_marker)
        return self._judge(result)

    @staticmethod
    def _flag(result: FetchResult) -> FetchResult:
        return dataclasses.replace(result, is_challenge_page=is_challenge_page(result.raw_content))

    def _judge(self, result: FetchResult) -> FetchResult:
        """Challenge-Seiten zählen als gescheiterter Tier"""
        flagged = self._flag(result)
        if flagged.is_challenge_page:
            raise TierBlocked(result.tier_used, "challenge page detected", flagged)
        return flagged
