"""
Httpx Fetcher - Direct Tier: einfacher HTTP-Request mit injizierten Credentials
"""

import logging
from datetime import datetime
from typing import Optional

import httpx

from ...utils.url_utils import internal_address_reason
from .types import FetchResult, Tier

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0  # Connect-Timeout: 5 Sekunden
READ_TIMEOUT = 15.0  # Read-Timeout: 15 Sekunden


class InternalAddressBlocked(httpx.RequestError):
    """Request (auch nach Redirect) zeigt auf eine interne Adresse"""


async def _guard_internal_address(request: httpx.Request) -> None:
    """Request-Hook: läuft auch für jeden Redirect-Hop, bevor er gesendet wird"""
    blocked = internal_address_reason(str(request.url))
    if blocked is not None:
        code, message = blocked
        raise InternalAddressBlocked(f"{code}: {message} ({request.url.host})", request=request)


class HttpxFetcher:
    """
    Fetcht URLs mit httpx und einem wiederverwendbaren AsyncClient.

    Keine Retries: der FetchManager versucht jeden Tier genau einmal und
    eskaliert stattdessen zum nächsten Tier.
    Implementiert Context Manager für garantierte Ressourcen-Freigabe.
    """

    def __init__(self, user_agent: str, timeout: float = READ_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.user_agent = user_agent
        self.timeout = timeout
        self._transport = transport  # Für Tests: httpx.MockTransport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Context Manager Entry - stellt Client bereit"""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context Manager Exit - schließt Client garantiert"""
        await self.close()

    async def _ensure_client(self):
        """Stellt sicher, dass ein Client verfügbar ist"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(CONNECT_TIMEOUT, read=self.timeout),
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
                event_hooks={"request": [_guard_internal_address]},
            )
            logger.debug("Httpx client created")

    async def close(self):
        """Schließt den Client"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("Httpx client closed")

    async def fetch(self, url: str, credential: str = "", timeout: Optional[float] = None) -> FetchResult:
        """
        Fetcht eine URL genau einmal.

        Args:
            url: Die zu fetchende URL
            credential: Cookie-Header, leer = anonym
            timeout: Optionaler Read-Timeout in Sekunden für diesen Request

        Returns:
            FetchResult (tier_used=DIRECT). Status und Inhalt werden nicht
            bewertet, das übernimmt der FetchManager.

        Raises:
            httpx.HTTPError: Bei Transport-Fehlern und Timeouts
        """
        await self._ensure_client()

        headers = {"User-Agent": self.user_agent}
        if credential:
            headers["Cookie"] = credential

        request_timeout = httpx.Timeout(CONNECT_TIMEOUT, read=timeout) if timeout else None
        if request_timeout is not None:
            response = await self._client.get(url, headers=headers, timeout=request_timeout)
        else:
            response = await self._client.get(url, headers=headers)

        return FetchResult(
            tier_used=Tier.DIRECT,
            raw_content=response.text,
            url=url,
            final_url=str(response.url),
            status=response.status_code,
            fetched_at=datetime.now().isoformat(),
        )
