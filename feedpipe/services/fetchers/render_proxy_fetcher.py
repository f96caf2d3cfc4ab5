"""
Render Proxy Fetcher - External Render Tier

Ein externer Rendering-Dienst bekommt URL und Selector als Query-Parameter
und antwortet mit {"data": ["<html-fragment>", ...]}. Verwendet wird das
erste Fragment.
"""

import logging
from datetime import datetime
from typing import Optional

import httpx

from ..errors import TierBlocked, TierUnavailable
from .types import FetchResult, Tier

logger = logging.getLogger(__name__)

RENDER_TIMEOUT = 60.0


class RenderProxyFetcher:
    """Client für den externen Rendering-Proxy"""

    def __init__(self, endpoint: Optional[str], timeout: float = RENDER_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.endpoint = (endpoint or "").strip() or None
        self.timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self.endpoint is not None

    async def fetch(self, url: str, selector: Optional[str] = None) -> FetchResult:
        """
        Rendert eine URL über den Proxy.

        Raises:
            TierUnavailable: Kein Endpoint konfiguriert
            TierBlocked: Transport-Fehler, ungültiges JSON oder leere Fragment-Liste
        """
        if not self.is_configured:
            raise TierUnavailable(Tier.EXTERNAL_RENDER, "no render proxy endpoint configured")

        params = {"url": url}
        if selector:
            params["selector"] = selector

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.endpoint, params=params)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TierBlocked(Tier.EXTERNAL_RENDER, f"render proxy request failed: {e}") from e

        fragments = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(fragments, list) or not fragments:
            raise TierBlocked(Tier.EXTERNAL_RENDER, "render proxy returned no fragments")

        html = fragments[0] if isinstance(fragments[0], str) else ""
        if not html.strip():
            raise TierBlocked(Tier.EXTERNAL_RENDER, "render proxy returned an empty fragment")

        logger.debug(f"Render proxy returned {len(fragments)} fragment(s) for {url}")
        return FetchResult(
            tier_used=Tier.EXTERNAL_RENDER,
            raw_content=html,
            url=url,
            final_url=url,
            status=response.status_code,
            fetched_at=datetime.now().isoformat(),
        )
