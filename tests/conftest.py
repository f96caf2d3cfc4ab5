from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from feedpipe.config import PipelineConfig
from feedpipe.services.cache.dedup import DedupCache
from feedpipe.services.cache.memory_backend import MemoryCacheBackend
from feedpipe.services.fetchers.fetch_manager import FetchManager
from feedpipe.services.fetchers.httpx_fetcher import HttpxFetcher
from feedpipe.services.fetchers.render_proxy_fetcher import RenderProxyFetcher
from feedpipe.services.fetchers.types import FetchResult, Tier
from feedpipe.services.pipeline import AcquisitionPipeline

ARTICLE_HTML = (
    "<html><head><meta property='og:description' content='summary'></head>"
    "<body><div id='articlePage'><p>Full article body</p></div></body></html>"
)
CHALLENGE_HTML = "<html><head><title>Just a moment...</title></head><body>cf_chl_opt</body></html>"


class RecordingTransport:
    """httpx.MockTransport handler that records requests and answers per URL"""

    def __init__(self, routes: Optional[Dict[str, Callable[[httpx.Request], httpx.Response]]] = None,
                 default: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.routes = routes or {}
        self.default = default or (lambda request: httpx.Response(200, text=ARTICLE_HTML))
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(str(request.url), self.default)
        return handler(request)

    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class FakeBrowserFetcher:
    """Stands in for PlaywrightFetcher; tracks calls and concurrent sessions"""

    def __init__(self, html: str = ARTICLE_HTML, error: Optional[Exception] = None, delay: float = 0.0):
        self.html = html
        self.error = error
        self.delay = delay
        self.calls: List[dict] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, url: str, credential: str = "", content_marker: Optional[str] = None) -> FetchResult:
        self.calls.append({"url": url, "credential": credential, "content_marker": content_marker})
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return FetchResult(tier_used=Tier.BROWSER, raw_content=self.html, url=url, final_url=url, status=200)
        finally:
            self.active -= 1


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(credential="env_cookie=1", cache_ttl=60.0, item_limit=20)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def fake_browser() -> FakeBrowserFetcher:
    return FakeBrowserFetcher()


def make_fetch_manager(transport: RecordingTransport, browser=None,
                       proxy_transport: Optional[RecordingTransport] = None,
                       proxy_endpoint: Optional[str] = None) -> FetchManager:
    render_proxy = None
    if proxy_endpoint is not None or proxy_transport is not None:
        render_proxy = RenderProxyFetcher(
            proxy_endpoint,
            transport=proxy_transport.transport() if proxy_transport else None,
        )
    return FetchManager(
        direct=HttpxFetcher(user_agent="feedpipe-test/1.0", transport=transport.transport()),
        browser=browser,
        render_proxy=render_proxy,
    )


def make_pipeline(config: PipelineConfig, transport: RecordingTransport, browser=None,
                  **kwargs) -> AcquisitionPipeline:
    return AcquisitionPipeline(
        config,
        make_fetch_manager(transport, browser=browser),
        DedupCache(MemoryCacheBackend()),
        **kwargs,
    )
