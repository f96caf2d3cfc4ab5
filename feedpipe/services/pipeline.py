"""
Acquisition Pipeline

Verbindet Credential Resolver, Dedup Cache, FetchManager, Content Extractor
und Concurrency Governor:

    Route → acquire_batch()
            ├─ resolve_credentials()            (einmal pro Batch)
            └─ run_batch()                      (seriell wenn Browser erlaubt)
                 └─ acquire()                   (pro Item)
                      └─ DedupCache.get_or_compute(kanonische URL)
                           └─ FetchManager.fetch() → extract()
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..config import PipelineConfig
from ..utils.url_utils import canonicalize_url
from .cache.backend_factory import get_cache_backend
from .cache.dedup import DedupCache
from .credentials import CredentialSource, ResolvedCredential, resolve_credentials
from .errors import AcquisitionError, AllTiersExhausted, ProducerFailed
from .extractor import DEFAULT_PROFILE, EMPTY_OUTCOME, ExtractionOutcome, ExtractionProfile, extract
from .fetchers.fetch_manager import FetchManager
from .fetchers.types import ResourceRequest, Tier, TierPreferences
from .governor import run_batch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcquisitionResult:
    """Ergebnis einer Ressource: Inhalt oder lokaler Fehler"""
    url: str
    tier_used: Optional[Tier]
    outcome: ExtractionOutcome
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def html(self) -> Optional[str]:
        return self.outcome.html

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "tier_used": self.tier_used.label if self.tier_used else None,
            "outcome": self.outcome.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AcquisitionResult":
        tier = data.get("tier_used")
        return cls(
            url=data["url"],
            tier_used=Tier[tier.upper()] if tier else None,
            outcome=ExtractionOutcome.from_dict(data.get("outcome") or {}),
        )


@dataclass
class BatchResult:
    """Geordnete Ergebnisse eines Batches (Reihenfolge = Eingabe)"""
    results: List[AcquisitionResult]
    credential_source: CredentialSource = CredentialSource.NONE
    errors: List[Exception] = field(init=False, default_factory=list)

    def __post_init__(self):
        self.errors = [r.error for r in self.results if r.error is not None]

    @property
    def all_failed(self) -> bool:
        return bool(self.results) and len(self.errors) == len(self.results)

    def raise_if_empty(self) -> "BatchResult":
        """
        Wirft den ersten Fehler, wenn kein einziges Item erfolgreich war.

        Teilweise Degradierung (einzelne Items ohne Inhalt) lässt den Batch
        dagegen bestehen.
        """
        if self.all_failed:
            raise self.errors[0]
        return self

    def drop_failed(self) -> List[AcquisitionResult]:
        return [r for r in self.results if r.ok]

    def drop_empty(self) -> List[AcquisitionResult]:
        return [r for r in self.results if r.ok and r.html is not None]


class AcquisitionPipeline:
    """
    Resiliente Content-Acquisition für eine Quelle (ein ExtractionProfile).

    accept_degraded=False behandelt reine Meta-Description-Treffer wie
    "kein Inhalt" (html=None) statt als degradierten Erfolg.
    """

    def __init__(self, config: PipelineConfig, fetch_manager: FetchManager,
                 cache: DedupCache, profile: ExtractionProfile = DEFAULT_PROFILE,
                 accept_degraded: bool = True):
        self.config = config
        self.fetch_manager = fetch_manager
        self.cache = cache
        self.profile = profile
        self.accept_degraded = accept_degraded

    @classmethod
    def from_config(cls, config: PipelineConfig,
                    profile: ExtractionProfile = DEFAULT_PROFILE) -> "AcquisitionPipeline":
        cache = DedupCache(get_cache_backend(config), failure_ttl=config.cache_failure_ttl)
        return cls(config, FetchManager.from_config(config), cache, profile)

    async def __aenter__(self):
        await self.fetch_manager.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.fetch_manager.close()
        await self.cache.close()

    def default_preferences(self) -> TierPreferences:
        return TierPreferences(
            allow_browser_tier=self.config.use_browser,
            allow_external_render_tier=self.config.use_render_proxy,
        )

    def resolve_credentials(self, query: Optional[str] = None, header: Optional[str] = None,
                            layered: bool = False) -> ResolvedCredential:
        return resolve_credentials(query=query, header=header, env=self.config.credential,
                                   layered=layered, context=self.profile.name)

    def build_request(self, url: str, credential: str = "",
                      preferences: Optional[TierPreferences] = None) -> ResourceRequest:
        return ResourceRequest(
            id=canonicalize_url(url),
            url=url,
            credentials=credential or None,
            tier_preferences=preferences or self.default_preferences(),
            timeout_ms=int(self.config.direct_timeout * 1000),
            content_marker=self.profile.content_marker,
        )

    async def acquire(self, request: ResourceRequest) -> AcquisitionResult:
        """
        Holt und extrahiert eine Ressource, dedupliziert über den Cache.

        Raises:
            ProducerFailed: Fetch fehlgeschlagen (error = AllTiersExhausted o.ä.)
        """
        async def producer() -> dict:
            fetched = await self.fetch_manager.fetch(request)
            outcome = extract(fetched, self.profile)
            if outcome.degraded and not self.accept_degraded:
                logger.info(f"Dropping metadata-only content for {request.target_url}")
                outcome = EMPTY_OUTCOME
            return AcquisitionResult(
                url=request.target_url,
                tier_used=fetched.tier_used,
                outcome=outcome,
            ).to_dict()

        data = await self.cache.get_or_compute(request.id, self.config.cache_ttl, producer)
        return AcquisitionResult.from_dict(data)

    async def acquire_one(self, request: ResourceRequest) -> AcquisitionResult:
        """Wie acquire(), aber Fehler einer Ressource bleiben lokal im Ergebnis"""
        try:
            return await self.acquire(request)
        except ProducerFailed as e:
            error = e.error if isinstance(e.error, AcquisitionError) else e
            return AcquisitionResult(url=request.target_url, tier_used=None,
                                     outcome=EMPTY_OUTCOME, error=error)

    async def acquire_batch(self, urls: Sequence[str], query_credential: Optional[str] = None,
                            header_credential: Optional[str] = None,
                            preferences: Optional[TierPreferences] = None,
                            limit: Optional[int] = None, layered: bool = False) -> BatchResult:
        """
        Holt einen Batch von URLs.

        Credentials werden einmal pro Batch aufgelöst. Darf der Batch den
        Browser-Tier benutzen, läuft er seriell, sonst parallel. Fehler
        einzelner Items brechen die anderen nicht ab.

        limit < 1 wird auf 1 angehoben; None = config.item_limit.
        """
        swept = await self.cache.sweep()
        if swept:
            logger.debug(f"Swept {swept} expired cache entries")

        resolved = self.resolve_credentials(query_credential, header_credential, layered=layered)
        preferences = preferences or self.default_preferences()
        limit = max(1, limit if limit is not None else self.config.item_limit)

        requests = [self.build_request(url, resolved.credential, preferences) for url in list(urls)[:limit]]
        results = await run_batch(requests, preferences.allow_browser_tier, self.acquire_one)

        batch = BatchResult(results, credential_source=resolved.provenance)
        if batch.errors:
            exhausted = sum(1 for e in batch.errors if isinstance(e, AllTiersExhausted))
            logger.warning(f"{len(batch.errors)}/{len(results)} items failed ({exhausted} exhausted all tiers)")
        return batch
