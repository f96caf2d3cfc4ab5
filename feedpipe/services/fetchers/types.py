"""
Shared Types für Fetcher Module
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Optional


class Tier(IntEnum):
    """Retrieval-Tiers in fester Eskalations-Reihenfolge"""
    DIRECT = 1
    BROWSER = 2
    EXTERNAL_RENDER = 3

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class TierPreferences:
    """Welche teuren Tiers der Aufrufer erlaubt"""
    allow_browser_tier: bool = False
    allow_external_render_tier: bool = False
    direct_requires_credentials: bool = False  # Direct ohne Cookie überspringen


@dataclass(frozen=True)
class ResourceRequest:
    """Eine zu holende Ressource. `id` ist gleichzeitig der Cache-Key."""
    id: str
    credentials: Optional[str] = None
    tier_preferences: TierPreferences = field(default_factory=TierPreferences)
    timeout_ms: int = 15000
    url: Optional[str] = None
    content_marker: Optional[str] = None  # Selector, auf den der Browser wartet

    @property
    def target_url(self) -> str:
        return self.url or self.id


@dataclass(frozen=True)
class FetchResult:
    """Standardisiertes Ergebnis eines Fetch-Vorgangs"""
    tier_used: Tier
    raw_content: str
    is_challenge_page: bool = False
    url: str = ""
    final_url: str = ""
    status: int = 0
    fetched_at: str = field(default_factory=lambda: datetime.now().isoformat())
