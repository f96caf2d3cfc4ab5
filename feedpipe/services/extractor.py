"""
Content Extractor - geordnete Selector-Strategien gegen gerenderten Inhalt

Reihenfolge der Strategien ist fest:
1. PRIMARY   - Haupt-Container der Quelle
2. SECONDARY - alternativer Container (Template-Variante derselben Seite)
3. GENERIC   - generischer Struktur-Tag (z.B. <article>)
4. METADATA  - Meta-Description als Notlösung

Die erste Strategie mit nicht-leerem Ergebnis gewinnt. Vorher werden
Noise-Elemente (Ads, Signup-Boxen, Player) aus einer Kopie des Dokuments
entfernt, damit keine Strategie versehentlich Noise statt Inhalt trifft.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

from .errors import ExtractionEmpty
from .fetchers.types import FetchResult

logger = logging.getLogger(__name__)


class Strategy(Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    GENERIC = "generic"
    METADATA = "metadata"
    NONE = "none"


@dataclass(frozen=True)
class ExtractionProfile:
    """Selector-Kette einer Quelle"""
    name: str
    primary: Optional[str] = None
    secondary: Optional[str] = None
    generic: Optional[str] = "article"
    metadata: Optional[str] = 'meta[property="og:description"]'
    noise: Tuple[str, ...] = ("script", "style", "noscript", "iframe")

    @property
    def content_marker(self) -> Optional[str]:
        """Selector, auf den der Browser-Tier warten soll"""
        selectors = [s for s in (self.primary, self.secondary, self.generic) if s]
        return ", ".join(selectors) or None

    def strategies(self) -> List[Tuple[Strategy, Optional[str]]]:
        return [
            (Strategy.PRIMARY, self.primary),
            (Strategy.SECONDARY, self.secondary),
            (Strategy.GENERIC, self.generic),
            (Strategy.METADATA, self.metadata),
        ]


DEFAULT_PROFILE = ExtractionProfile(
    name="article",
    primary="#articlePage",
    secondary=".articlePage",
    generic="article",
    metadata='meta[property="og:description"]',
    noise=(
        "script", "style", "noscript", "iframe",
        ".article-ad",
        '[data-module-name="newsletter-article-sign-up-module"]',
        "#strategy-rules-player-wrapper",
    ),
)


@dataclass(frozen=True)
class ExtractionOutcome:
    html: Optional[str]
    matched_strategy: Strategy

    @property
    def degraded(self) -> bool:
        """Nur die Meta-Description wurde gefunden, kein echter Artikel-Inhalt"""
        return self.matched_strategy is Strategy.METADATA

    @property
    def is_empty(self) -> bool:
        return self.html is None

    def require(self, url: str = "") -> str:
        """Gibt html zurück oder wirft ExtractionEmpty"""
        if self.html is None:
            raise ExtractionEmpty(url)
        return self.html

    def to_dict(self) -> dict:
        return {"html": self.html, "matched_strategy": self.matched_strategy.value}

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractionOutcome":
        return cls(html=data.get("html"), matched_strategy=Strategy(data.get("matched_strategy", "none")))


EMPTY_OUTCOME = ExtractionOutcome(html=None, matched_strategy=Strategy.NONE)


def denoise(html: str, noise_selectors: Tuple[str, ...]) -> BeautifulSoup:
    """
    Parst html in ein neues Dokument und entfernt alle Noise-Elemente.

    Das Eingabe-HTML bleibt unverändert; jeder Aufruf liefert einen eigenen Baum.
    """
    soup = BeautifulSoup(html or "", "lxml")
    if noise_selectors:
        for tag in soup.select(", ".join(noise_selectors)):
            tag.decompose()
    return soup


def _select_container(soup: BeautifulSoup, selector: str) -> Optional[str]:
    parts = []
    for element in soup.select(selector):
        inner = element.decode_contents().strip()
        if inner:
            parts.append(inner)
    return "".join(parts) or None


def _select_metadata(soup: BeautifulSoup, selector: str) -> Optional[str]:
    element = soup.select_one(selector)
    if element is None:
        return None
    content = (element.get("content") or "").strip()
    return content or None


def extract_html(html: str, profile: ExtractionProfile = DEFAULT_PROFILE) -> ExtractionOutcome:
    """Wendet die Strategien des Profils auf rohes HTML an"""
    if not html or not html.strip():
        return EMPTY_OUTCOME

    soup = denoise(html, profile.noise)

    for strategy, selector in profile.strategies():
        if not selector:
            continue

        if strategy is Strategy.METADATA:
            found = _select_metadata(soup, selector)
        else:
            found = _select_container(soup, selector)

        if found:
            logger.debug(f"Profile '{profile.name}' matched {strategy.value} ({selector})")
            return ExtractionOutcome(html=found, matched_strategy=strategy)

    return EMPTY_OUTCOME


def extract(raw: FetchResult, profile: ExtractionProfile = DEFAULT_PROFILE) -> ExtractionOutcome:
    """
    Extrahiert den Inhalt eines FetchResults.

    Kein Treffer ist kein Fehler: das Ergebnis hat dann html=None und
    matched_strategy=NONE; der Aufrufer entscheidet, ob das Item bleibt.
    """
    outcome = extract_html(raw.raw_content, profile)
    if outcome.is_empty:
        logger.info(f"No content extracted from {raw.url or 'document'} ({raw.tier_used.label} tier)")
    return outcome
