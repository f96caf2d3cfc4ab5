"""
Fehler-Taxonomie der Acquisition-Pipeline

TierBlocked und TierUnavailable bleiben intern im FetchManager und lösen nur
die Eskalation aus. Nach außen dringt AllTiersExhausted (pro Ressource) bzw.
ProducerFailed (aus dem Dedup-Cache).
"""

from typing import List, Optional

from .fetchers.types import FetchResult, Tier


class AcquisitionError(Exception):
    """Basisklasse aller Pipeline-Fehler"""


class TierUnavailable(AcquisitionError):
    """Tier ist per Konfiguration deaktiviert und wird still übersprungen"""

    def __init__(self, tier: Tier, reason: str):
        self.tier = tier
        self.reason = reason
        super().__init__(f"{tier.label} tier unavailable: {reason}")


class CredentialMissing(TierUnavailable):
    """Tier braucht Credentials, es wurden aber keine aufgelöst"""

    def __init__(self, tier: Tier):
        super().__init__(tier, "no credential resolved")


class TierBlocked(AcquisitionError):
    """Tier lieferte keinen brauchbaren Inhalt (Challenge, kein Markup, Fehler)"""

    def __init__(self, tier: Tier, reason: str, result: Optional[FetchResult] = None):
        self.tier = tier
        self.reason = reason
        self.result = result  # Der verworfene Inhalt, falls es einen gab
        super().__init__(f"{tier.label} tier blocked: {reason}")


class AllTiersExhausted(AcquisitionError):
    """Kein erlaubter Tier hat brauchbaren Inhalt geliefert"""

    def __init__(self, url: str, last_tier: Optional[Tier], failures: Optional[List[TierBlocked]] = None):
        self.url = url
        self.last_tier = last_tier
        self.failures = list(failures or [])
        tier_label = last_tier.label if last_tier else "none"
        reasons = "; ".join(str(f) for f in self.failures) or "no tier attempted"
        super().__init__(f"All tiers exhausted for {url} (last tier: {tier_label}): {reasons}")


class ExtractionEmpty(AcquisitionError):
    """Keine Extraktions-Strategie hat Inhalt gefunden"""

    def __init__(self, url: str = ""):
        self.url = url
        super().__init__(f"No content extracted{' for ' + url if url else ''}")


class ProducerFailed(AcquisitionError):
    """Producer eines Cache-Eintrags ist fehlgeschlagen; geteilt mit allen Wartenden"""

    def __init__(self, key: str, error: BaseException):
        self.key = key
        self.error = error
        super().__init__(f"Producer for '{key}' failed: {error}")
