"""
Credential Resolver - Cookie aus Query, Header und Prozess-Konfiguration

Präzedenz (höchste zuerst):
1. QUERY       - expliziter Override pro Request
2. HEADER      - vom Transport mitgeschickt
3. ENVIRONMENT - prozessweiter Default aus der Konfiguration

Standard: die höchste nicht-leere Quelle gewinnt. Mit layered=True werden
alle Quellen in Präzedenz-Reihenfolge zu einem Cookie-Header verbunden,
damit z.B. ein Query-Cookie das Env-Cookie ergänzt statt es zu verdrängen.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, NamedTuple, Optional

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 32
COOKIE_SEPARATOR = "; "


class CredentialSource(Enum):
    QUERY = "query"
    HEADER = "header"
    ENVIRONMENT = "env"
    NONE = "none"


@dataclass(frozen=True)
class CredentialEntry:
    source: CredentialSource
    value: str


class ResolvedCredential(NamedTuple):
    credential: str
    provenance: CredentialSource
    label: str = "none"

    @property
    def present(self) -> bool:
        return bool(self.credential)

    @property
    def preview(self) -> str:
        return preview(self.credential)


def preview(credential: str, length: int = PREVIEW_LENGTH) -> str:
    """Gekürzte Vorschau für Logs - nie das vollständige Credential"""
    if not credential:
        return "none"
    return credential[:min(length, len(credential) // 2)] + "…"


@dataclass
class CredentialBundle:
    """Geordnete Liste der vorhandenen Credential-Quellen eines Requests"""
    entries: List[CredentialEntry] = field(default_factory=list)

    @classmethod
    def from_sources(cls, query: Optional[str] = None, header: Optional[str] = None,
                     env: Optional[str] = None) -> "CredentialBundle":
        entries = []
        for source, value in (
            (CredentialSource.QUERY, query),
            (CredentialSource.HEADER, header),
            (CredentialSource.ENVIRONMENT, env),
        ):
            if value and value.strip():
                entries.append(CredentialEntry(source, value.strip()))
        return cls(entries)

    def resolve(self, layered: bool = False) -> ResolvedCredential:
        if not self.entries:
            return ResolvedCredential("", CredentialSource.NONE, "none")

        top = self.entries[0]
        if not layered:
            return ResolvedCredential(top.value, top.source, top.source.value)

        credential = COOKIE_SEPARATOR.join(entry.value for entry in self.entries)
        label = "+".join(entry.source.value for entry in self.entries)
        return ResolvedCredential(credential, top.source, label)


def resolve_credentials(query: Optional[str] = None, header: Optional[str] = None,
                        env: Optional[str] = None, layered: bool = False,
                        context: str = "feedpipe") -> ResolvedCredential:
    """
    Löst das Credential eines Requests auf.

    Ein fehlendes Credential ist kein Fehler (anonymer Zugriff); Tiers, die
    eines brauchen, werden dann übersprungen.

    Returns:
        ResolvedCredential(credential, provenance, label)
    """
    resolved = CredentialBundle.from_sources(query, header, env).resolve(layered=layered)
    logger.info(
        f"{context} cookie source={resolved.label}, length={len(resolved.credential)}, "
        f"prefix={resolved.preview}"
    )
    return resolved
