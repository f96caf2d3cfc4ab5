"""
URL Utilities - Cache-Keys und Cookie-Header

Der Cache-Key einer Ressource ist ihre kanonische URL. Zwei Schreibweisen
derselben Seite (www, Tracking-Parameter, Fragment) teilen sich damit einen
Cache-Eintrag und damit auch einen einzigen Fetch.
"""

from urllib.parse import urlparse, parse_qs, urlencode, urlunparse
from typing import Dict, List, Optional, Tuple
import ipaddress
import logging
import re

logger = logging.getLogger(__name__)

# Tracking-Parameter die entfernt werden sollen
TRACKING_PARAMS = [
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
    'fbclid', 'gclid', 'mc_cid', 'mc_eid', '_ga'
]

# Cookie-Attribute, die keine Cookies sind (aus kopierten Set-Cookie Headern)
COOKIE_ATTRIBUTE_KEYS = {
    'path', 'domain', 'expires', 'max-age', 'secure', 'httponly', 'samesite', 'priority'
}

# Private IP ranges (RFC 1918) + loopback
PRIVATE_IP_REGEX = r'^(10\.|172\.(1[6-9]|2[0-9]|3[01])\.|192\.168\.|127\.)'

# Cloud metadata service IP (AWS, GCP, Azure)
METADATA_IP = '169.254.169.254'

# Localhost variants
LOCALHOST_NAMES = ['localhost', '0.0.0.0', '::1', '127.0.0.1']


def canonicalize_url(url: str) -> str:
    """
    Normalisiert eine URL zu einem stabilen Cache-Key.

    Regeln:
    1. Strip whitespace
    2. Lowercase scheme und domain, strip www
    3. Remove fragment (#section)
    4. Remove tracking params (utm_*, fbclid, gclid, etc.)
    5. Query-Parameter sortieren
    6. Remove trailing slash (außer root /)

    Das Schema bleibt erhalten: http und https können unterschiedliche
    Inhalte liefern.

    Beispiel:
        >>> canonicalize_url("https://WWW.Example.COM/page/?utm_source=google&b=2&a=1#section")
        'https://example.com/page?a=1&b=2'
    """
    try:
        url = url.strip()
        parsed = urlparse(url)

        if not parsed.scheme or not parsed.netloc:
            # Kein absoluter URL - Key unverändert verwenden
            return url

        scheme = parsed.scheme.lower()

        netloc = parsed.netloc.lower()
        if netloc.startswith('www.'):
            netloc = netloc[4:]

        query = ''
        if parsed.query:
            query_params = parse_qs(parsed.query, keep_blank_values=True)
            filtered_params = {
                key: value for key, value in query_params.items()
                if not any(key.lower().startswith(tp) for tp in TRACKING_PARAMS)
            }
            if filtered_params:
                query = urlencode(sorted(filtered_params.items()), doseq=True)

        path = parsed.path
        if path != '/' and path.endswith('/'):
            path = path.rstrip('/')

        return urlunparse((scheme, netloc, path, '', query, ''))

    except Exception as e:
        logger.warning(f"URL normalization failed for {url}: {e}")
        return url


def get_cookie_domain(url: str) -> Optional[str]:
    """
    Hostname, unter dem Cookies im Browser gesetzt werden.

    Beispiel:
        >>> get_cookie_domain("https://cn.investing.com/news/1")
        'cn.investing.com'
    """
    hostname = urlparse(url).hostname
    return hostname.lower() if hostname else None


def parse_cookie_header(cookie_header: str, domain: str) -> List[Dict[str, str]]:
    """
    Zerlegt einen Cookie-Header ("a=1; b=2") in Browser-Cookies.

    Teile ohne Namen oder ohne "=" werden ignoriert, ebenso Attribute wie
    "Path" oder "Expires", die beim Kopieren aus Set-Cookie mitkommen.

    Returns:
        Liste von {"name", "value", "domain", "path"} Dicts
    """
    cookies = []
    for part in (cookie_header or '').split(';'):
        part = part.strip()
        if not part:
            continue

        index = part.find('=')
        if index <= 0:
            continue

        name = part[:index].strip()
        if not name or name.lower() in COOKIE_ATTRIBUTE_KEYS:
            continue

        cookies.append({
            'name': name,
            'value': part[index + 1:].strip(),
            'domain': domain,
            'path': '/',
        })

    return cookies


def internal_address_reason(url: str) -> Optional[Tuple[str, str]]:
    """
    Prüft, ob eine URL auf eine interne Adresse zeigt (SSRF).

    Geprüft wird nur der Hostname, ohne DNS-Auflösung.

    Returns:
        (code, message) wenn die Adresse gesperrt ist, sonst None
    """
    hostname = (urlparse(url).hostname or '').lower()
    if not hostname:
        return None

    if hostname in LOCALHOST_NAMES:
        return "LOCALHOST_NOT_ALLOWED", "Localhost URLs are not allowed"

    if hostname == METADATA_IP:
        return "METADATA_SERVICE_BLOCKED", "Cloud metadata services are not allowed"

    if re.match(PRIVATE_IP_REGEX, hostname):
        return "PRIVATE_IP_NOT_ALLOWED", "Private IP addresses are not allowed"

    if hostname.startswith('169.254.'):
        return "LINK_LOCAL_NOT_ALLOWED", "Link-local IP addresses are not allowed"

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return None
    if address.is_private or address.is_loopback or address.is_link_local:
        return "PRIVATE_IP_NOT_ALLOWED", "Private IP addresses are not allowed"
    return None
