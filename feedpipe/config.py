"""
Prozess-Konfiguration

Wird einmal beim Start gebaut (load_config) und danach nur noch gelesen.
Die Pipeline bekommt das Objekt explizit übergeben, statt Environment-
Variablen selbst zu lesen.
"""

import logging
import os
import pathlib
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"


@dataclass(frozen=True)
class PipelineConfig:
    """Read-only Konfiguration der Acquisition-Pipeline"""
    credential: str = ""  # Prozessweites Cookie (ENVIRONMENT-Quelle)
    use_browser: bool = False
    use_render_proxy: bool = False
    render_proxy_url: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT

    # Timeouts in Sekunden
    direct_timeout: float = 15.0
    browser_nav_timeout: float = 60.0
    selector_timeout: float = 15.0

    # Cache
    cache_ttl: float = 3600.0
    cache_failure_ttl: float = 0.0
    cache_backend: str = "memory"
    cache_db_path: str = "data/cache.db"
    cache_max_entries: int = 5000

    item_limit: int = 20
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])


def _env_float(name: str, default: float, min_val: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid {name} value '{raw}', using default {default}")
        return default
    if value < min_val:
        logger.warning(f"{name} must be at least {min_val}, using default {default}")
        return default
    return value


def _env_int(name: str, default: int, min_val: int = 0) -> int:
    return int(_env_float(name, default, min_val))


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _cors_origins() -> List[str]:
    """
    Validiert CORS Origins. Wildcard (*) und ungültige Einträge fallen auf
    localhost zurück.
    """
    origins_str = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    origins = [origin.strip() for origin in origins_str.split(",") if origin.strip()]

    if "*" in origins:
        logger.warning("CORS Wildcard (*) detected in CORS_ORIGINS, falling back to localhost")
        return ["http://localhost:3000"]

    valid_origins = [o for o in origins if o.startswith("http://") or o.startswith("https://")]
    if not valid_origins:
        return ["http://localhost:3000"]
    return valid_origins


def load_environment() -> None:
    """Lädt .env.local (lokal) oder die normale .env / System-Environment"""
    env_path = pathlib.Path(__file__).parent.parent / ".env.local"
    if env_path.exists():
        load_dotenv(dotenv_path=str(env_path))
    else:
        load_dotenv()


def load_config() -> PipelineConfig:
    """Baut die Konfiguration aus dem Environment"""
    load_environment()

    render_proxy_url = (os.getenv("RENDER_PROXY_URL") or "").strip() or None

    config = PipelineConfig(
        credential=(os.getenv("FEED_COOKIE") or "").strip(),
        use_browser=_env_bool("FEED_USE_BROWSER"),
        use_render_proxy=_env_bool("FEED_USE_RENDER_PROXY", default=render_proxy_url is not None),
        render_proxy_url=render_proxy_url,
        user_agent=os.getenv("USER_AGENT", DEFAULT_USER_AGENT),
        direct_timeout=_env_float("DIRECT_TIMEOUT", 15.0, 1.0),
        browser_nav_timeout=_env_float("BROWSER_NAV_TIMEOUT", 60.0, 1.0),
        selector_timeout=_env_float("SELECTOR_TIMEOUT", 15.0, 0.0),
        cache_ttl=_env_float("CACHE_TTL", 3600.0, 0.0),
        cache_failure_ttl=_env_float("CACHE_FAILURE_TTL", 0.0, 0.0),
        cache_backend=os.getenv("CACHE_BACKEND", "memory").strip().lower(),
        cache_db_path=os.getenv("CACHE_DB_PATH", "data/cache.db"),
        cache_max_entries=_env_int("CACHE_MAX_ENTRIES", 5000, 1),
        item_limit=_env_int("ITEM_LIMIT", 20, 1),
        cors_origins=_cors_origins(),
    )

    logger.info(
        f"Config loaded: browser={config.use_browser}, render_proxy={config.use_render_proxy}, "
        f"cache={config.cache_backend}, ttl={config.cache_ttl}s"
    )
    return config
