"""
Runtime configuration read from environment variables.

Every setting has a development default so the API boots without any
environment; production deployments set DATABASE_URL, DATABASE_NAME and
ADMIN_API_TOKEN at least.
"""
import os
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

DEFAULT_CORS_ORIGINS = [
    "https://compta-match.fr",
    "https://www.compta-match.fr",
    "http://localhost:5173",
]


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_origins(value: Optional[str]) -> List[str]:
    extra = [o.strip().rstrip("/") for o in re.split(r"[,\s]+", value or "") if o.strip()]
    origins: List[str] = []
    for origin in DEFAULT_CORS_ORIGINS + extra:
        if origin not in origins:
            origins.append(origin)
    return origins


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    port: int = 8000
    admin_api_token: Optional[str] = None
    allowed_cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    tracking_enabled: bool = True
    trust_proxy: bool = False
    log_level: str = "INFO"
    currency: str = "eur"


def load_settings() -> Settings:
    try:
        port = int(os.getenv("PORT", 8000))
    except ValueError:
        port = 8000
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME"),
        port=port,
        admin_api_token=os.getenv("ADMIN_API_TOKEN") or None,
        allowed_cors_origins=_parse_origins(os.getenv("ALLOWED_CORS_ORIGINS")),
        tracking_enabled=_parse_bool(os.getenv("TRACKING_ENABLED"), True),
        trust_proxy=_parse_bool(os.getenv("TRUST_PROXY"), False),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        currency=(os.getenv("CURRENCY") or "eur").lower(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
