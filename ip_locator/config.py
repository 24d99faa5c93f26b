"""Configuration for the IP locator."""

import os
from dataclasses import dataclass, fields
from pathlib import Path


_ROOT = Path(__file__).parent.parent

_ENV_PREFIX = "IP_LOCATOR_"


@dataclass
class Config:
    # Cache
    cache_db: Path = _ROOT / "data" / "ip_cache.db"
    cache_ttl_days: int = 30
    bypass_cache: bool = False

    # Providers: "auto" or one of ipwho, ipapi, ipapico, ipinfo, ipquery
    provider: str = "auto"
    request_timeout: float = 10.0

    # ip-api.com allows ~45 requests/minute; 1500ms between live calls stays under it
    pacing_ms: int = 1500

    # Clustering
    cluster_threshold: float = 0.5  # degrees, planar
    refresh_throttle_ms: int = 300

    @classmethod
    def from_env(cls, environ=None) -> "Config":
        """Build a Config, overriding defaults with IP_LOCATOR_* environment variables."""
        environ = os.environ if environ is None else environ
        config = cls()
        for f in fields(cls):
            raw = environ.get(_ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            current = getattr(config, f.name)
            if isinstance(current, bool):
                value = raw.lower() in ("1", "true", "yes")
            elif isinstance(current, Path):
                value = Path(raw)
            else:
                value = type(current)(raw)
            setattr(config, f.name, value)
        return config
