"""Process configuration.

Values come from the environment, optionally seeded from a .env file in the
working directory, and are then overridden by command-line flags. Held in a
validated Settings model for the lifetime of the process.

Environment:
- MEILI_HOST, MEILI_INDEX, MEILI_KEY
- CATALOG_PATH, CATALOG_ON_CORRUPTION (abort|overwrite|prompt), CATALOG_SAVE_RETRY (prompt|backoff)
- CRAWL_CADENCE, CRAWL_MAX_PAGES, CRAWL_SEARCH_DELAY, CRAWL_LINK_DELAY, CRAWL_HTTP_TIMEOUT
- LOG_LEVEL
"""
from __future__ import annotations

import os
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    host: str = "http://localhost:7700"
    index: str = "discord-guilds"
    key: Optional[str] = None
    catalog_path: str = "guilds.json"
    cadence: float = Field(3600.0, gt=0)
    max_pages: int = Field(20, ge=1)
    search_delay: float = Field(10.0, ge=0)
    link_delay: float = Field(6.0, ge=0)
    http_timeout: float = Field(10.0, gt=0)
    on_corruption: Literal["abort", "overwrite", "prompt"] = "prompt"
    save_retry: Literal["prompt", "backoff"] = "prompt"
    log_level: str = "INFO"


_ENV_KEYS = {
    "host": "MEILI_HOST",
    "index": "MEILI_INDEX",
    "key": "MEILI_KEY",
    "catalog_path": "CATALOG_PATH",
    "cadence": "CRAWL_CADENCE",
    "max_pages": "CRAWL_MAX_PAGES",
    "search_delay": "CRAWL_SEARCH_DELAY",
    "link_delay": "CRAWL_LINK_DELAY",
    "http_timeout": "CRAWL_HTTP_TIMEOUT",
    "on_corruption": "CATALOG_ON_CORRUPTION",
    "save_retry": "CATALOG_SAVE_RETRY",
    "log_level": "LOG_LEVEL",
}


def load_env_file(path: str = ".env") -> None:
    """Load variables from a .env file if present.

    Only sets variables that aren't already present in the process environment.
    """
    if not os.path.isfile(path):
        return
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            s = line.strip()
            if not s or s.startswith("#") or "=" not in s:
                continue
            key, val = s.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            if key and (key not in os.environ or not os.environ[key]):
                os.environ[key] = val


def load_settings(overrides: Optional[Mapping[str, Any]] = None, *, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment, then apply non-None overrides.

    Raises pydantic.ValidationError on invalid values.
    """
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for field, var in _ENV_KEYS.items():
        raw = env.get(var)
        if raw is not None and raw.strip() != "":
            values[field] = raw.strip()
    for field, value in (overrides or {}).items():
        if value is not None:
            values[field] = value
    return Settings(**values)
