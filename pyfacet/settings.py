# pyfacet/settings.py
# Environment-driven configuration. Values are read when load_settings()
# is called, after pyfacet.main has run load_dotenv().

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

DEFAULT_API_BASE_URL = "http://localhost/api/v1"
DEFAULT_MAX_TREE_DEPTH = 32


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: Optional[str] = None
    api_timeout_seconds: float = 10.0
    store_backend: str = "http"  # "http" | "file"
    filters_file: Path = Path("config/filters.yaml")
    max_tree_depth: int = DEFAULT_MAX_TREE_DEPTH
    cors_allow_origins: List[str] = field(default_factory=list)
    log_level: str = "INFO"


def load_settings() -> Settings:
    backend = os.getenv("FILTER_STORE", "http").strip().lower()
    if backend not in {"http", "file"}:
        raise RuntimeError(f"FILTER_STORE must be 'http' or 'file', got {backend!r}")

    origins_raw = os.getenv("CORS_ALLOW_ORIGINS", "")
    return Settings(
        api_base_url=os.getenv("FILTER_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
        api_token=os.getenv("FILTER_API_TOKEN") or None,
        api_timeout_seconds=float(_env_int("FILTER_API_TIMEOUT_SECONDS", 10)),
        store_backend=backend,
        filters_file=Path(os.getenv("FILTERS_FILE", "config/filters.yaml")),
        max_tree_depth=_env_int("MAX_TREE_DEPTH", DEFAULT_MAX_TREE_DEPTH),
        cors_allow_origins=[o.strip() for o in origins_raw.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
