from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Mapping, Optional

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


@dataclass(frozen=True)
class Settings:
    storage_dir: Path = Path(".picklist_state")
    remote_url: Optional[str] = None
    remote_timeout: float = 10.0
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))


def _as_float(value: Optional[str], default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        out = float(value)
    except ValueError:
        return default
    return out if out > 0 else default


def _as_list(value: Optional[str], default: List[str]) -> List[str]:
    if not value:
        return list(default)
    return [v.strip() for v in value.split(",") if v.strip()]


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    remote_url = (env.get("PICKLIST_REMOTE_URL") or "").strip() or None
    return Settings(
        storage_dir=Path(env.get("PICKLIST_STORAGE_DIR") or ".picklist_state"),
        remote_url=remote_url,
        remote_timeout=_as_float(env.get("PICKLIST_REMOTE_TIMEOUT"), 10.0),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        cors_origins=_as_list(env.get("PICKLIST_CORS_ORIGINS"), DEFAULT_CORS_ORIGINS),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
