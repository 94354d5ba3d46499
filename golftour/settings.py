import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: str = "logs"


def _normalize_database_url(value: Optional[str]) -> str:
    if not value:
        return "sqlite:///./golftour.db"
    normalized = value.strip()
    if normalized.startswith("sqlite://"):
        return normalized
    if "://" not in normalized and Path(normalized).suffix:  # treat as direct path
        return f"sqlite:///{normalized}"
    return normalized


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("true", "on", "1", "yes")


def load_settings() -> Settings:
    return Settings(
        database_url=_normalize_database_url(os.getenv("DATABASE_URL")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_to_file=_flag(os.getenv("LOG_TO_FILE"), False),
        log_dir=os.getenv("LOG_DIR", "logs"),
    )
