from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise RuntimeError(f"{name} must be >= 1, got {value}")
    return value


def _cors_origins() -> List[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    """環境変数から読む設定値。起動時に一度だけ作る。"""

    root_path: str = ""
    max_upload_bytes: int = 10 * 1024 * 1024
    max_tables: int = 256
    export_filename: str = "edited_data.csv"
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=list)


def load_settings() -> Settings:
    return Settings(
        root_path=os.getenv("CSV_EDITOR_ROOT_PATH", ""),
        max_upload_bytes=_int_env("CSV_EDITOR_MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
        max_tables=_int_env("CSV_EDITOR_MAX_TABLES", 256),
        export_filename=os.getenv("CSV_EDITOR_EXPORT_FILENAME", "edited_data.csv"),
        log_level=os.getenv("CSV_EDITOR_LOG_LEVEL", "INFO").upper(),
        cors_origins=_cors_origins(),
    )
