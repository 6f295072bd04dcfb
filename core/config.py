from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from services.download import DEFAULT_CHUNK_SIZE
from services.links import DEFAULT_DISPLAY_TEMPLATE, DEFAULT_DOWNLOAD_TEMPLATE


# =========================
# env helpers
# =========================

def _env_str(name: str, default: str = "") -> str:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip()


def _env_bool(name: str, default: bool = False) -> bool:
    v = (os.getenv(name) or "").strip().lower()
    if not v:
        return default
    return v in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    v = _env_str(name)
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {v!r}") from None


def _env_float_opt(name: str) -> Optional[float]:
    v = _env_str(name)
    if not v:
        return None
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {v!r}") from None


# =========================
# config
# =========================

@dataclass(frozen=True)
class AppConfig:
    host: str
    port: int
    debug: bool
    log_level: str
    json_logs: bool
    marketplace_url: str
    marketplace_download_url: str
    upstream_timeout: Optional[float]
    download_chunk_size: int
    strict_version_pin: bool

    @staticmethod
    def from_env() -> "AppConfig":
        # empty PORT behaves like unset
        port = _env_int("PORT", 8080)
        chunk_size = _env_int("DOWNLOAD_CHUNK_SIZE", DEFAULT_CHUNK_SIZE)
        if chunk_size <= 0:
            raise ValueError(f"DOWNLOAD_CHUNK_SIZE must be positive, got {chunk_size}")

        return AppConfig(
            host=_env_str("HOST", "0.0.0.0") or "0.0.0.0",
            port=port,
            debug=_env_bool("DEBUG", False),
            log_level=_env_str("LOG_LEVEL", "INFO").upper() or "INFO",
            json_logs=_env_bool("JSON_LOGS", False),
            marketplace_url=_env_str("MARKETPLACE_URL") or DEFAULT_DISPLAY_TEMPLATE,
            marketplace_download_url=_env_str("MARKETPLACE_DOWNLOAD_URL") or DEFAULT_DOWNLOAD_TEMPLATE,
            upstream_timeout=_env_float_opt("UPSTREAM_TIMEOUT"),
            download_chunk_size=chunk_size,
            strict_version_pin=_env_bool("STRICT_VERSION_PIN", False),
        )


# =========================
# logging
# =========================

class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(cfg: AppConfig) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, cfg.log_level, logging.INFO))

    # reset handlers (idempotent setup)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    if cfg.json_logs:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root.addHandler(handler)

    # sane defaults for noisy libs
    logging.getLogger("werkzeug").setLevel(logging.INFO)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
