"""
Centralised settings for the feed service (env-first, code-light).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class TressSettings:
    database_url: str
    sync_interval_seconds: int
    http_timeout: int
    user_agent: str
    retry_attempts: int
    retry_base_delay: float
    retry_multiplier: float
    retry_max_delay: float
    retry_jitter: float
    vapid_private_key: Optional[str]
    vapid_subject: str
    push_ttl: int
    host: str
    port: int
    log_level: str
    log_file: Optional[str]


def _int_from_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        logger.warning("Invalid int value for %s=%s; using default %s", key, raw, default)
        return default


def _float_from_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = float(raw)
        return value if value >= 0 else default
    except ValueError:
        logger.warning("Invalid float value for %s=%s; using default %s", key, raw, default)
        return default


def _optional_env(key: str) -> Optional[str]:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def load_settings() -> TressSettings:
    return TressSettings(
        database_url=os.getenv("TRESS_DATABASE_URL", "sqlite:///tress.db"),
        sync_interval_seconds=_int_from_env("TRESS_SYNC_INTERVAL", 3600),
        http_timeout=_int_from_env("TRESS_HTTP_TIMEOUT", 15),
        user_agent=os.getenv("TRESS_USER_AGENT", "Tress/1.0 (+feed reader)"),
        retry_attempts=_int_from_env("TRESS_RETRY_ATTEMPTS", 4),
        retry_base_delay=_float_from_env("TRESS_RETRY_BASE_DELAY", 1.0),
        retry_multiplier=_float_from_env("TRESS_RETRY_MULTIPLIER", 2.0),
        retry_max_delay=_float_from_env("TRESS_RETRY_MAX_DELAY", 30.0),
        retry_jitter=_float_from_env("TRESS_RETRY_JITTER", 0.5),
        vapid_private_key=_optional_env("TRESS_VAPID_PRIVATE_KEY"),
        vapid_subject=os.getenv("TRESS_VAPID_SUBJECT", "mailto:admin@localhost"),
        push_ttl=_int_from_env("TRESS_PUSH_TTL", 86400),
        host=os.getenv("TRESS_HOST", "0.0.0.0"),
        port=_int_from_env("TRESS_PORT", 3000),
        log_level=os.getenv("TRESS_LOG_LEVEL", "INFO"),
        log_file=_optional_env("TRESS_LOG_FILE"),
    )
