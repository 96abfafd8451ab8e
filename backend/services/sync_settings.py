"""Environment-backed settings for the sync job.

Read at call time so a missing credential surfaces as a configuration error on
the request that needs it, before any remote call is made.
"""
import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from services.sync_errors import SyncConfigurationError

ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_TIMEOUT_SECONDS = 15.0
DEFAULT_TARGET_TIMEOUT_MS = 15000


@dataclass(frozen=True)
class SyncSettings:
    source_url: str
    source_key: str
    mongo_url: str
    db_name: str
    source_timeout_seconds: float = DEFAULT_SOURCE_TIMEOUT_SECONDS
    target_timeout_ms: int = DEFAULT_TARGET_TIMEOUT_MS


def _env(name: str) -> Optional[str]:
    value = (os.environ.get(name) or "").strip()
    return value or None


def _float_env(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


def target_configured() -> bool:
    return bool(_env("MONGO_URL") and _env("DB_NAME"))


def load_sync_settings() -> SyncSettings:
    """Return settings or raise SyncConfigurationError naming the missing side."""
    mongo_url = _env("MONGO_URL")
    db_name = _env("DB_NAME")
    source_url = _env("SOURCE_SUPABASE_URL")
    source_key = _env("SOURCE_SUPABASE_KEY")

    logger.debug(
        f"Sync config: MONGO_URL={'set' if mongo_url else 'MISSING'} "
        f"DB_NAME={db_name or 'MISSING'} "
        f"SOURCE_SUPABASE_URL={'set' if source_url else 'MISSING'} "
        f"SOURCE_SUPABASE_KEY={'set' if source_key else 'MISSING'}"
    )

    if not mongo_url or not db_name:
        raise SyncConfigurationError("Target database not configured")
    if not source_url or not source_key:
        raise SyncConfigurationError("Source system connection not configured")

    return SyncSettings(
        source_url=source_url.rstrip("/"),
        source_key=source_key,
        mongo_url=mongo_url,
        db_name=db_name,
        source_timeout_seconds=_float_env("SOURCE_TIMEOUT_SECONDS", DEFAULT_SOURCE_TIMEOUT_SECONDS),
        target_timeout_ms=int(_float_env("TARGET_TIMEOUT_MS", DEFAULT_TARGET_TIMEOUT_MS)),
    )
