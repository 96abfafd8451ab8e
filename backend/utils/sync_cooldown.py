"""Client-side cooldown for the post-login sync trigger.

Per account, per machine: the last successful sync time is stored in a small
JSON file. This is not a lock; other machines may sync the same account at the
same time and the job's idempotency absorbs it.
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
import json
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(hours=1)


def default_state_path() -> Path:
    configured = os.environ.get("PLAN_SYNC_STATE_FILE")
    if configured:
        return Path(configured)
    return Path.home() / ".plan_sync" / "last_sync.json"


class SyncCooldown:
    def __init__(self, path: Optional[Path] = None, cooldown: timedelta = DEFAULT_COOLDOWN):
        self.path = Path(path) if path else default_state_path()
        self.cooldown = cooldown

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable sync cooldown file {self.path}, ignoring: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def last_sync(self, account_id: str) -> Optional[datetime]:
        raw = self._load().get(f"last_sync_{account_id}")
        if not raw:
            return None
        try:
            value = datetime.fromisoformat(raw)
        except (TypeError, ValueError):
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def should_sync(self, account_id: str, now: Optional[datetime] = None) -> tuple[bool, Optional[str]]:
        """
        Check whether the cooldown has elapsed for this account.

        Returns:
            (allowed: bool, reason: Optional[str])
        """
        now = now or datetime.now(timezone.utc)
        last = self.last_sync(account_id)
        if last is None:
            return True, None

        wait_until = last + self.cooldown
        if now < wait_until:
            wait_seconds = int((wait_until - now).total_seconds())
            return False, f"Last sync too recent. Next auto-sync in {wait_seconds} seconds"
        return True, None

    def record_sync(self, account_id: str, when: Optional[datetime] = None) -> None:
        when = when or datetime.now(timezone.utc)
        data = self._load()
        data[f"last_sync_{account_id}"] = when.isoformat()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
