"""
Caller-side wrapper for the sync endpoint.
Used after login (auto_sync, rate limited per account) and from a manual
"sync now" action (sync_plan).
"""
import logging
import os
from typing import Any, Dict, Optional

import requests

from models import SyncStatus
from utils.sync_cooldown import SyncCooldown

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30


class PlanSyncClient:
    """HTTP client for POST /sync."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        cooldown: Optional[SyncCooldown] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or os.getenv("PLAN_SYNC_URL", "http://127.0.0.1:8001")).rstrip("/")
        self.cooldown = cooldown or SyncCooldown()
        self.timeout = timeout
        self.session = session or requests.Session()

    def _failed(self, error: str, details: Optional[str] = None) -> Dict[str, Any]:
        result = {"success": False, "sync_status": SyncStatus.FAILED.value, "error": error}
        if details:
            result["details"] = details
        return result

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                f"{self.base_url}/sync",
                json=payload,
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.error("Sync request timed out")
            return self._failed("timeout", "Sync request timed out")
        except requests.RequestException as e:
            logger.error(f"Sync request failed: {e}")
            return self._failed("network error", str(e))

        try:
            data = response.json()
        except ValueError:
            return self._failed(f"HTTP {response.status_code}", response.text[:500])

        if not isinstance(data, dict):
            return self._failed(f"HTTP {response.status_code}", "Unexpected response body")
        if response.status_code >= 400:
            logger.warning(f"Sync returned {response.status_code}: {data.get('error')}")
        return data

    def sync_plan(self, user_email: str) -> Dict[str, Any]:
        """Run the job now. Never raises; failures come back as a failed envelope."""
        if not user_email:
            return self._failed("No user email")
        logger.info(f"Starting plan sync for {user_email}")
        return self._post({"user_email": user_email})

    def fetch_clients(self, user_email: str) -> Dict[str, Any]:
        return self._post({"user_email": user_email, "action": "fetch_clients"})

    def auto_sync(self, account_id: str, user_email: str) -> Optional[Dict[str, Any]]:
        """Post-login trigger: at most once per cooldown window per account on this machine.

        Returns None when skipped. Only a successful sync starts a new window.
        """
        if not user_email:
            return None

        allowed, reason = self.cooldown.should_sync(account_id)
        if not allowed:
            logger.info(f"Skipping auto-sync for {account_id}: {reason}")
            return None

        result = self.sync_plan(user_email)
        if result.get("success"):
            self.cooldown.record_sync(account_id)
        return result
