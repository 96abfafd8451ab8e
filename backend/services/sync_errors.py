"""Error taxonomy for the plan & client sync job.

Every error carries the HTTP status and the `error`/`details` strings of the
sync envelope so the route can render it without knowing which stage failed.
"""
from typing import Optional


class PlanSyncError(Exception):
    status_code = 500
    default_error = "Plan sync failed"

    def __init__(self, error: Optional[str] = None, details: Optional[str] = None):
        self.error = error or self.default_error
        self.details = details
        super().__init__(self.error if not details else f"{self.error}: {details}")


class InvalidSyncRequest(PlanSyncError):
    status_code = 400
    default_error = "Valid user_email is required"


class SyncConfigurationError(PlanSyncError):
    status_code = 500
    default_error = "Sync is not configured"


class SourceAccountNotFound(PlanSyncError):
    status_code = 404
    default_error = "User not found in source system or connection failed"


class TargetAccountNotFound(PlanSyncError):
    status_code = 404
    default_error = "User not found in target system"


class PlanNotFound(PlanSyncError):
    """Mapped plan has no row in subscription_plans (taxonomy drift)."""
    status_code = 500


class RemoteSystemError(PlanSyncError):
    status_code = 500
    default_error = "Remote system call failed"
