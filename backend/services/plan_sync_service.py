"""Plan & client reconciliation job: Source System -> Target System.

Stages run strictly in order, each one needing the previous one's output:

1. resolve identity by email on both sides      (fatal on failure)
2. map the Source tier onto the Target plans    (total, never fails)
3. upsert the Target subscription                (fatal on failure)
4. merge or purge the imported client roster     (best effort)

There is no transaction across stages or systems. A crash after stage 3 leaves
the right plan and a stale roster; the next run repairs it. Every stage is safe
to repeat, so concurrent runs for one account need no lock.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from database import database
from models import (
    AuditAction,
    FetchClientsResult,
    SyncResult,
    SyncStatus,
    utc_now,
)
from services.client_roster_merger import merge_client_roster
from services.identity_resolver import resolve_identity, resolve_source_account, validate_email
from services.plan_mapper import map_source_tier
from services.source_system import SourceRequestError, SourceSystemClient
from services.subscription_upserter import upsert_subscription
from services.sync_errors import PlanSyncError, SyncConfigurationError
from services.sync_settings import SyncSettings, load_sync_settings
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

SourceFactory = Callable[[SyncSettings], SourceSystemClient]


def default_source_factory(settings: SyncSettings) -> SourceSystemClient:
    return SourceSystemClient(
        base_url=settings.source_url,
        api_key=settings.source_key,
        timeout=settings.source_timeout_seconds,
    )


def failure_result(error: PlanSyncError) -> SyncResult:
    return SyncResult(
        success=False,
        sync_status=SyncStatus.FAILED,
        error=error.error,
        details=error.details,
        synced_at=utc_now().isoformat(),
    )


class PlanSyncService:
    """Runs the reconciliation job for one email per call."""

    def __init__(self, source_factory: Optional[SourceFactory] = None):
        self.source_factory = source_factory or default_source_factory

    def _open_source(self) -> SourceSystemClient:
        settings = load_sync_settings()
        if database.get_db() is None:
            raise SyncConfigurationError("Target database not connected")
        return self.source_factory(settings)

    async def sync(self, user_email: str) -> SyncResult:
        """Run stages 1-4. Raises PlanSyncError for fatal failures (stages 1-3)."""
        email = validate_email(user_email)
        logger.info(f"=== Plan sync started for {email} ===")
        source = self._open_source()

        try:
            identity = await resolve_identity(source, email)

            mapped_plan = map_source_tier(identity.source.subscription)
            logger.info(f"Plan mapping: {identity.source.subscription} -> {mapped_plan.value}")

            outcome = await upsert_subscription(identity.target.user_id, mapped_plan)
        except PlanSyncError as e:
            logger.error(f"Plan sync failed for {email}: {e}")
            await create_audit_log(
                action=AuditAction.PLAN_SYNC_FAILED,
                actor_role="SYSTEM",
                resource_type="user_subscription",
                metadata={
                    "user_email": email,
                    "error": e.error,
                    "details": e.details,
                    "status_code": e.status_code,
                },
            )
            raise

        report = await merge_client_roster(
            source=source,
            source_email=email,
            user_id=identity.target.user_id,
            plan_name=mapped_plan,
        )

        if report.purged:
            await create_audit_log(
                action=AuditAction.IMPORTED_CLIENTS_PURGED,
                actor_role="SYSTEM",
                user_id=identity.target.user_id,
                resource_type="client",
                metadata={
                    "user_email": email,
                    "plan": mapped_plan.value,
                    "clients_purged": report.purged,
                },
            )

        await create_audit_log(
            action=AuditAction.PLAN_SYNC_COMPLETED,
            actor_role="SYSTEM",
            user_id=identity.target.user_id,
            resource_type="user_subscription",
            resource_id=identity.target.user_id,
            metadata={
                "user_email": email,
                "source_account_id": identity.source.id,
                "original_plan": identity.source.subscription,
                "mapped_plan": mapped_plan.value,
                "subscription": outcome.value,
                "clients_synced": report.clients_synced,
                "skipped_duplicates": report.skipped_duplicates,
                "clients_purged": report.purged,
                "client_sync_error": report.error,
            },
        )

        logger.info(
            f"=== Plan sync completed for {email}: "
            f"plan={mapped_plan.value} clients={report.clients_synced} ==="
        )
        return SyncResult(
            success=True,
            sync_status=SyncStatus.SUCCESS,
            original_plan=identity.source.subscription,
            mapped_plan=mapped_plan.value,
            clients_synced=report.clients_synced,
            contracts_synced=0,
            message=(
                f"Sync completed successfully. Plan: {mapped_plan.value}, "
                f"Clients: {report.clients_synced}"
            ),
            synced_at=utc_now().isoformat(),
        )

    async def fetch_clients(self, user_email: str) -> FetchClientsResult:
        """Read-only inspection: the normalized Source client list for this email."""
        email = validate_email(user_email)
        source = self._open_source()
        await resolve_source_account(source, email)
        try:
            clients = await source.fetch_clients_by_email(email)
        except SourceRequestError as e:
            raise PlanSyncError("Failed to fetch clients from source system", details=str(e))
        return FetchClientsResult(
            user_email=email,
            clients=clients,
            clients_count=len(clients),
            timestamp=utc_now().isoformat(),
        )


plan_sync_service = PlanSyncService()
