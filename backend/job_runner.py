"""
Shared job runner for scheduled background jobs.
Used by the server scheduler.
Each run_* returns a dict with "message" (and optionally "count").
"""
import logging

logger = logging.getLogger(__name__)


async def get_previously_synced_emails() -> list:
    """Emails with at least one completed plan sync, from the audit log."""
    from database import database
    from models import AuditAction

    db = database.get_db()
    emails = await db.audit_logs.distinct(
        "metadata.user_email",
        {"action": AuditAction.PLAN_SYNC_COMPLETED.value},
    )
    return sorted(e for e in emails if isinstance(e, str) and "@" in e)


async def run_periodic_plan_sync():
    """Re-run the reconciliation job for every account that has synced before.

    Each account is independent: one failure is logged and the loop continues.
    """
    from services.plan_sync_service import plan_sync_service
    from services.sync_errors import PlanSyncError

    try:
        emails = await get_previously_synced_emails()
    except Exception as e:
        logger.error(f"Periodic plan sync could not list accounts: {e}")
        raise

    synced = 0
    failed = 0
    for email in emails:
        try:
            await plan_sync_service.sync(email)
            synced += 1
        except PlanSyncError as e:
            failed += 1
            logger.warning(f"Periodic plan sync failed for {email}: {e}")
        except Exception as e:
            failed += 1
            logger.error(f"Periodic plan sync error for {email}: {e}", exc_info=True)

    logger.info(f"Periodic plan sync completed: {synced} synced, {failed} failed")
    return {
        "message": f"Plan sync re-check: {synced} synced, {failed} failed",
        "count": synced,
        "failed": failed,
    }
