"""
Run Plan Sync (manual / operator script)

Runs the plan & client reconciliation job for one account without going
through HTTP. Prints the same JSON envelope POST /sync would return.

Usage (from backend/):
  python -m scripts.run_plan_sync user@example.com
  python -m scripts.run_plan_sync user@example.com --fetch-clients
"""

import asyncio
import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from database import database
from services.plan_sync_service import plan_sync_service, failure_result
from services.sync_errors import PlanSyncError, SyncConfigurationError
from services.sync_settings import target_configured
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def run(email: str, fetch_clients: bool = False) -> dict:
    """Connect, run one job (or the read-only client fetch), close. Returns the envelope."""
    if not target_configured():
        return failure_result(SyncConfigurationError("Target database not configured")).to_response()
    await database.connect()
    try:
        if fetch_clients:
            result = await plan_sync_service.fetch_clients(email)
            return result.model_dump(mode="json")
        result = await plan_sync_service.sync(email)
        return result.to_response()
    except PlanSyncError as e:
        logger.error(f"Plan sync failed ({e.status_code}): {e}")
        return failure_result(e).to_response()
    finally:
        await database.close()


def main():
    parser = argparse.ArgumentParser(description="Sync plan and clients from the billing system for one email")
    parser.add_argument("email", help="Account email (same on both systems)")
    parser.add_argument(
        "--fetch-clients",
        action="store_true",
        help="Only list the normalized Source clients; writes nothing",
    )
    args = parser.parse_args()
    envelope = asyncio.run(run(args.email, fetch_clients=args.fetch_clients))
    print(json.dumps(envelope, indent=2, ensure_ascii=False))
    return 0 if envelope.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())
