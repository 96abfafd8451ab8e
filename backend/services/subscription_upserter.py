"""Stage 3: idempotent create-or-update of the account's subscription.

One row per user_id (unique index). A repeated call with the same plan writes
nothing. Concurrent calls are not isolated; they converge because every write
sets the same target state (last write wins).
"""
import logging

from pymongo.errors import DuplicateKeyError, PyMongoError

from database import database
from models import PlanName, SubscriptionStatus, UpsertOutcome, utc_now
from services.sync_errors import PlanNotFound, RemoteSystemError

logger = logging.getLogger(__name__)


async def resolve_plan_id(plan_name: PlanName) -> str:
    db = database.get_db()
    try:
        plan = await db.subscription_plans.find_one(
            {"name": plan_name.value},
            {"_id": 0, "plan_id": 1}
        )
    except PyMongoError as e:
        raise RemoteSystemError("Failed to read subscription plans", details=str(e))

    if not plan or not plan.get("plan_id"):
        logger.error(f"Plan {plan_name.value} has no row in subscription_plans (taxonomy drift)")
        raise PlanNotFound(f"Plan {plan_name.value} not found in target system")
    return plan["plan_id"]


async def _update_existing(user_id: str, plan_id: str) -> None:
    db = database.get_db()
    await db.user_subscriptions.update_one(
        {"user_id": user_id},
        {"$set": {
            "plan_id": plan_id,
            "status": SubscriptionStatus.ACTIVE.value,
            "updated_at": utc_now(),
        }},
    )


async def upsert_subscription(user_id: str, plan_name: PlanName) -> UpsertOutcome:
    plan_id = await resolve_plan_id(plan_name)
    db = database.get_db()

    try:
        current = await db.user_subscriptions.find_one(
            {"user_id": user_id},
            {"_id": 0, "plan_id": 1, "status": 1}
        )

        if current is None:
            now = utc_now()
            try:
                await db.user_subscriptions.insert_one({
                    "user_id": user_id,
                    "plan_id": plan_id,
                    "status": SubscriptionStatus.ACTIVE.value,
                    "started_at": now,
                    "expires_at": None,
                    "updated_at": now,
                })
            except DuplicateKeyError:
                # Another run inserted first; converge on its row
                logger.info(f"Subscription for {user_id} created concurrently, updating instead")
                await _update_existing(user_id, plan_id)
                return UpsertOutcome.UPDATED
            logger.info(f"Subscription created for {user_id} on plan {plan_name.value}")
            return UpsertOutcome.CREATED

        if current.get("plan_id") == plan_id and current.get("status") == SubscriptionStatus.ACTIVE.value:
            logger.info(f"Subscription for {user_id} already on plan {plan_name.value}, no write")
            return UpsertOutcome.UNCHANGED

        await _update_existing(user_id, plan_id)
        logger.info(f"Subscription for {user_id} moved to plan {plan_name.value}")
        return UpsertOutcome.UPDATED

    except PyMongoError as e:
        logger.error(f"Subscription upsert failed for {user_id}: {e}")
        raise RemoteSystemError("Failed to update subscription in target system", details=str(e))
