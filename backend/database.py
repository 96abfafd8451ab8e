from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)


def _timeout_ms() -> int:
    try:
        return int(float(os.environ.get('TARGET_TIMEOUT_MS', '15000')))
    except ValueError:
        return 15000


def create_motor_client(mongo_url: str) -> AsyncIOMotorClient:
    """Motor client with every remote call bounded by TARGET_TIMEOUT_MS."""
    timeout = _timeout_ms()
    return AsyncIOMotorClient(
        mongo_url,
        serverSelectionTimeoutMS=timeout,
        connectTimeoutMS=timeout,
        socketTimeoutMS=timeout,
    )


class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = create_motor_client(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
            await self._seed_subscription_plans()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes backing the sync job's lookups and invariants."""
        try:
            # Identity lookups are by exact email
            await self.db.user_profiles.create_index("email")
            await self.db.user_profiles.create_index("user_id", unique=True)

            # Plan-by-name resolution; names are the Target taxonomy
            await self.db.subscription_plans.create_index("name", unique=True)
            await self.db.subscription_plans.create_index("plan_id", unique=True)

            # At most one subscription per account (upsert key)
            await self.db.user_subscriptions.create_index("user_id", unique=True)

            # Client roster: dedup reads and purge are scoped by account + provenance
            await self.db.clients.create_index("client_id", unique=True)
            await self.db.clients.create_index([("user_id", 1), ("origin", 1)])
            await self.db.clients.create_index([("user_id", 1), ("email", 1)], sparse=True)

            # Audit log - sync history and periodic re-check candidates
            await self.db.audit_logs.create_index([("action", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index([("user_id", 1), ("timestamp", -1)])
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

    async def _seed_subscription_plans(self):
        """Seed the three Target plans (idempotent upsert by name; existing plan_id kept)."""
        from services.plan_registry import plan_registry

        for plan in plan_registry.get_plan_seed_documents():
            plan_id = plan.pop("plan_id")
            await self.db.subscription_plans.update_one(
                {"name": plan["name"]},
                {"$set": plan, "$setOnInsert": {"plan_id": plan_id}},
                upsert=True,
            )
        logger.info("Subscription plans seeded/updated")

# Global database instance
database = Database()

@asynccontextmanager
async def get_db_context():
    """Context manager for standalone scripts to access the database.

    Usage in scripts:
        async with get_db_context() as db:
            await db.user_profiles.find_one(...)
    """
    client = None
    try:
        mongo_url = os.environ['MONGO_URL']
        db_name = os.environ['DB_NAME']
        client = create_motor_client(mongo_url)
        db = client[db_name]
        await db.command("ping")
        logger.info(f"Script connected to MongoDB: {db_name}")
        yield db
    finally:
        if client:
            client.close()
            logger.info("Script MongoDB connection closed")
