from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from database import database
from routes import sync
from routes.sync import SYNC_PATH

import os
import logging
from pathlib import Path
from dotenv import load_dotenv
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.jobstores.mongodb import MongoDBJobStore

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from services.sync_settings import target_configured
from job_runner import run_periodic_plan_sync


def _build_scheduler() -> AsyncIOScheduler:
    """Scheduler with MongoDB job store so jobs survive restarts; memory store otherwise."""
    jobstores = {}
    mongo_url = os.environ.get('MONGO_URL')
    db_name = os.environ.get('DB_NAME')
    if mongo_url and db_name:
        try:
            from pymongo import MongoClient
            jobstores['default'] = MongoDBJobStore(
                database=db_name,
                collection='scheduled_jobs',
                client=MongoClient(mongo_url)
            )
            logger.info(f"MongoDB job store configured: {db_name}.scheduled_jobs")
        except Exception as e:
            logger.warning(f"Failed to configure MongoDB job store, using memory store: {e}")
            jobstores = {}
    return AsyncIOScheduler(jobstores=jobstores)


def _recheck_hours() -> float:
    try:
        return float(os.environ.get('PLAN_SYNC_RECHECK_HOURS', '24'))
    except ValueError:
        return 24.0


class AppCORSMiddleware(CORSMiddleware):
    """CORS for everything except /sync, whose router answers preflight and sets its own headers."""

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["path"] == SYNC_PATH:
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


scheduler = _build_scheduler()


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Plan Sync API")
    under_test = os.environ.get("PYTEST_RUNNING") == "1"

    if target_configured() and not under_test:
        await database.connect()
    else:
        logger.warning("Target database not connected (MONGO_URL/DB_NAME missing or test run); /sync will report configuration errors")

    for name in ("SOURCE_SUPABASE_URL", "SOURCE_SUPABASE_KEY"):
        logger.info(f"{name}: {'set' if os.environ.get(name) else 'MISSING'}")

    scheduler_started = False
    if database.get_db() is not None and not under_test:
        # Periodic re-check of every account that has synced before
        scheduler.add_job(
            run_periodic_plan_sync,
            IntervalTrigger(hours=_recheck_hours()),
            id="periodic_plan_sync",
            name="Periodic Plan & Client Re-check",
            replace_existing=True
        )
        scheduler.start()
        scheduler_started = True
        logger.info("Background job scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down Plan Sync API")
    if scheduler_started:
        scheduler.shutdown(wait=False)
        logger.info("Background job scheduler stopped")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="Plan Sync API",
    description="Plan and client reconciliation from the billing system",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration (/sync excluded, see routes/sync.py)
app.add_middleware(
    AppCORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sync.router)

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "database": "connected" if database.get_db() is not None else "disconnected",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


# Version/build stamp for deployment verification (commit SHA set by CI/CD, e.g. GIT_COMMIT_SHA)
@app.get("/api/version")
async def version_info():
    return {
        "commit_sha": os.getenv("GIT_COMMIT_SHA", os.getenv("BUILD_SHA", "unknown")),
        "environment": os.getenv("ENVIRONMENT", "development"),
    }


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
