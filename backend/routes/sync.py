"""Sync Routes - Plan & client reconciliation from the Source System.

POST /sync                               - Run the reconciliation job for user_email
POST /sync {"action": "fetch_clients"}   - Inspect the normalized Source client list (read-only)
OPTIONS /sync                            - CORS preflight

Every response body is the sync envelope; HTTP status carries the error class
(400 bad input, 404 identity not found, 500 configuration/taxonomy/transport).
"""
from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import json
import logging

from models import SyncAction, SyncRequest, SyncStatus, utc_now
from services.plan_sync_service import plan_sync_service, failure_result
from services.sync_errors import PlanSyncError, InvalidSyncRequest

logger = logging.getLogger(__name__)
router = APIRouter(tags=["sync"])

SYNC_PATH = "/sync"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def _envelope(status_code: int, content: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=CORS_HEADERS)


def _error_response(error: PlanSyncError) -> JSONResponse:
    return _envelope(error.status_code, failure_result(error).to_response())


async def _parse_request(request: Request) -> SyncRequest:
    raw = await request.body()
    try:
        payload = json.loads(raw or b"null")
    except ValueError as e:
        raise InvalidSyncRequest("Invalid JSON in request body", details=str(e))
    if not isinstance(payload, dict):
        raise InvalidSyncRequest("Request body must be a JSON object")
    try:
        return SyncRequest.model_validate(payload)
    except ValidationError as e:
        fields = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
        if "action" in fields:
            raise InvalidSyncRequest("Unknown action", details=str(payload.get("action")))
        raise InvalidSyncRequest()


@router.options(SYNC_PATH)
async def sync_preflight():
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


@router.post(SYNC_PATH)
async def run_sync(request: Request):
    """Run the job, or return the Source client list for action=fetch_clients."""
    try:
        body = await _parse_request(request)
        logger.info(f"Sync request: user_email={body.user_email} action={body.action.value}")

        if body.action == SyncAction.FETCH_CLIENTS:
            result = await plan_sync_service.fetch_clients(body.user_email)
            return _envelope(status.HTTP_200_OK, result.model_dump(mode="json"))

        result = await plan_sync_service.sync(body.user_email)
        return _envelope(status.HTTP_200_OK, result.to_response())

    except PlanSyncError as e:
        return _error_response(e)
    except Exception as e:
        logger.error(f"Unhandled error during sync: {e}", exc_info=True)
        return _envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {
                "success": False,
                "sync_status": SyncStatus.FAILED.value,
                "error": "Internal server error during sync",
                "details": str(e),
                "synced_at": utc_now().isoformat(),
            },
        )


@router.api_route(SYNC_PATH, methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def sync_method_not_allowed():
    return _envelope(
        status.HTTP_405_METHOD_NOT_ALLOWED,
        {"success": False, "sync_status": SyncStatus.FAILED.value, "error": "Method not allowed"},
    )
