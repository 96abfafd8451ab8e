from database import database
from models import AuditLog, AuditAction
from datetime import datetime
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

async def create_audit_log(
    action: AuditAction,
    actor_role: Optional[str] = None,
    user_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """Create an audit log entry.

    Args:
        action: The audit action type
        actor_role: Who triggered the action (e.g. SYSTEM)
        user_id: Target account affected
        resource_type: Type of resource touched (e.g. 'user_subscription', 'client')
        resource_id: ID of the specific resource
        metadata: Additional metadata
    """
    try:
        db = database.get_db()
        if db is None:
            logger.warning(f"Audit log skipped, no database: {action.value}")
            return ""

        audit_log = AuditLog(
            action=action,
            actor_role=actor_role,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            metadata=metadata,
        )

        doc = audit_log.model_dump()
        doc["action"] = audit_log.action.value
        doc["timestamp"] = doc["timestamp"].isoformat() if isinstance(doc["timestamp"], datetime) else doc["timestamp"]

        await db.audit_logs.insert_one(doc)
        logger.info(f"Audit log created: {action.value}")
        return audit_log.audit_id
    except Exception as e:
        logger.error(f"Failed to create audit log: {e}")
        # Never fail the main operation due to audit log failure
        return ""
