from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class PlanName(str, Enum):
    """Target plan taxonomy. Values are the `name` column of subscription_plans."""
    GRATUITO = "Gratuito"
    PROFISSIONAL = "Profissional"
    EMPRESARIAL = "Empresarial"

class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

class ClientOrigin(str, Enum):
    NATIVE = "native"
    IMPORTED = "imported"

class SyncStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"

class SyncAction(str, Enum):
    SYNC = "sync"
    FETCH_CLIENTS = "fetch_clients"

class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"

class AuditAction(str, Enum):
    PLAN_SYNC_COMPLETED = "PLAN_SYNC_COMPLETED"
    PLAN_SYNC_FAILED = "PLAN_SYNC_FAILED"
    IMPORTED_CLIENTS_PURGED = "IMPORTED_CLIENTS_PURGED"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# REQUEST / RESPONSE
# ============================================================================

class SyncRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_email: str
    action: SyncAction = SyncAction.SYNC

    @field_validator("user_email", mode="before")
    @classmethod
    def _require_email(cls, v):
        if not isinstance(v, str) or "@" not in v:
            raise ValueError("Valid user_email is required")
        return v.strip()


class SyncResult(BaseModel):
    """Envelope returned by POST /sync."""
    success: bool
    sync_status: SyncStatus
    original_plan: Optional[str] = None
    mapped_plan: Optional[str] = None
    clients_synced: Optional[int] = None
    contracts_synced: Optional[int] = None
    error: Optional[str] = None
    details: Optional[str] = None
    message: Optional[str] = None
    synced_at: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ============================================================================
# SOURCE SYSTEM (read-only views)
# ============================================================================

class SourceAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email: str
    subscription: Optional[str] = None
    name: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v) if v is not None else v


class SourceClient(BaseModel):
    """A Source client after alias coalescing."""
    source_client_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None
    description: Optional[str] = None


# ============================================================================
# TARGET SYSTEM
# ============================================================================

class TargetAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    email: str
    name: Optional[str] = None


class ClientRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    client_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    cnpj: Optional[str] = None
    description: Optional[str] = None
    origin: ClientOrigin = ClientOrigin.NATIVE
    source_client_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[str] = None
    user_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=utc_now)


class FetchClientsResult(BaseModel):
    success: bool = True
    action: SyncAction = SyncAction.FETCH_CLIENTS
    user_email: str
    clients: List[SourceClient] = Field(default_factory=list)
    clients_count: int = 0
    timestamp: str
