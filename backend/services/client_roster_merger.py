"""Stage 4: merge the Source client roster into the Target clients collection.

Entitled plans: insert Source clients not yet imported. A candidate is a
duplicate when its name matches an imported client, or its email does, or its
tax-id does. Matching on any one field skips some legitimate clients in exchange
for never inserting the same client twice. The placeholder name given to
nameless clients only counts when the client has no email or tax-id.

Plans without the integration: every imported client of the account is deleted.

This stage never fails the job. The subscription was already committed by
stage 3; errors here are logged and reported as a lower clients_synced.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from pymongo.errors import BulkWriteError

from database import database
from models import ClientOrigin, ClientRecord, PlanName, SourceClient, utc_now
from services.plan_registry import get_plan_capabilities
from services.source_system import SourceSystemClient

logger = logging.getLogger(__name__)

UNNAMED_CLIENT = "Cliente sem nome"


def _placeholder_only(candidate: ClientRecord) -> bool:
    """Placeholder name with an email or tax-id to match on instead."""
    return candidate.name == UNNAMED_CLIENT and bool(candidate.email or candidate.cnpj)


class PartialInsertError(Exception):
    def __init__(self, inserted: int, message: str):
        self.inserted = inserted
        super().__init__(message)


@dataclass
class RosterMergeReport:
    clients_synced: int = 0
    skipped_duplicates: int = 0
    purged: int = 0
    error: Optional[str] = None


@dataclass
class ImportedClientIndex:
    """Lookup sets over the account's already-imported clients."""
    names: Set[str] = field(default_factory=set)
    emails: Set[str] = field(default_factory=set)
    tax_ids: Set[str] = field(default_factory=set)

    @classmethod
    def from_rows(cls, rows: List[Dict]) -> "ImportedClientIndex":
        index = cls()
        for row in rows:
            index.add(row.get("name"), row.get("email"), row.get("cnpj"))
        return index

    def add(self, name: Optional[str], email: Optional[str], tax_id: Optional[str]) -> None:
        if name:
            self.names.add(name)
        if email:
            self.emails.add(email)
        if tax_id:
            self.tax_ids.add(tax_id)

    def duplicate_reason(self, candidate: ClientRecord) -> Optional[str]:
        if candidate.name in self.names and not _placeholder_only(candidate):
            return "name"
        if candidate.email and candidate.email in self.emails:
            return "email"
        if candidate.cnpj and candidate.cnpj in self.tax_ids:
            return "cnpj"
        return None


def build_candidate(user_id: str, source_client: SourceClient) -> ClientRecord:
    now = utc_now()
    return ClientRecord(
        user_id=user_id,
        name=source_client.name or UNNAMED_CLIENT,
        email=source_client.email,
        phone=source_client.phone,
        address=source_client.address,
        cnpj=source_client.tax_id,
        description=source_client.description,
        origin=ClientOrigin.IMPORTED,
        source_client_id=source_client.source_client_id,
        created_at=now,
        updated_at=now,
    )


def select_new_clients(
    user_id: str,
    source_clients: List[SourceClient],
    index: ImportedClientIndex,
) -> List[ClientRecord]:
    """Candidates that match no imported client, nor the email or tax-id of one accepted earlier in the batch."""
    accepted = []
    for source_client in source_clients:
        candidate = build_candidate(user_id, source_client)
        reason = index.duplicate_reason(candidate)
        if reason:
            logger.info(f"Skipping duplicate client by {reason}: {candidate.name}")
            continue
        index.add(None, candidate.email, candidate.cnpj)
        accepted.append(candidate)
    return accepted


async def purge_imported_clients(user_id: str) -> int:
    db = database.get_db()
    result = await db.clients.delete_many(
        {"user_id": user_id, "origin": ClientOrigin.IMPORTED.value}
    )
    logger.info(f"Purged {result.deleted_count} imported client(s) for {user_id}")
    return result.deleted_count


async def _load_imported_index(user_id: str) -> ImportedClientIndex:
    db = database.get_db()
    rows = await db.clients.find(
        {"user_id": user_id, "origin": ClientOrigin.IMPORTED.value},
        {"_id": 0, "name": 1, "email": 1, "cnpj": 1}
    ).to_list(length=None)
    return ImportedClientIndex.from_rows(rows)


async def _insert_clients(clients: List[ClientRecord]) -> int:
    db = database.get_db()
    docs = [c.model_dump(mode="python") for c in clients]
    for doc in docs:
        doc["origin"] = ClientOrigin.IMPORTED.value
    try:
        result = await db.clients.insert_many(docs, ordered=True)
    except BulkWriteError as e:
        inserted = (e.details or {}).get("nInserted", 0)
        logger.error(f"Client bulk insert stopped after {inserted} row(s): {e}")
        raise PartialInsertError(inserted, str(e)) from e
    return len(result.inserted_ids)


async def merge_client_roster(
    source: SourceSystemClient,
    source_email: str,
    user_id: str,
    plan_name: PlanName,
) -> RosterMergeReport:
    report = RosterMergeReport()
    capabilities = get_plan_capabilities(plan_name)

    if not capabilities.source_integration:
        try:
            report.purged = await purge_imported_clients(user_id)
        except Exception as e:
            logger.error(f"Imported client purge failed for {user_id}: {e}")
            report.error = str(e)
        return report

    try:
        source_clients = await source.fetch_clients_by_email(source_email)
        if not source_clients:
            logger.info(f"No source clients for {source_email}")
            return report

        index = await _load_imported_index(user_id)
        new_clients = select_new_clients(user_id, source_clients, index)
        report.skipped_duplicates = len(source_clients) - len(new_clients)

        if not new_clients:
            logger.info(f"No new clients to sync for {user_id} (all already imported)")
            return report

        report.clients_synced = await _insert_clients(new_clients)
        logger.info(f"Synced {report.clients_synced} new client(s) for {user_id}")
    except PartialInsertError as e:
        report.clients_synced = e.inserted
        report.error = str(e)
    except Exception as e:
        logger.error(f"Client sync failed for {user_id}, continuing: {e}")
        report.error = str(e)

    return report
