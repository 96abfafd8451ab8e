"""
Client roster merge / purge.

- Dedup against imported clients by name OR email OR tax-id; within the batch by email or tax-id.
- The nameless placeholder only matches clients with nothing else to match on.
- Native clients are never touched.
- Plans without the integration lose every imported client.
- Failures are absorbed into the report; nothing raises.
"""
import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from pymongo.errors import BulkWriteError

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from models import PlanName, SourceClient
from services.client_roster_merger import (
    ImportedClientIndex,
    UNNAMED_CLIENT,
    build_candidate,
    merge_client_roster,
    select_new_clients,
)
from services.source_system import SourceRequestError

PATCH_DB = "services.client_roster_merger.database.get_db"


def source_with(*clients):
    source = MagicMock()
    source.fetch_clients_by_email = AsyncMock(return_value=list(clients))
    return source


def imported(name, email=None, cnpj=None, user_id="u1"):
    return {"client_id": f"c-{name}", "user_id": user_id, "name": name, "email": email, "cnpj": cnpj, "origin": "imported"}


class TestSelectNewClients:
    def test_duplicate_by_each_field(self):
        index = ImportedClientIndex.from_rows([imported("Acme", email="acme@a", cnpj="11")])
        batch = [
            SourceClient(name="Acme"),
            SourceClient(name="Other", email="acme@a"),
            SourceClient(name="Third", tax_id="11"),
            SourceClient(name="Fresh", email="fresh@f", tax_id="22"),
        ]
        accepted = select_new_clients("u1", batch, index)
        assert [c.name for c in accepted] == ["Fresh"]

    def test_same_name_different_email_is_skipped(self):
        index = ImportedClientIndex.from_rows([imported("Joao Silva", email="joao1@x")])
        accepted = select_new_clients("u1", [SourceClient(name="Joao Silva", email="joao2@x")], index)
        assert accepted == []

    def test_within_batch_duplicates(self):
        batch = [SourceClient(name="Acme", tax_id="11"), SourceClient(name="Acme Ltda", tax_id="11")]
        accepted = select_new_clients("u1", batch, ImportedClientIndex())
        assert [c.name for c in accepted] == ["Acme"]

    def test_nameless_clients_with_distinct_contacts_are_all_kept(self):
        batch = [SourceClient(email="p@x"), SourceClient(email="q@y", tax_id="9")]
        accepted = select_new_clients("u1", batch, ImportedClientIndex())
        assert [c.email for c in accepted] == ["p@x", "q@y"]
        assert all(c.name == UNNAMED_CLIENT for c in accepted)

    def test_stored_placeholder_does_not_block_new_nameless_client(self):
        index = ImportedClientIndex.from_rows([imported(UNNAMED_CLIENT, email="p@x")])
        accepted = select_new_clients("u1", [SourceClient(email="r@z")], index)
        assert [c.email for c in accepted] == ["r@z"]

    def test_nameless_client_without_contacts_matches_placeholder(self):
        index = ImportedClientIndex.from_rows([imported(UNNAMED_CLIENT)])
        accepted = select_new_clients("u1", [SourceClient(phone="123")], index)
        assert accepted == []

    def test_same_name_within_batch_is_not_matched(self):
        batch = [SourceClient(name="Joao Silva", email="joao1@x"), SourceClient(name="Joao Silva", email="joao2@x")]
        accepted = select_new_clients("u1", batch, ImportedClientIndex())
        assert len(accepted) == 2

    def test_candidate_is_marked_imported(self):
        candidate = build_candidate("u1", SourceClient(source_client_id="s9", name="Acme", tax_id="11"))
        assert candidate.origin.value == "imported"
        assert candidate.cnpj == "11"
        assert candidate.source_client_id == "s9"
        assert candidate.user_id == "u1"


class TestMergeEntitledPlan:
    @pytest.mark.asyncio
    async def test_inserts_new_clients_once(self, fake_db):
        source = source_with(SourceClient(name="Acme", tax_id="11"), SourceClient(name="Beta", email="b@b"))
        with patch(PATCH_DB, return_value=fake_db):
            first = await merge_client_roster(source, "a@x.com", "u1", PlanName.EMPRESARIAL)
            second = await merge_client_roster(source, "a@x.com", "u1", PlanName.EMPRESARIAL)
        assert first.clients_synced == 2
        assert second.clients_synced == 0
        assert second.skipped_duplicates == 2
        assert len(fake_db.clients.docs) == 2
        assert all(d["origin"] == "imported" for d in fake_db.clients.docs)

    @pytest.mark.asyncio
    async def test_native_clients_do_not_block_import(self, fake_db):
        fake_db.clients.docs.append({"client_id": "n1", "user_id": "u1", "name": "Acme", "origin": "native"})
        with patch(PATCH_DB, return_value=fake_db):
            report = await merge_client_roster(source_with(SourceClient(name="Acme")), "a@x.com", "u1", PlanName.PROFISSIONAL)
        assert report.clients_synced == 1
        assert len(fake_db.clients.docs) == 2

    @pytest.mark.asyncio
    async def test_empty_source_roster(self, fake_db):
        with patch(PATCH_DB, return_value=fake_db):
            report = await merge_client_roster(source_with(), "a@x.com", "u1", PlanName.EMPRESARIAL)
        assert report.clients_synced == 0
        assert report.error is None

    @pytest.mark.asyncio
    async def test_fetch_failure_is_absorbed(self, fake_db):
        source = MagicMock()
        source.fetch_clients_by_email = AsyncMock(side_effect=SourceRequestError("timeout"))
        with patch(PATCH_DB, return_value=fake_db):
            report = await merge_client_roster(source, "a@x.com", "u1", PlanName.EMPRESARIAL)
        assert report.clients_synced == 0
        assert report.error == "timeout"
        assert fake_db.clients.docs == []

    @pytest.mark.asyncio
    async def test_partial_insert_reports_inserted_count(self, fake_db):
        fake_db.clients.insert_many = AsyncMock(
            side_effect=BulkWriteError({"nInserted": 1, "writeErrors": [{"index": 1, "code": 11000, "errmsg": "dup"}]})
        )
        source = source_with(SourceClient(name="Acme"), SourceClient(name="Beta"))
        with patch(PATCH_DB, return_value=fake_db):
            report = await merge_client_roster(source, "a@x.com", "u1", PlanName.EMPRESARIAL)
        assert report.clients_synced == 1
        assert report.error


class TestPurgeUnentitledPlan:
    @pytest.mark.asyncio
    async def test_removes_only_imported_clients_of_account(self, fake_db):
        fake_db.clients.docs.extend([
            imported("Acme"),
            imported("Beta"),
            {"client_id": "n1", "user_id": "u1", "name": "Mine", "origin": "native"},
            imported("Other", user_id="u2"),
        ])
        source = source_with(SourceClient(name="Gamma"))
        with patch(PATCH_DB, return_value=fake_db):
            report = await merge_client_roster(source, "a@x.com", "u1", PlanName.GRATUITO)
        assert report.purged == 2
        assert report.clients_synced == 0
        source.fetch_clients_by_email.assert_not_called()
        remaining = {(d["user_id"], d["name"]) for d in fake_db.clients.docs}
        assert remaining == {("u1", "Mine"), ("u2", "Other")}

    @pytest.mark.asyncio
    async def test_purge_failure_is_absorbed(self, fake_db):
        fake_db.clients.delete_many = AsyncMock(side_effect=RuntimeError("down"))
        with patch(PATCH_DB, return_value=fake_db):
            report = await merge_client_roster(source_with(), "a@x.com", "u1", PlanName.GRATUITO)
        assert report.purged == 0
        assert report.error == "down"
