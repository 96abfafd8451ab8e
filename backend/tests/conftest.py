"""
Pytest configuration and shared test helpers for backend tests.
"""
import copy
import os
import sys
from pathlib import Path
from types import SimpleNamespace

# Skip heavy server startup (MongoDB, scheduler) when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import pytest
from pymongo.errors import DuplicateKeyError

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    return TestClient(app)


# ============================================================================
# In-memory Motor double
# ============================================================================

def _get_path(doc, dotted):
    value = doc
    for part in dotted.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _matches(doc, query):
    return all(_get_path(doc, key) == expected for key, expected in (query or {}).items())


def _project(doc, projection):
    doc = copy.deepcopy(doc)
    doc.pop("_id", None)
    if not projection:
        return doc
    included = [k for k, v in projection.items() if v and k != "_id"]
    if not included:
        return doc
    return {k: doc[k] for k in included if k in doc}


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda d: d.get(key) or "", reverse=direction == -1)
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    async def to_list(self, length=None):
        return list(self._docs if length is None else self._docs[:length])


class FakeCollection:
    """Just enough of AsyncIOMotorCollection for the sync job: equality filters, $set/$setOnInsert."""

    def __init__(self, unique=None):
        self.docs = []
        self.unique = unique
        self.write_count = 0

    def _check_unique(self, doc):
        if self.unique and any(d.get(self.unique) == doc.get(self.unique) for d in self.docs):
            raise DuplicateKeyError(f"E11000 duplicate key {self.unique}")

    async def find_one(self, query=None, projection=None):
        for doc in self.docs:
            if _matches(doc, query):
                return _project(doc, projection)
        return None

    def find(self, query=None, projection=None):
        return FakeCursor([_project(d, projection) for d in self.docs if _matches(d, query)])

    async def insert_one(self, doc):
        self._check_unique(doc)
        self.docs.append(copy.deepcopy(doc))
        self.write_count += 1
        return SimpleNamespace(inserted_id=len(self.docs))

    async def insert_many(self, docs, ordered=True):
        ids = []
        for doc in docs:
            await self.insert_one(doc)
            ids.append(len(self.docs))
        return SimpleNamespace(inserted_ids=ids)

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                self.write_count += 1
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = dict(query)
            doc.update(update.get("$setOnInsert", {}))
            doc.update(update.get("$set", {}))
            self.docs.append(copy.deepcopy(doc))
            self.write_count += 1
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=len(self.docs))
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def delete_many(self, query):
        kept = [d for d in self.docs if not _matches(d, query)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        if deleted:
            self.write_count += 1
        return SimpleNamespace(deleted_count=deleted)

    async def distinct(self, key, query=None):
        values = []
        for doc in self.docs:
            if _matches(doc, query):
                value = _get_path(doc, key)
                if value is not None and value not in values:
                    values.append(value)
        return values


class FakeDB:
    def __init__(self):
        self.user_profiles = FakeCollection(unique="user_id")
        self.subscription_plans = FakeCollection(unique="name")
        self.user_subscriptions = FakeCollection(unique="user_id")
        self.clients = FakeCollection(unique="client_id")
        self.audit_logs = FakeCollection()


PLAN_IDS = {
    "Gratuito": "plan-gratuito",
    "Profissional": "plan-profissional",
    "Empresarial": "plan-empresarial",
}


@pytest.fixture
def fake_db():
    """FakeDB with the three plans seeded and one Target account (a@x.com / u1)."""
    db = FakeDB()
    for name, plan_id in PLAN_IDS.items():
        db.subscription_plans.docs.append({"plan_id": plan_id, "name": name})
    db.user_profiles.docs.append({"user_id": "u1", "email": "a@x.com", "name": "Ana"})
    return db
