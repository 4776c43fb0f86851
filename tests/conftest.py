"""
Pytest configuration and fixtures
"""
import hashlib
import hmac
import json
import os
import time
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing
os.environ["SUPABASE_URL"] = "https://test-project.supabase.co"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "service-role-test-key"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-for-unit-tests-only"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_ELITE_PRICE_ID"] = "price_elite_monthly"
os.environ["APP_RETURN_URL"] = "https://app.test"
os.environ.pop("STRIPE_EVENT_LEDGER", None)

# Import after setting env vars
from gaytradies import deps
from gaytradies.auth import Caller, get_caller
from gaytradies.config import get_settings
from gaytradies.main import app

WEBHOOK_SECRET = "whsec_test_secret"


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Just enough of the postgrest query builder for the store module."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload: Any = None
        self.filters: List = []
        self.row_limit: Optional[int] = None
        self.on_conflict = "id"
        self.ignore_duplicates = False

    def select(self, *columns):
        self.op = "select"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def is_(self, column, value):
        self.filters.append((column, None if value == "null" else value))
        return self

    def limit(self, n):
        self.row_limit = n
        return self

    def insert(self, row):
        self.op, self.payload = "insert", row
        return self

    def upsert(self, row, on_conflict="id", ignore_duplicates=False):
        self.op, self.payload = "upsert", row
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, fields):
        self.op, self.payload = "update", fields
        return self

    def _matches(self, row):
        return all(row.get(col) == value for col, value in self.filters)

    def execute(self):
        if self.table in self.db.failing:
            raise RuntimeError(f"{self.table} unavailable")
        rows = self.db.tables.setdefault(self.table, [])
        self.db.calls.append((self.table, self.op, self.payload))

        if self.op == "select":
            found = [dict(r) for r in rows if self._matches(r)]
            return FakeResponse(found[: self.row_limit] if self.row_limit else found)

        if self.op == "insert":
            row = dict(self.payload)
            row.setdefault("id", len(rows) + 1)
            rows.append(row)
            return FakeResponse([dict(row)])

        if self.op == "upsert":
            keys = self.on_conflict.split(",")
            existing = next(
                (r for r in rows if all(r.get(k) == self.payload.get(k) for k in keys)), None
            )
            if existing is None:
                rows.append(dict(self.payload))
                return FakeResponse([dict(self.payload)])
            if self.ignore_duplicates:
                return FakeResponse([])
            existing.update(self.payload)
            return FakeResponse([dict(existing)])

        if self.op == "update":
            changed = []
            for r in rows:
                if self._matches(r):
                    r.update(self.payload)
                    changed.append(dict(r))
            return FakeResponse(changed)

        raise AssertionError(f"unexpected op {self.op}")


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List = []
        self.failing = set()
        self.auth = MagicMock()

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, name):
        return self.tables.get(name, [])

    def row(self, name, **match):
        return next((r for r in self.rows(name) if all(r.get(k) == v for k, v in match.items())), None)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings and lazily built clients start clean for every test."""
    get_settings.cache_clear()
    deps.reset_clients()
    yield
    get_settings.cache_clear()
    deps.reset_clients()
    app.dependency_overrides.clear()


@pytest.fixture
def db(fresh_settings, monkeypatch):
    fake = FakeSupabase()
    monkeypatch.setattr(deps, "_supabase", fake)
    return fake


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def login():
    """Call login("uid") to make requests as that user."""

    def _login(uid: str, email: Optional[str] = None, is_admin: bool = False) -> Caller:
        caller = Caller(uid=uid, email=email or f"{uid}@example.com", is_admin=is_admin)
        app.dependency_overrides[get_caller] = lambda: caller
        return caller

    return _login


@pytest.fixture
def job(db):
    row = {
        "id": "job_1",
        "client_uid": "client_1",
        "tradie_uid": "tradie_1",
        "payment_status": "none",
        "title": "Rewire kitchen",
    }
    db.tables.setdefault("jobs", []).append(row)
    return row


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header for ``payload`` using Stripe's v1 scheme."""
    t = timestamp or int(time.time())
    signed = f"{t}.".encode() + payload
    sig = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={t},v1={sig}"


def make_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "livemode": False,
        "data": {"object": obj},
    }).encode()


@pytest.fixture
def deliver(client):
    """POST a signed webhook event; returns the response."""

    def _deliver(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1"):
        payload = make_event(event_type, obj, event_id)
        return client.post(
            "/stripe/webhook",
            content=payload,
            headers={"stripe-signature": sign_payload(payload), "content-type": "application/json"},
        )

    return _deliver
