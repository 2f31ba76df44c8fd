"""Shared fixtures for the marketplace API test suite."""

import copy
import itertools

import httpx
import pytest

import ghardaar.backend.factory as factory_mod
import ghardaar.providers.registry as registry_mod
import ghardaar.sheets.logger as sheets_mod
from ghardaar.backend.base import AuthUser, Backend, BackendError, ChangeEvent, Subscription
from ghardaar.config.settings import get_settings
from ghardaar.security.ratelimit import get_rate_limiter

ADMIN_TOKEN = "token-admin"
STAFF_TOKEN = "token-staff"
CUSTOMER_TOKEN = "token-customer"


class FakeSubscription(Subscription):
    def __init__(self, backend, table, callback):
        self.backend = backend
        self.table = table
        self.callback = callback
        self.active = True

    async def unsubscribe(self) -> None:
        self.active = False
        self.backend.subscriptions.remove(self)


class FakeBackend(Backend):
    """In-memory Backend double. Failures are injected per (operation, table)."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.users: dict[str, AuthUser] = {}
        self.tokens: dict[str, str] = {}
        self.failures: dict[tuple[str, str], BackendError] = {}
        self.calls: list[tuple] = []
        self.subscriptions: list[FakeSubscription] = []
        self._ids = itertools.count(1)

    # --- helpers for tests ---

    def seed(self, table: str, *rows: dict) -> None:
        self.tables.setdefault(table, []).extend(copy.deepcopy(list(rows)))

    def fail(self, operation: str, table: str, message: str = "boom", code: str | None = None) -> None:
        self.failures[(operation, table)] = BackendError(message, code=code)

    def add_user(self, user_id: str, email: str, token: str | None = None, **metadata) -> AuthUser:
        user = AuthUser(id=user_id, email=email, metadata=metadata)
        self.users[user_id] = user
        if token:
            self.tokens[token] = user_id
        return user

    def emit(self, event: ChangeEvent) -> None:
        for sub in list(self.subscriptions):
            if sub.table == event.table:
                sub.callback(event)

    def _check(self, operation: str, table: str) -> None:
        error = self.failures.get((operation, table))
        if error is not None:
            raise error

    @staticmethod
    def _matches(row: dict, filters) -> bool:
        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                if row.get(column) not in value:
                    return False
            elif row.get(column) != value:
                return False
        return True

    # --- Backend interface ---

    async def select(self, table, filters=None, order=None, descending=False, columns="*"):
        self.calls.append(("select", table, dict(filters or {})))
        self._check("select", table)
        rows = [copy.deepcopy(r) for r in self.tables.get(table, []) if self._matches(r, filters)]
        if order:
            rows.sort(key=lambda r: r.get(order) or "", reverse=descending)
        return rows

    async def insert(self, table, row):
        self.calls.append(("insert", table, dict(row)))
        self._check("insert", table)
        stored = dict(row)
        stored.setdefault("id", f"{table}-{next(self._ids)}")
        self.tables.setdefault(table, []).append(stored)
        return copy.deepcopy(stored)

    async def update(self, table, values, filters):
        self.calls.append(("update", table, dict(values), dict(filters)))
        self._check("update", table)
        updated = []
        for row in self.tables.get(table, []):
            if self._matches(row, filters):
                row.update(values)
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table, filters):
        self.calls.append(("delete", table, dict(filters)))
        self._check("delete", table)
        self.tables[table] = [r for r in self.tables.get(table, []) if not self._matches(r, filters)]

    async def subscribe(self, table, callback):
        sub = FakeSubscription(self, table, callback)
        self.subscriptions.append(sub)
        return sub

    async def get_user(self, token):
        user_id = self.tokens.get(token)
        return self.users.get(user_id) if user_id else None

    async def create_user(self, email, password, metadata=None):
        self.calls.append(("create_user", email))
        self._check("create_user", "auth")
        user_id = f"user-{next(self._ids)}"
        return self.add_user(user_id, email, **(metadata or {}))

    async def update_user(self, user_id, attributes):
        self.calls.append(("update_user", user_id, dict(attributes)))
        self._check("update_user", "auth")
        user = self.users[user_id]
        if "email" in attributes:
            user.email = attributes["email"]
        user.metadata.update(attributes.get("user_metadata", {}))

    async def delete_user(self, user_id):
        self.calls.append(("delete_user", user_id))
        self._check("delete_user", "auth")
        self.users.pop(user_id, None)

    async def list_users(self):
        self._check("list_users", "auth")
        return list(self.users.values())


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Backend with one admin, one active staff member with one sheet, and a customer."""
    backend = FakeBackend()
    backend.add_user("admin-1", "admin@ghardaar.in", token=ADMIN_TOKEN, name="Asha Admin")
    backend.add_user("staff-1", "staff@ghardaar.in", token=STAFF_TOKEN)
    backend.add_user("cust-1", "buyer@example.com", token=CUSTOMER_TOKEN, full_name="Ravi Buyer")
    backend.seed("admins", {"id": "admin-1", "name": "Asha Admin"})
    backend.seed("crm_staff", {"id": "staff-1", "email": "staff@ghardaar.in", "name": "Sam Staff", "is_active": True})
    backend.seed(
        "crm_sheets",
        {"id": "sheet-1", "name": "Pune Leads", "created_at": "2025-01-01T00:00:00Z"},
        {"id": "sheet-2", "name": "Mumbai Leads", "created_at": "2025-02-01T00:00:00Z"},
    )
    backend.seed("crm_sheet_access", {"id": "acc-1", "staff_id": "staff-1", "sheet_id": "sheet-1"})
    return backend


def make_client_row(client_id: str, sheet_id: str = "sheet-1", created_at: str = "2025-03-01T00:00:00Z", **overrides) -> dict:
    row = {
        "id": client_id,
        "client_name": f"Client {client_id}",
        "customer_number": "9876543210",
        "lead_stage": "follow_up_req",
        "lead_type": "warm",
        "location_category": "Baner",
        "calling_comment": None,
        "expected_visit_date": None,
        "deal_status": "open",
        "admin_notes": None,
        "sheet_id": sheet_id,
        "created_at": created_at,
    }
    row.update(overrides)
    return row


@pytest.fixture
def crm_rows(fake_backend) -> list[dict]:
    rows = [
        make_client_row("c1", created_at="2025-03-01T00:00:00Z", lead_type="hot"),
        make_client_row("c2", created_at="2025-03-02T00:00:00Z", lead_type="cold", location_category="Wakad"),
        make_client_row("c3", created_at="2025-03-03T00:00:00Z", deal_status="locked"),
        make_client_row("x1", sheet_id="sheet-2"),
    ]
    fake_backend.seed("crm_clients", *rows)
    return rows


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(GEMINI_API_KEY="k", RATE_LIMIT_MAX_REQUESTS="3")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    """Reset module-level singletons and limiter state between tests."""
    monkeypatch.setattr(factory_mod, "_backend", None)
    monkeypatch.setattr(registry_mod, "_providers", {})
    monkeypatch.setattr(sheets_mod, "_logger", None)
    get_rate_limiter().store.clear()
    yield
    get_rate_limiter().store.clear()


@pytest.fixture
async def app_client(monkeypatch, fake_backend):
    """httpx AsyncClient wired to the FastAPI app with the fake backend installed."""
    monkeypatch.setattr(factory_mod, "_backend", fake_backend)
    from ghardaar.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_row():
    return make_client_row


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return auth(ADMIN_TOKEN)


@pytest.fixture
def staff_headers() -> dict[str, str]:
    return auth(STAFF_TOKEN)


@pytest.fixture
def customer_headers() -> dict[str, str]:
    return auth(CUSTOMER_TOKEN)
