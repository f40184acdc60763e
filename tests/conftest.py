# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up environment variables before any app import
# - InMemoryStore: dict-backed stand-in for SupabaseStore
# - FakeStorage: scripted blob store (per-file failures, recorded paths)
# - RecordingPublisher: EventPublisher that records instead of using Redis
# - api_client: TestClient wired to the fakes through dependency_overrides
# =============================================================================

import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-for-lumo-tests")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_lumo")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_lumo")
os.environ.setdefault("INSTAGRAM_APP_ID", "ig-app-id")
os.environ.setdefault("INSTAGRAM_APP_SECRET", "ig-app-secret")
os.environ.setdefault("INSTAGRAM_REDIRECT_URI", "https://api.lumo.test/api/auth/instagram/callback")
os.environ.setdefault("FRONTEND_URL", "https://lumo.test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

import copy
import time
import uuid
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from jose import jwt

from app.config import Settings, get_settings
from app.dependencies import Services, get_services, wire_services
from app.exceptions import StorageUploadError
from app.websocket.broadcast import EventPublisher
from core.services.storage_service import CancellationToken, UploadSource
from lib.instagram import InstagramAPI
from lib.supabase_client import SupabaseClientError
from lib.utils import utc_now_iso

BRAND_ID = "brand-0001"
CREATOR_ID = "creator-0002"
OUTSIDER_ID = "outsider-0003"


# =============================================================================
# Fakes
# =============================================================================

class InMemoryStore:
    """
    Dict-backed implementation of the SupabaseStore interface.

    `fail_on` holds (operation, table) pairs that raise SupabaseClientError,
    e.g. {("update", "orders")}.
    """

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.fail_on: set[tuple[str, str]] = set()
        self.client = MagicMock(name="supabase_client")

    # Helpers ---------------------------------------------------------------

    def _rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def _check(self, operation: str, table: str) -> None:
        if (operation, table) in self.fail_on:
            raise SupabaseClientError(f"Simulated {operation} failure on {table}", code="SIMULATED")

    @staticmethod
    def _matches(row: dict[str, Any], eq: dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in eq.items())

    def seed(self, table: str, *rows: dict[str, Any]) -> None:
        for row in rows:
            self._rows(table).append(copy.deepcopy(row))

    def all(self, table: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self._rows(table))

    # SupabaseStore interface -----------------------------------------------

    def get(self, table: str, key: str, column: str = "id") -> dict[str, Any] | None:
        self._check("get", table)
        for row in self._rows(table):
            if row.get(column) == key:
                return copy.deepcopy(row)
        return None

    def find(self, table, *, eq=None, contains=None, lt=None, order_by=None, desc=False, limit=None):
        self._check("find", table)
        rows = [row for row in self._rows(table) if self._matches(row, eq or {})]
        for column, values in (contains or {}).items():
            rows = [row for row in rows if all(v in (row.get(column) or []) for v in values)]
        for column, value in (lt or {}).items():
            rows = [row for row in rows if row.get(column) is not None and str(row[column]) < str(value)]
        if order_by:
            rows.sort(key=lambda row: str(row.get(order_by) or ""), reverse=desc)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        self._check("insert", table)
        row = {"id": str(uuid.uuid4()), "created_at": utc_now_iso(), **copy.deepcopy(data)}
        self._rows(table).append(row)
        return copy.deepcopy(row)

    def insert_if_absent(self, table: str, data: dict[str, Any], on_conflict: str = "id") -> bool:
        self._check("insert", table)
        keys = {column: data.get(column) for column in on_conflict.split(",")}
        if any(self._matches(row, keys) for row in self._rows(table)):
            return False
        self._rows(table).append(copy.deepcopy(data))
        return True

    def upsert(self, table: str, data: dict[str, Any], on_conflict: str = "id") -> dict[str, Any]:
        self._check("upsert", table)
        keys = {column: data.get(column) for column in on_conflict.split(",")}
        for row in self._rows(table):
            if self._matches(row, keys):
                row.update(copy.deepcopy(data))
                return copy.deepcopy(row)
        row = {"id": str(uuid.uuid4()), "created_at": utc_now_iso(), **copy.deepcopy(data)}
        self._rows(table).append(row)
        return copy.deepcopy(row)

    def update(self, table: str, match: dict[str, Any], data: dict[str, Any]) -> list[dict[str, Any]]:
        self._check("update", table)
        updated = []
        for row in self._rows(table):
            if self._matches(row, match):
                row.update(copy.deepcopy(data))
                updated.append(copy.deepcopy(row))
        return updated

    def delete(self, table: str, match: dict[str, Any]) -> int:
        self._check("delete", table)
        rows = self._rows(table)
        kept = [row for row in rows if not self._matches(row, match)]
        self.tables[table] = kept
        return len(rows) - len(kept)

    def ping(self, table: str) -> None:
        self._check("ping", table)


class FakeStorage:
    """
    Scripted stand-in for StorageService.

    Files whose name is in `fail_names` raise StorageUploadError; the rest
    are read fully and reported at 0.5 and 1.0 progress.
    """

    bucket = "deliveries"

    def __init__(self):
        self.fail_names: set[str] = set()
        self.uploaded: dict[str, bytes] = {}
        self.bucket_ok = True

    async def upload(
        self,
        path: str,
        source: UploadSource,
        on_progress: Callable[[float], None] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled(path)
        if source.name in self.fail_names:
            raise StorageUploadError(path, "HTTP 500")
        data = source.stream.read()
        if on_progress is not None:
            on_progress(0.5)
            on_progress(1.0)
        self.uploaded[path] = data
        return self.get_public_url(path)

    def get_public_url(self, storage_path: str) -> str:
        return f"https://cdn.lumo.test/{self.bucket}/{storage_path}"

    def check_bucket(self) -> None:
        if not self.bucket_ok:
            raise RuntimeError("bucket not found")


class RecordingPublisher(EventPublisher):
    """EventPublisher that keeps events in memory."""

    def __init__(self):
        super().__init__("redis://unused")
        self.events: list[dict[str, Any]] = []

    def publish(self, conversation_id: str, event_type: str, data: dict[str, Any]) -> bool:
        self.events.append({"conversation_id": conversation_id, "type": event_type, **data})
        return True

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [event for event in self.events if event["type"] == event_type]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return get_settings().model_copy(update={"UPLOAD_MAX_CONCURRENCY": 2})


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def instagram_handler() -> dict[str, Any]:
    """
    Routes for the fake Instagram API: path -> (status, json).

    Tests add entries; unknown paths answer 404.
    """
    return {}


@pytest.fixture
def instagram_api(instagram_handler, settings) -> InstagramAPI:
    def handler(request: httpx.Request) -> httpx.Response:
        status, body = instagram_handler.get(request.url.path, (404, {"error": "not found"}))
        return httpx.Response(status, json=body)

    return InstagramAPI(
        httpx.Client(transport=httpx.MockTransport(handler)),
        settings.INSTAGRAM_APP_ID,
        settings.INSTAGRAM_APP_SECRET,
        settings.INSTAGRAM_REDIRECT_URI,
    )


@pytest.fixture
def services(settings, store, publisher, storage, instagram_api) -> Services:
    return wire_services(settings, store, publisher, storage, instagram_api)


@pytest.fixture
def seeded_users(store):
    """A brand and a creator with finished profiles."""
    store.seed(
        "users",
        {"id": BRAND_ID, "email": "team@acme.test", "role": "brand", "brand_name": "Acme Travel"},
        {
            "id": CREATOR_ID,
            "email": "ola@creator.test",
            "role": "creator",
            "first_name": "Ola",
            "last_name": "Nowak",
            "instagram_handle": "ola.travels",
            "follower_count": 12000,
        },
    )
    return BRAND_ID, CREATOR_ID


@pytest.fixture
def trip() -> dict[str, Any]:
    return {
        "id": "trip-1",
        "destination": "Lisbon",
        "country": "Portugal",
        "start_date": "2025-05-01",
        "end_date": "2025-05-08",
    }


@pytest.fixture
def make_token(settings) -> Callable[..., str]:
    """Build a Supabase-style access token for a user id."""

    def _make(user_id: str, email: str | None = None, expires_in: int = 3600, **claims: Any) -> str:
        now = int(time.time())
        payload = {
            "sub": user_id,
            "email": email or f"{user_id}@lumo.test",
            "aud": "authenticated",
            "role": "authenticated",
            "iat": now,
            "exp": now + expires_in,
            **claims,
        }
        return jwt.encode(payload, settings.SUPABASE_JWT_SECRET, algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(make_token) -> Callable[[str], dict[str, str]]:
    return lambda user_id: {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def api_client(services):
    """TestClient whose routes use the in-memory services."""
    from fastapi.testclient import TestClient

    from app.main import app

    app.dependency_overrides[get_services] = lambda: services
    client = TestClient(app, raise_server_exceptions=False)
    yield client
    app.dependency_overrides.clear()
