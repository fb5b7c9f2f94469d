"""
Pytest configuration and fixtures for storefront tests.

The hosted backend is replaced by ``FakeBackend``, an in-memory stand-in
for its auth and REST endpoints served through ``httpx.MockTransport``.
"""

import asyncio
import itertools
import json
import uuid
from typing import Any

import httpx
import pytest

from shared.config.settings import Settings
from storefront.app.services import StorefrontServices
from storefront.backend.client import BackendClient
from storefront.backend.storage import MemoryStorage


BACKEND_URL = "https://project.example.com"
ANON_KEY = "anon-test-key"
PASSWORD = "Secret123"


class FakeClock:
    """Manually advanced clock, usable as both wall clock and monotonic clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """
    In-memory auth + REST service.

    Failure injection:
        backend.fail("POST", "/rest/v1/order_items", status=500)
        backend.fail("POST", "/auth/v1/token", status=0)   # network error

    Holding a request mid-flight (for race tests):
        arrived, release = backend.hold("GET", "/rest/v1/profiles")
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.expires_in = 3600
        self.require_confirmation = False
        self.users: dict[str, dict[str, Any]] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.tables: dict[str, list[dict[str, Any]]] = {
            "profiles": [],
            "orders": [],
            "order_items": [],
        }
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[tuple[str, str], tuple[int, str]] = {}
        self._holds: dict[tuple[str, str], tuple[asyncio.Event, asyncio.Event]] = {}
        self._ids = itertools.count(1)

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def add_user(
        self,
        email: str,
        password: str = PASSWORD,
        confirmed: bool = True,
        user_metadata: dict[str, Any] | None = None,
        app_metadata: dict[str, Any] | None = None,
        profile: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        user = {
            "id": str(uuid.uuid4()),
            "email": email,
            "password": password,
            "confirmed": confirmed,
            "user_metadata": user_metadata or {},
            "app_metadata": app_metadata or {"provider": "email"},
            "created_at": "2024-01-01T00:00:00+00:00",
        }
        self.users[email] = user
        if profile is not None:
            self.tables["profiles"].append({"id": user["id"], "email": email, **profile})
        return user

    def fail(self, method: str, path: str, status: int = 500, message: str = "Internal error") -> None:
        self._failures[(method, path)] = (status, message)

    def recover(self, method: str, path: str) -> None:
        self._failures.pop((method, path), None)

    def hold(self, method: str, path: str) -> tuple[asyncio.Event, asyncio.Event]:
        """Block matching requests until ``release`` is set; ``arrived`` fires when one is waiting."""
        arrived, release = asyncio.Event(), asyncio.Event()
        self._holds[(method, path)] = (arrived, release)
        return arrived, release

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    def session_payload(self, user: dict[str, Any]) -> dict[str, Any]:
        refresh_token = f"refresh-{uuid.uuid4().hex}"
        self.refresh_tokens[refresh_token] = user["email"]
        return {
            "access_token": f"access-{uuid.uuid4().hex}",
            "token_type": "bearer",
            "expires_in": self.expires_in,
            "expires_at": int(self.clock() + self.expires_in),
            "refresh_token": refresh_token,
            "user": self._public_user(user),
        }

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def handle(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.calls.append((method, path))

        hold = self._holds.pop((method, path), None)
        if hold is not None:
            arrived, release = hold
            arrived.set()
            await release.wait()

        failure = self._failures.get((method, path))
        if failure is not None:
            status, message = failure
            if status == 0:
                raise httpx.ConnectError(message, request=request)
            return httpx.Response(status, json={"message": message})

        body = json.loads(request.content) if request.content else None

        if path.startswith("/auth/v1/"):
            return self._auth(path.removeprefix("/auth/v1/"), request, body)
        if path.startswith("/rest/v1/"):
            return self._rest(method, path.removeprefix("/rest/v1/"), request, body)
        return httpx.Response(404, json={"message": "Not found"})

    def _public_user(self, user: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": user["id"],
            "email": user["email"],
            "user_metadata": user["user_metadata"],
            "app_metadata": user["app_metadata"],
            "email_confirmed_at": "2024-01-01T00:00:00+00:00" if user["confirmed"] else None,
            "created_at": user["created_at"],
        }

    def _auth(self, endpoint: str, request: httpx.Request, body: Any) -> httpx.Response:
        if endpoint == "token":
            grant_type = request.url.params.get("grant_type")
            if grant_type == "password":
                user = self.users.get(body["email"])
                if user is None or user["password"] != body["password"]:
                    return httpx.Response(
                        400,
                        json={"error": "invalid_grant", "error_description": "Invalid login credentials"},
                    )
                if self.require_confirmation and not user["confirmed"]:
                    return httpx.Response(
                        400,
                        json={"error_code": "email_not_confirmed", "msg": "Email not confirmed"},
                    )
                return httpx.Response(200, json=self.session_payload(user))

            if grant_type == "refresh_token":
                email = self.refresh_tokens.pop(body.get("refresh_token"), None)
                if email is None:
                    return httpx.Response(
                        400,
                        json={
                            "error_code": "refresh_token_not_found",
                            "msg": "Invalid Refresh Token: Refresh Token Not Found",
                        },
                    )
                return httpx.Response(200, json=self.session_payload(self.users[email]))

        if endpoint == "signup":
            if body["email"] in self.users:
                return httpx.Response(
                    422,
                    json={"code": 422, "error_code": "user_already_exists", "msg": "User already registered"},
                )
            user = self.add_user(
                body["email"],
                body["password"],
                confirmed=not self.require_confirmation,
                user_metadata=body.get("data") or {},
            )
            if self.require_confirmation:
                return httpx.Response(200, json=self._public_user(user))
            return httpx.Response(200, json=self.session_payload(user))

        if endpoint == "logout":
            return httpx.Response(204)

        if endpoint in ("resend", "recover"):
            return httpx.Response(200, json={})

        return httpx.Response(404, json={"message": f"Unknown auth endpoint {endpoint}"})

    def _rest(self, method: str, table: str, request: httpx.Request, body: Any) -> httpx.Response:
        rows = self.tables.setdefault(table, [])
        filters = {
            key: value.removeprefix("eq.")
            for key, value in request.url.params.multi_items()
            if value.startswith("eq.")
        }

        def matches(row: dict[str, Any]) -> bool:
            return all(str(row.get(key)) == value for key, value in filters.items())

        if method == "GET":
            found = [row for row in rows if matches(row)]
            limit = request.url.params.get("limit")
            if limit:
                found = found[: int(limit)]
            return httpx.Response(200, json=found)

        if method == "POST":
            created = []
            for row in body:
                row = dict(row)
                if table == "profiles" and any(existing["id"] == row["id"] for existing in rows):
                    return httpx.Response(409, json={"code": "23505", "message": "duplicate key value"})
                row.setdefault("id", f"{table}-{next(self._ids)}")
                rows.append(row)
                created.append(row)
            return httpx.Response(201, json=created)

        if method == "PATCH":
            updated = []
            for row in rows:
                if matches(row):
                    row.update(body)
                    updated.append(row)
            return httpx.Response(200, json=updated)

        return httpx.Response(405, json={"message": "Method not allowed"})


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_backend(clock):
    return FakeBackend(clock)


@pytest.fixture
def transport(fake_backend):
    return httpx.MockTransport(fake_backend.handle)


@pytest.fixture
def test_settings():
    """Configured settings that ignore the environment and any .env file."""
    return Settings(
        _env_file=None,
        backend_url=BACKEND_URL,
        backend_anon_key=ANON_KEY,
        environment="test",
        debug=False,
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def backend_client(test_settings, storage, transport, clock):
    return BackendClient(test_settings, storage=storage, transport=transport, clock=clock)


@pytest.fixture
def services(test_settings, storage, transport, clock):
    """Fully wired storefront services (not started)."""
    return StorefrontServices.create(
        test_settings,
        transport=transport,
        storage=storage,
        clock=clock,
        monotonic=clock,
    )


@pytest.fixture
def customer(fake_backend):
    """Confirmed customer with an existing profile row."""
    return fake_backend.add_user(
        "maria@example.com",
        profile={"full_name": "Maria Lopez", "phone": "+15551234567", "role": "customer"},
    )


@pytest.fixture
def admin(fake_backend):
    """Confirmed admin with an existing profile row."""
    return fake_backend.add_user(
        "admin@example.com",
        profile={"full_name": "Site Admin", "role": "admin"},
    )


@pytest.fixture
def guest_info():
    return {"fullName": "Jane", "phone": "+15551234567", "email": "jane@example.com"}
