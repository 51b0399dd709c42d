"""
tests/conftest.py

Shared fixtures: a ViolationStore wired to the in-memory spreadsheet
connector with no-op sleeps, and a TestClient with the store, clock and user
dependencies overridden.
"""

from __future__ import annotations

from typing import Optional

import pytest

from sellerdash.api.auth import AuthenticatedUser
from sellerdash.sheets.cache import TTLCache
from sellerdash.sheets.gate import RequestGate
from sellerdash.sheets.retry import RetryPolicy
from sellerdash.sheets.store import ViolationStore

from tests.fakes import (
    MASTER_ID,
    MASTER_TAB,
    MASTER_USER_EMAIL,
    NOW,
    OWNER_EMAIL,
    ROOT_DOMAIN,
    TEAM_EMAIL,
    FakeClock,
    FakeSheetsConnector,
    acme_active_rows,
    acme_resolved_rows,
    master_rows,
)


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def connector() -> FakeSheetsConnector:
    return FakeSheetsConnector(
        {
            MASTER_ID: {MASTER_TAB: master_rows()},
            "acme-sheet": {
                "Current Violations": acme_active_rows(),
                "Resolved Violations": acme_resolved_rows(),
            },
        }
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def store(connector: FakeSheetsConnector, clock: FakeClock, sleeps: list[float]) -> ViolationStore:
    return ViolationStore(
        connector,
        MASTER_ID,
        master_tab_name=MASTER_TAB,
        root_domain=ROOT_DOMAIN,
        master_user_emails=[MASTER_USER_EMAIL],
        tenant_cache=TTLCache(300, clock=clock),
        clients_cache=TTLCache(120, clock=clock),
        gate=RequestGate(5),
        retry=RetryPolicy(max_attempts=5, base_delay=1.0, max_delay=32.0, sleep=sleeps.append),
        bulk_batch_size=5,
        bulk_batch_delay=0,
        clock=lambda: NOW,
        sleep=sleeps.append,
    )


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def team_settings(monkeypatch):
    from sellerdash.config import settings

    monkeypatch.setattr(settings, "team_emails", TEAM_EMAIL)
    monkeypatch.setattr(settings, "master_user_emails", MASTER_USER_EMAIL)
    return settings


@pytest.fixture()
def app_factory(store: ViolationStore, team_settings, monkeypatch):
    """Return a function building a TestClient signed in as the given e-mail (None = anonymous)."""
    from fastapi.testclient import TestClient

    from sellerdash.api.auth import get_current_user
    from sellerdash.api.deps import get_now, get_store
    from sellerdash.main import app
    from sellerdash.middleware import rate_limit

    monkeypatch.setattr(rate_limit, "_store", rate_limit.InMemoryRateLimitStore())

    def build(email: Optional[str] = OWNER_EMAIL) -> TestClient:
        app.dependency_overrides.clear()
        app.dependency_overrides[get_store] = lambda: store
        app.dependency_overrides[get_now] = lambda: NOW
        if email is not None:
            app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(id="user-1", email=email)
        return TestClient(app)

    yield build
    app.dependency_overrides.clear()


@pytest.fixture()
def client(app_factory):
    return app_factory(OWNER_EMAIL)


@pytest.fixture()
def team_client(app_factory):
    return app_factory(TEAM_EMAIL)
