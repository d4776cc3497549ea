"""Shared fixtures: a real SQLite store in tmp_path, in-memory Discord fakes."""

from __future__ import annotations

import pytest
import pytest_asyncio

from warden.moderation.engine import ModerationEngine
from warden.moderation.kinds import ActionKinds
from warden.services.moderation_audit_store import ModerationAuditStore
from warden.services.moderation_store import ModerationStore
from warden.testing.fakes import FakeBackend, FakeClock, FakeNotifier


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "warden.sqlite3")


@pytest_asyncio.fixture
async def store(db_path: str) -> ModerationStore:
    s = ModerationStore(db_path)
    await s.init()
    return s


@pytest_asyncio.fixture
async def audit_store(db_path: str) -> ModerationAuditStore:
    s = ModerationAuditStore(db_path)
    await s.init()
    return s


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def ban() -> FakeBackend:
    return FakeBackend("ban", "banned", "unbanned")


@pytest.fixture
def mute() -> FakeBackend:
    return FakeBackend("mute", "muted", "unmuted", reapply_on_rejoin=True)


@pytest.fixture
def exempt_ids() -> set[int]:
    return set()


@pytest.fixture
def make_engine(store, audit_store, ban, mute, notifier, clock, exempt_ids):
    def _make() -> ModerationEngine:
        async def is_exempt(user_id: int) -> bool:
            return user_id in exempt_ids

        return ModerationEngine(
            store=store,
            kinds=ActionKinds([ban, mute]),
            notifier=notifier,
            audit_store=audit_store,
            is_exempt=is_exempt,
            clock=clock,
        )

    return _make


@pytest.fixture
def engine(make_engine) -> ModerationEngine:
    return make_engine()
