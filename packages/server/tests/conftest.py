"""
Shared fixtures: a file-backed SQLite database per test (BEGIN IMMEDIATE
transactions), a frozen clock and a recording notifier.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest

from teamgate.core.config import Settings
from teamgate.core.database import create_engine, create_session_factory, init_db
from teamgate.core.rbac.evaluator import AuthContext
from teamgate.services.registry import Services, build_services
from teamgate_shared.schemas.common import RbacMode


class FrozenClock:
    def __init__(self, now: datetime | None = None):
        self.current = now or datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    async def send_workspace_invitation(self, **kwargs) -> None:
        if self.fail:
            raise RuntimeError("mail relay unavailable")
        self.sent.append(kwargs)


def make_settings(tmp_path, **overrides) -> Settings:
    name = f"teamgate-{overrides.get('rbac_mode', RbacMode.CATALOG).value}.db"
    values = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / name}",
        "log_format": "text",
        "invitation_sweep_interval_seconds": 0,
        "public_base_url": "https://teamgate.test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@asynccontextmanager
async def open_services(tmp_path, clock, notifier, **overrides):
    settings = make_settings(tmp_path, **overrides)
    engine = create_engine(settings)
    try:
        await init_db(engine)
        services = build_services(
            settings, create_session_factory(engine), clock=clock, notifier=notifier
        )
        await services.sync_catalog()
        yield services
    finally:
        await engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def services(tmp_path, clock, notifier):
    async with open_services(tmp_path, clock, notifier) as s:
        yield s


@pytest.fixture
async def fixed_services(tmp_path, clock, notifier):
    async with open_services(tmp_path, clock, notifier, rbac_mode=RbacMode.FIXED) as s:
        yield s


def principal(**kwargs) -> AuthContext:
    return AuthContext(principal_id=uuid.uuid4(), **kwargs)


async def create_workspace(services: Services, owner: AuthContext, name: str = "Acme") -> uuid.UUID:
    workspace = await services.workspaces.create_workspace(name, creator=owner)
    return workspace.id
