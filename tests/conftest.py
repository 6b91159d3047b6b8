from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from identity.auth.dependencies import get_notifier
from identity.auth.otp import InMemoryOTPLedger
from identity.config import Settings
from identity.database import create_tables, dispose_db, get_session_factory, init_db
from identity.main import create_app


class FakeClock:
    """Deterministic clock injected into the OTP ledger."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class Outbox:
    """Notifier double: records every (email, code) it is asked to deliver."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def send(self, email: str, code: str) -> bool:
        self.sent.append((email, code))
        return not self.fail

    def last_code(self, email: str) -> str:
        return next(code for to, code in reversed(self.sent) if to == email)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        jwt_secret="test-secret-do-not-use",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'identity.db'}",
        otp_sweep_interval_seconds=0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(clock: FakeClock) -> InMemoryOTPLedger:
    return InMemoryOTPLedger(clock=clock)


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncGenerator[None, None]:
    init_db(settings.database_url)
    await create_tables()
    yield
    await dispose_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    async with get_session_factory()() as session:
        yield session


@pytest.fixture
def app(settings: Settings, ledger: InMemoryOTPLedger, outbox: Outbox) -> FastAPI:
    app = create_app(settings)
    app.state.otp_ledger = ledger
    app.dependency_overrides[get_notifier] = lambda: outbox.send
    return app


@pytest_asyncio.fixture
async def async_client(app: FastAPI, database: None) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
