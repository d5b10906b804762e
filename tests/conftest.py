"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.auth.identity_provider import BaseIdentityProvider, get_identity_provider, reset_identity_provider
from questhub.auth.jwt import create_identity_token
from questhub.config import get_settings
from questhub.database import close_db, get_engine, get_session, init_db
from questhub.db.base import Base
from questhub.db.models import Company, Task, TaskStep, User, UserCompany
from questhub.main import create_app


class RecordingIdentityProvider(BaseIdentityProvider):
    """Identity provider double that remembers which accounts were deleted."""

    def __init__(self) -> None:
        self.deleted: list[str] = []
        self.fail_with: Exception | None = None

    async def delete_user(self, user_id: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.deleted.append(user_id)


class Factory:
    """Builds rows directly through the session. Callers commit."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def user(self, user_id: str, role: str = "user", total_points: int = 0) -> User:
        user = User(
            user_id=user_id,
            email=f"{user_id}@example.com",
            name=user_id.title(),
            role=role,
            total_points=total_points,
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def task(
        self,
        title: str = "Onboarding",
        rewards: tuple[int, ...] = (100, 50),
        manager_id: str | None = None,
        company_id: int | None = None,
        deadline: datetime | None = None,
        is_active: bool = True,
    ) -> tuple[Task, list[TaskStep]]:
        task = Task(
            title=title,
            assigned_manager_id=manager_id,
            company_id=company_id,
            deadline=deadline,
            level=1,
            is_active=is_active,
        )
        self.db.add(task)
        await self.db.flush()
        steps = []
        for i, reward in enumerate(rewards, start=1):
            step = TaskStep(task_id=task.task_id, title=f"Step {i}", points_reward=reward)
            self.db.add(step)
            await self.db.flush()
            steps.append(step)
        return task, steps

    async def company(self, name: str, members: tuple[str, ...] = ()) -> Company:
        company = Company(name=name)
        self.db.add(company)
        await self.db.flush()
        for user_id in members:
            self.db.add(UserCompany(user_id=user_id, company_id=company.company_id))
        await self.db.flush()
        return company


@pytest.fixture(autouse=True)
def _settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Point every test at its own SQLite file."""
    monkeypatch.setenv("QH_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path}/test.db")
    monkeypatch.setenv("QH_LOG_FORMAT", "console")
    monkeypatch.setenv("QH_IDENTITY_PROVIDER", "none")
    get_settings.cache_clear()
    reset_identity_provider()
    yield
    get_settings.cache_clear()
    reset_identity_provider()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Create the schema on a fresh database."""
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service calls and assertions."""
    async for session in get_session():
        yield session
        break


@pytest.fixture
def make(db_session: AsyncSession) -> Factory:
    return Factory(db_session)


@pytest.fixture
def identity() -> RecordingIdentityProvider:
    return RecordingIdentityProvider()


@pytest_asyncio.fixture
async def client(database, identity: RecordingIdentityProvider) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against a fresh app. Lifespan does not run; Redis stays uninitialized."""
    app = create_app()
    app.dependency_overrides[get_identity_provider] = lambda: identity
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    """Build a bearer header carrying an identity token for ``user_id``."""

    def _headers(user_id: str) -> dict[str, str]:
        token = create_identity_token(user_id, f"{user_id}@example.com")
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def people(db_session: AsyncSession, make: Factory) -> dict[str, User]:
    """An admin, a manager and two regular users, committed."""
    users = {
        "admin": await make.user("admin-1", "admin"),
        "manager": await make.user("manager-1", "manager"),
        "alice": await make.user("alice"),
        "bob": await make.user("bob"),
    }
    await db_session.commit()
    return users


@pytest_asyncio.fixture
async def quest(db_session: AsyncSession, make: Factory, people) -> tuple[Task, list[TaskStep]]:
    """An active task managed by manager-1 with two steps worth 100 and 50."""
    task, steps = await make.task(manager_id="manager-1")
    await db_session.commit()
    return task, steps
