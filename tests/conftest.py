import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Dict, List, Optional, Tuple

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Use in-memory SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Set environment before importing the app: config is read at import time
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["ENV"] = "development"
os.environ["JWT_SECRET"] = "k9Qz7vLp2RxW4mNb8TsY1uHc6JdF3gAe"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["AUTH_RATE_LIMIT_PER_MINUTE"] = "1000"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["FRONTEND_DIST_DIR"] = ""


@dataclass
class Account:
    """A user created for a test, with a ready-made bearer header."""

    id: int
    username: str
    email: str
    password: str
    headers: Dict[str, str]


class RecordingEmailService:
    """Stands in for EmailService; remembers every message instead of sending it."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.sent: List[Tuple[str, str, str]] = []

    def is_configured(self) -> bool:
        return self.configured

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        self.sent.append(("email", to, subject))

    async def send_password_reset_email(self, to: str, username: str, token: str) -> None:
        self.sent.append(("reset", to, token))

    async def send_password_setup_email(self, to: str, username: str, token: str) -> None:
        self.sent.append(("setup", to, token))

    async def send_announcement_email(self, to: str, title: str, content: str) -> None:
        self.sent.append(("announcement", to, title))

    def tokens(self, kind: str) -> List[str]:
        return [token for sent_kind, _, token in self.sent if sent_kind == kind]


class RecordingGroupMe:
    def __init__(self):
        self.posts: List[Tuple[str, str]] = []

    async def send_message(self, bot_id: str, text: str) -> None:
        self.posts.append((bot_id, text))

    async def send_announcement(self, bot_id: str, title: str, content: str) -> None:
        self.posts.append((bot_id, title))


@pytest_asyncio.fixture(name="test_engine")
async def test_engine_fixture():
    """Create a fresh in-memory database for each test."""
    from volunteer_media.models import Base

    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(name="session_maker")
async def session_maker_fixture(test_engine):
    return sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(name="session")
async def session_fixture(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(name="email_service")
async def email_service_fixture() -> RecordingEmailService:
    return RecordingEmailService()


@pytest_asyncio.fixture(name="groupme")
async def groupme_fixture() -> RecordingGroupMe:
    return RecordingGroupMe()


@pytest_asyncio.fixture(name="settings_cache")
async def settings_cache_fixture(session_maker):
    from volunteer_media.site_settings import SiteSettingsCache

    @asynccontextmanager
    async def factory():
        async with session_maker() as session:
            yield session

    return SiteSettingsCache(session_factory=factory)


@pytest_asyncio.fixture(name="client")
async def client_fixture(
    session: AsyncSession, email_service, groupme, settings_cache
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client with the database, notifiers and storage overridden."""
    from volunteer_media.api.main import app
    from volunteer_media.db import get_db_session
    from volunteer_media.notifications import get_email_service, get_groupme_service
    from volunteer_media.site_settings import get_settings_cache
    from volunteer_media.storage import PostgresStorageProvider, get_storage_provider

    async def get_session_override() -> AsyncGenerator[AsyncSession, None]:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    storage = PostgresStorageProvider()

    async def get_storage_override():
        return storage

    app.dependency_overrides[get_db_session] = get_session_override
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_groupme_service] = lambda: groupme
    app.dependency_overrides[get_storage_provider] = get_storage_override
    app.dependency_overrides[get_settings_cache] = lambda: settings_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(name="make_user")
async def make_user_fixture(session: AsyncSession):
    """Factory creating committed users, optionally with group memberships.

    ``groups`` is a list of ``(group_id, is_group_admin)`` pairs.
    """
    from volunteer_media.api.auth.jwt_handler import jwt_handler
    from volunteer_media.models import User, UserGroup

    async def make(
        username: str,
        is_admin: bool = False,
        password: str = "correct-horse-42",
        groups: Optional[List[Tuple[int, bool]]] = None,
        **fields,
    ) -> Account:
        email = fields.pop("email", f"{username}@shelter.org")
        user = User(
            username=username,
            email=email,
            password=jwt_handler.hash_password(password),
            is_admin=is_admin,
            **fields,
        )
        session.add(user)
        await session.flush()
        for group_id, group_admin in groups or []:
            session.add(UserGroup(user_id=user.id, group_id=group_id, is_group_admin=group_admin))
        await session.commit()

        token = jwt_handler.create_access_token(user.id, is_admin)
        return Account(
            id=user.id,
            username=username,
            email=email,
            password=password,
            headers={"Authorization": f"Bearer {token}"},
        )

    return make


@pytest_asyncio.fixture(name="group")
async def group_fixture(session: AsyncSession):
    from volunteer_media.models import Group

    group = Group(name="ModSquad", description="Dog walking team")
    session.add(group)
    await session.commit()
    return group


@pytest_asyncio.fixture(name="other_group")
async def other_group_fixture(session: AsyncSession):
    from volunteer_media.models import Group

    group = Group(name="Cat Crew", description="Cat socialization")
    session.add(group)
    await session.commit()
    return group


@pytest_asyncio.fixture(name="admin")
async def admin_fixture(make_user) -> Account:
    return await make_user("siteadmin", is_admin=True)


@pytest_asyncio.fixture(name="group_admin")
async def group_admin_fixture(make_user, group) -> Account:
    return await make_user("leader", groups=[(group.id, True)])


@pytest_asyncio.fixture(name="volunteer")
async def volunteer_fixture(make_user, group) -> Account:
    return await make_user("walker", groups=[(group.id, False)])


@pytest_asyncio.fixture(name="outsider")
async def outsider_fixture(make_user, other_group) -> Account:
    return await make_user("stranger", groups=[(other_group.id, False)])


@pytest_asyncio.fixture(name="animal")
async def animal_fixture(session: AsyncSession, group):
    from volunteer_media.models import Animal

    animal = Animal(group_id=group.id, name="Buddy", species="Dog", breed="Labrador", age=3)
    session.add(animal)
    await session.commit()
    return animal
