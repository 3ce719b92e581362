"""
Shared fixtures for server tests.

Each test gets its own SQLite file database. Every transaction starts with
``BEGIN IMMEDIATE`` so concurrent writers serialize the way row locks do on
Postgres; a session that has run a statement holds the write lock until it
commits or rolls back.
"""

import os
import tempfile

os.environ.setdefault(
    "SERMON_DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "sermon_auth_unused.db"),
)
os.environ["SERMON_SECRET_KEY"] = "test-secret-key-0123456789abcdef0123456789"
os.environ["SERMON_BCRYPT_ROUNDS"] = "4"
os.environ["SERMON_LOG_FORMAT"] = "console"
os.environ["SERMON_NOTIFICATION_WEBHOOK_URL"] = ""

from datetime import datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import sermon_auth.models  # noqa: F401
from sermon_auth.core.credentials import generate_opaque_token, hash_password
from sermon_auth.core.database import get_session
from sermon_auth.main import app
from sermon_auth.models.membership import Membership
from sermon_auth.models.organization import Organization
from sermon_auth.models.user import User
from sermon_auth.services.notifications import get_notifier
from sermon_auth_shared.schemas.common import Role

DEFAULT_PASSWORD = "correct-horse-42"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        # let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Redis & notifications
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def fake_redis():
    """In-memory stand-in for the access-token denylist."""
    store: dict[str, str] = {}

    async def setex(key, ttl, value):
        store[key] = value

    async def exists(key):
        return int(key in store)

    redis = AsyncMock()
    redis.setex.side_effect = setex
    redis.exists.side_effect = exists
    redis.store = store
    with patch("sermon_auth.core.tokens.get_redis", AsyncMock(return_value=redis)):
        yield redis


class RecordingNotifier:
    """Notification sender that records calls; set ``fail`` to simulate outages."""

    def __init__(self):
        self.sent: list[tuple] = []
        self.fail: Optional[str] = None  # None | "false" | "raise"

    def _record(self, *args) -> bool:
        if self.fail == "raise":
            raise RuntimeError("mail relay unreachable")
        self.sent.append(args)
        return self.fail != "false"

    async def send_invitation_email(self, to_email, to_name, org_name, from_name, token, message=None):
        return self._record("invitation", to_email, org_name, token)

    async def send_welcome_email(self, to_email, to_name, org_name):
        return self._record("welcome", to_email, org_name)

    async def send_password_reset_email(self, to_email, to_name, token):
        return self._record("password_reset", to_email, token)

    async def send_email_verification(self, to_email, to_name, token):
        return self._record("email_verification", to_email, token)

    def tokens(self, kind: str) -> list[str]:
        return [args[-1] for args in self.sent if args[0] == kind]


@pytest.fixture
def notifier():
    return RecordingNotifier()


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(session_factory, notifier):
    async def _get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_notifier] = lambda: notifier
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Data builders
# ---------------------------------------------------------------------------

async def _make_user(
    session: AsyncSession,
    email: str = "user@example.com",
    password: Optional[str] = DEFAULT_PASSWORD,
    *,
    is_active: bool = True,
    is_email_verified: bool = True,
    first_name: str = "Test",
    last_name: str = "User",
) -> User:
    user = User(
        email=email.lower(),
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password) if password else None,
        is_active=is_active,
        is_email_verified=is_email_verified,
    )
    session.add(user)
    await session.flush()
    return user


async def _make_org(
    session: AsyncSession,
    slug: str = "grace-church",
    *,
    name: str = "Grace Church",
    is_active: bool = True,
    max_users: Optional[int] = None,
) -> Organization:
    org = Organization(name=name, slug=slug, is_active=is_active, max_users=max_users)
    session.add(org)
    await session.flush()
    return org


async def _make_membership(
    session: AsyncSession,
    user: User,
    org: Organization,
    role: Role = Role.ORGANIZATION_USER,
    *,
    is_active: bool = True,
    pending: bool = False,
    invited_at: Optional[datetime] = None,
) -> Membership:
    membership = Membership(
        user_id=user.id,
        organization_id=org.id,
        role=role.value,
        is_active=is_active and not pending,
    )
    if pending or invited_at is not None:
        membership.invitation_token = generate_opaque_token()
        membership.invitation_created_at = invited_at or datetime.now(timezone.utc)
    if not pending:
        membership.invitation_accepted_at = datetime.now(timezone.utc)
    session.add(membership)
    await session.flush()
    return membership


@pytest.fixture
def make_user():
    return _make_user


@pytest.fixture
def make_org():
    return _make_org


@pytest.fixture
def make_membership():
    return _make_membership
