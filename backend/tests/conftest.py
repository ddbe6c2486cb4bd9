"""Shared fixtures: an in-memory SQLite database and row factories.

Service tests run against aiosqlite so predicates compile and execute for
real. The connection is put into driver-level autocommit and transactions
are started explicitly, which lets SAVEPOINTs (``begin_nested``) work.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import crm.models  # noqa: F401  registers every table on Base.metadata
from crm.core.auth import get_current_user
from crm.core.exceptions import CrmError
from crm.core.rate_limit import limiter
from crm.database import Base, get_db
from crm.main import crm_error_handler
from crm.models.contact import Contact
from crm.models.contact_list import ContactList, ContactListMember, ContactListType
from crm.models.event import Event, EventContact, EventContactRole, EventRole
from crm.models.group import ALL_APP_MODULES, Group, UserGroup
from crm.models.team import Team, TeamMember
from crm.models.user import User, UserRole


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_maker() as session:
        yield session
        await session.rollback()


class CrmFactory:
    """Inserts rows directly, bypassing services and their reconciliation."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def user(
        self,
        display_name: str | None = None,
        role: UserRole = UserRole.USER,
    ) -> User:
        n = self._next()
        user = User(
            email=f"user{n}@example.org",
            display_name=display_name or f"User {n}",
            role=role,
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def team(self, name: str = "Team", modules: list[str] | None = None) -> Team:
        team = Team(name=name, modules=modules or [])
        self.db.add(team)
        await self.db.flush()
        return team

    async def member(self, team: Team, user: User) -> TeamMember:
        membership = TeamMember(team_id=team.id, user_id=user.id)
        self.db.add(membership)
        await self.db.flush()
        return membership

    async def group(
        self,
        team: Team,
        name: str | None = None,
        users: list[User] | None = None,
        can_access_all_contacts: bool = False,
        is_default_group: bool = False,
        modules: list[str] | None = None,
        contact_submodules: list[str] | None = None,
    ) -> Group:
        group = Group(
            team_id=team.id,
            name=name or f"Group {self._next()}",
            can_access_all_contacts=can_access_all_contacts,
            is_default_group=is_default_group,
            modules=[m.value for m in ALL_APP_MODULES] if modules is None else modules,
            contact_submodules=contact_submodules or [],
        )
        self.db.add(group)
        await self.db.flush()
        for user in users or []:
            self.db.add(UserGroup(user_id=user.id, group_id=group.id))
        await self.db.flush()
        return group

    async def contact(
        self,
        team: Team,
        name: str | None = None,
        group: Group | None = None,
        created_at: datetime | None = None,
        **fields,
    ) -> Contact:
        contact = Contact(
            team_id=team.id,
            name=name or f"Contact {self._next()}",
            group_id=group.id if group else None,
            **fields,
        )
        if created_at is not None:
            contact.created_at = created_at
        self.db.add(contact)
        await self.db.flush()
        return contact

    async def contact_list(
        self,
        team: Team,
        name: str = "List",
        list_type: ContactListType = ContactListType.MANUAL,
        filters: list[dict] | None = None,
        members: list[Contact] | None = None,
    ) -> ContactList:
        contact_list = ContactList(
            team_id=team.id,
            name=name,
            type=list_type,
            filters=filters,
        )
        self.db.add(contact_list)
        await self.db.flush()
        for contact in members or []:
            self.db.add(ContactListMember(list_id=contact_list.id, contact_id=contact.id))
        await self.db.flush()
        return contact_list

    async def event_role(self, team: Team, name: str = "Speaker") -> EventRole:
        role = EventRole(team_id=team.id, name=name)
        self.db.add(role)
        await self.db.flush()
        return role

    async def participation(
        self,
        team: Team,
        contact: Contact,
        roles: list[EventRole],
        title: str = "Assembly",
    ) -> Event:
        event_row = Event(
            team_id=team.id,
            title=title,
            start_date=datetime(2024, 5, 1, 18, 0, tzinfo=UTC),
        )
        self.db.add(event_row)
        await self.db.flush()
        participant = EventContact(event_id=event_row.id, contact_id=contact.id)
        self.db.add(participant)
        await self.db.flush()
        for role in roles:
            self.db.add(EventContactRole(event_contact_id=participant.id, event_role_id=role.id))
        await self.db.flush()
        return event_row


@pytest_asyncio.fixture
async def factory(db) -> CrmFactory:
    return CrmFactory(db)

@pytest.fixture
def api_user():
    """Authenticated non-admin user for API tests."""
    user = MagicMock()
    user.id = uuid4()
    user.is_active = True
    user.role = UserRole.USER
    user.display_name = "Test User"
    return user


@pytest.fixture
def mock_db():
    return AsyncMock()


@pytest.fixture
def api_client(api_user, mock_db, monkeypatch):
    """Build a TestClient for the given routers with auth and db overridden."""
    monkeypatch.setattr(limiter, "enabled", False)

    def build(*routers) -> TestClient:
        app = FastAPI()
        app.add_exception_handler(CrmError, crm_error_handler)
        for router in routers:
            app.include_router(router, prefix="/api/v1")

        async def mock_get_db():
            yield mock_db

        async def mock_get_user():
            return api_user

        app.dependency_overrides[get_db] = mock_get_db
        app.dependency_overrides[get_current_user] = mock_get_user
        return TestClient(app)

    return build


@pytest.fixture
def session_client(db, monkeypatch):
    """Build an httpx client whose requests run on the test database session."""
    monkeypatch.setattr(limiter, "enabled", False)

    def build(user: User, *routers) -> httpx.AsyncClient:
        app = FastAPI()
        app.add_exception_handler(CrmError, crm_error_handler)
        for router in routers:
            app.include_router(router, prefix="/api/v1")

        async def session_get_db():
            yield db

        async def session_get_user():
            return user

        app.dependency_overrides[get_db] = session_get_db
        app.dependency_overrides[get_current_user] = session_get_user
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    return build


@pytest_asyncio.fixture
async def restricted_reader(factory) -> tuple[Team, User, Group, Group]:
    """A team member who belongs to one group and not to another."""
    team = await factory.team()
    reader = await factory.user("Reader")
    await factory.member(team, reader)
    own = await factory.group(team, "Own", users=[reader])
    other = await factory.group(team, "Other")
    return team, reader, own, other
