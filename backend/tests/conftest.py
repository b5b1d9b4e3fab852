from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from mostrador.auth.membership import ResolvedMembership
from mostrador.core.roles import MembershipStatus, OrganizationRole, SystemRole
from mostrador.core.security import create_access_token
from mostrador.db.session import get_db

# Ensure Base + models are registered before create_all
from mostrador.db.base import Base
import mostrador.models  # noqa: F401
from mostrador.models.organization import Organization
from mostrador.models.organization_membership import OrganizationMembership
from mostrador.models.user import User


# ---------------------------------------------------------
# Engine + schema lifecycle (one SQLite file per test)
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'mostrador_test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
def sessionmaker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------
# DB session for assertions / setup
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def db(sessionmaker):
    """
    Session for test setup & assertions ONLY.
    Setup helpers commit, so rows are visible to the app's own sessions.
    """
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------
# FastAPI app + dependency override
# ---------------------------------------------------------
@pytest.fixture()
def app(sessionmaker):
    from mostrador.main import app as fastapi_app

    async def _override_get_db():
        async with sessionmaker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


# ---------------------------------------------------------
# HTTP client
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------
# Data helpers
# ---------------------------------------------------------
async def create_user(
    db: AsyncSession,
    email: Optional[str] = None,
    *,
    system_role: Optional[SystemRole] = None,
    is_active: bool = True,
) -> User:
    user = User(
        email=(email or f"user-{uuid.uuid4().hex[:10]}@example.com").lower().strip(),
        full_name="Test User",
        system_role=system_role.value if system_role else None,
        is_active=is_active,
    )
    db.add(user)
    await db.commit()
    return user


async def create_organization(db: AsyncSession, name: Optional[str] = None) -> Organization:
    suffix = uuid.uuid4().hex[:8]
    org = Organization(name=name or f"Test Org {suffix}", slug=f"test-org-{suffix}")
    db.add(org)
    await db.commit()
    return org


async def add_membership(
    db: AsyncSession,
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    role: OrganizationRole = OrganizationRole.USER,
    status: MembershipStatus = MembershipStatus.APPROVED,
) -> OrganizationMembership:
    m = OrganizationMembership(
        organization_id=organization_id,
        user_id=user_id,
        role=role.value,
        status=status.value,
        joined_at=datetime.now(timezone.utc) if status is MembershipStatus.APPROVED else None,
    )
    db.add(m)
    await db.commit()
    return m


async def member_of(
    db: AsyncSession,
    org: Organization,
    role: OrganizationRole,
    status: MembershipStatus = MembershipStatus.APPROVED,
) -> User:
    user = await create_user(db)
    await add_membership(db, org.id, user.id, role, status)
    return user


def auth_headers(user: User, *, impersonator: Optional[User] = None) -> dict[str, str]:
    token = create_access_token(str(user.id), impersonator=str(impersonator.id) if impersonator else None)
    return {"Authorization": f"Bearer {token}"}


class InMemoryResolver:
    """Membership resolver over a dict, mirroring SqlMembershipResolver's status rule."""

    def __init__(self, rows=None) -> None:
        # (user_id, organization_id) -> (role, status)
        self.rows: dict[tuple[str, str], tuple[OrganizationRole, MembershipStatus]] = dict(rows or {})
        self.calls = 0

    def add(
        self,
        user_id: str,
        organization_id: str,
        role: OrganizationRole,
        status: MembershipStatus = MembershipStatus.APPROVED,
    ) -> None:
        self.rows[(user_id, organization_id)] = (role, status)

    async def resolve(self, user_id: str, organization_id: str):
        self.calls += 1
        row = self.rows.get((user_id, organization_id))
        if row is None or row[1] is not MembershipStatus.APPROVED:
            return None
        return ResolvedMembership(user_id=user_id, organization_id=organization_id, role=row[0], status=row[1])
