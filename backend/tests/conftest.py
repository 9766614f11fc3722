"""Pytest configuration and fixtures for OrthoPlan tests.

Every test gets a fresh in-memory SQLite database seeded with two
tenants, three clinics, the permission catalog, a handful of roles and
one user per access profile. Requests go through the real app with
get_db overridden to open a new session per request, so nothing is
shared between requests except committed rows.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CACHE_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"

from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orthoplan.auth.jwt import create_access_token
from orthoplan.auth.password import hash_password
from orthoplan.database import Base, get_db
from orthoplan.main import app
from orthoplan.models.access import Application, Permission, Role, UserAppAccess
from orthoplan.models.clinic import Clinic, UserClinic
from orthoplan.models.patient import Patient
from orthoplan.models.tenant import Tenant
from orthoplan.models.user import User
from orthoplan.services.catalog import ADMIN_ROLE, PLANNER, PORTAL, seed_catalog

TEST_PASSWORD = "testpassword123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)

# role name → [(action, resource)]
TEST_ROLES = {
    "READER": [("read", "patient"), ("read", "planning"), ("read", "contract")],
    "DENTIST": [
        ("read", "patient"), ("write", "patient"), ("delete", "patient"),
        ("read", "planning"), ("write", "planning"), ("delete", "planning"),
        ("read", "contract"), ("write", "contract"), ("delete", "contract"),
    ],
    "MANAGER": [("manage", "patient"), ("manage", "planning"), ("read", "contract")],
    "PORTAL_ADMIN": [("manage", "user"), ("manage", "role"), ("manage", "clinic")],
}


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Test client with get_db pointed at the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

async def _add_user(session, tenant, email, name, clinics=(), grants=(), **flags) -> User:
    user = User(
        email=email,
        name=name,
        hashed_password=TEST_PASSWORD_HASH,
        tenant_id=tenant.id,
        **flags,
    )
    session.add(user)
    await session.flush()
    for clinic in clinics:
        session.add(UserClinic(user_id=user.id, clinic_id=clinic.id))
    for application, role in grants:
        session.add(UserAppAccess(user_id=user.id, application_id=application.id, role_id=role.id))
    await session.flush()
    return user


@pytest_asyncio.fixture
async def world(session_factory) -> SimpleNamespace:
    """Two tenants, their clinics, users and patients.

    Tenant A
      clinic a1: reader owns 2, dentist owns 2, manager owns 1 (5 patients)
      clinic a2: manager owns 1
    Tenant B
      clinic b1: outsider owns 1
    """
    async with session_factory() as session:
        await session.run_sync(seed_catalog)

        apps = {
            a.name: a for a in (await session.execute(select(Application))).scalars().all()
        }
        perms = {
            (p.action, p.resource): p
            for p in (await session.execute(select(Permission))).scalars().all()
        }
        roles = {
            ADMIN_ROLE: (
                await session.execute(select(Role).where(Role.name == ADMIN_ROLE))
            ).scalar_one()
        }
        for role_name, pairs in TEST_ROLES.items():
            role = Role(name=role_name, permissions=[perms[p] for p in pairs])
            session.add(role)
            roles[role_name] = role
        await session.flush()

        tenant_a = Tenant(name="Tenant A")
        tenant_b = Tenant(name="Tenant B")
        session.add_all([tenant_a, tenant_b])
        await session.flush()

        clinic_a1 = Clinic(name="Clinic A1", tenant_id=tenant_a.id)
        clinic_a2 = Clinic(name="Clinic A2", tenant_id=tenant_a.id)
        clinic_b1 = Clinic(name="Clinic B1", tenant_id=tenant_b.id)
        session.add_all([clinic_a1, clinic_a2, clinic_b1])
        await session.flush()

        planner, portal = apps[PLANNER], apps[PORTAL]
        users = SimpleNamespace(
            super_admin=await _add_user(
                session, tenant_a, "super@a.example.com", "Super Admin",
                grants=[(portal, roles[ADMIN_ROLE]), (planner, roles[ADMIN_ROLE])],
                is_super_admin=True,
            ),
            reader=await _add_user(
                session, tenant_a, "reader@a.example.com", "Reader",
                clinics=[clinic_a1], grants=[(planner, roles["READER"])],
            ),
            dentist=await _add_user(
                session, tenant_a, "dentist@a.example.com", "Dentist",
                clinics=[clinic_a1], grants=[(planner, roles["DENTIST"])],
            ),
            manager=await _add_user(
                session, tenant_a, "manager@a.example.com", "Manager",
                clinics=[clinic_a1, clinic_a2], grants=[(planner, roles["MANAGER"])],
            ),
            portal_admin=await _add_user(
                session, tenant_a, "portal@a.example.com", "Portal Admin",
                clinics=[clinic_a1], grants=[(portal, roles["PORTAL_ADMIN"])],
            ),
            no_access=await _add_user(
                session, tenant_a, "nobody@a.example.com", "Nobody", clinics=[clinic_a1],
            ),
            outsider=await _add_user(
                session, tenant_b, "dentist@b.example.com", "Outsider",
                clinics=[clinic_b1], grants=[(planner, roles["DENTIST"])],
            ),
        )

        def patient(name, owner, clinic):
            p = Patient(name=name, tenant_id=clinic.tenant_id, clinic_id=clinic.id, user_id=owner.id)
            session.add(p)
            return p

        patients = SimpleNamespace(
            reader_1=patient("Ana Reader", users.reader, clinic_a1),
            reader_2=patient("Bruno Reader", users.reader, clinic_a1),
            dentist_1=patient("Carla Dentist", users.dentist, clinic_a1),
            dentist_2=patient("Diego Dentist", users.dentist, clinic_a1),
            manager_a1=patient("Elisa Manager", users.manager, clinic_a1),
            manager_a2=patient("Fabio Manager", users.manager, clinic_a2),
            outsider=patient("Gina Outsider", users.outsider, clinic_b1),
        )
        await session.commit()

    return SimpleNamespace(
        tenant_a=tenant_a,
        tenant_b=tenant_b,
        clinic_a1=clinic_a1,
        clinic_a2=clinic_a2,
        clinic_b1=clinic_b1,
        applications=apps,
        permissions=perms,
        roles=roles,
        users=users,
        patients=patients,
    )


@pytest.fixture
def auth_headers():
    """Build request headers for a user, optionally selecting a clinic."""

    def _headers(user: User, clinic: Clinic | None = None, **token_kwargs) -> dict:
        token = create_access_token(user_id=user.id, tenant_id=user.tenant_id, **token_kwargs)
        headers = {"Authorization": f"Bearer {token}"}
        if clinic is not None:
            headers["X-Clinic-Id"] = clinic.id
        return headers

    return _headers


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "auth: Authentication tests")
    config.addinivalue_line("markers", "isolation: Tenant and clinic isolation tests")
