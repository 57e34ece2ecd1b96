"""Pytest configuration and shared fixtures."""

import os
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

# Set required environment variables for testing BEFORE importing the app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("API_KEY_HASH_SALT", "test_salt")

from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from claimflow.auth.middleware import hash_api_key
from claimflow.database import Base, new_id
from claimflow.engine.authorization import Actor
from claimflow.engine.events import stage_events
from claimflow.models import Engineer, HistoryEntry, UserProfile
from claimflow.storage.repositories import create_appointment, create_inspection, create_request

API_KEYS = {
    "admin": "sk_test_admin",
    "engineer_a": "sk_test_engineer_a",
    "engineer_b": "sk_test_engineer_b",
    "finance": "sk_test_finance",
}


def _sqlite_engine(path, begin: str = "BEGIN"):
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself so nested transactions work
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql(begin)

    return engine


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with working SAVEPOINTs."""
    engine = _sqlite_engine(tmp_path / "claimflow.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def locking_session_maker(engine, tmp_path):
    """Sessions on the same database whose transactions take the write lock up front.

    SQLite has no row locks; BEGIN IMMEDIATE makes a second writer wait until
    the first one's transaction ends, the way SELECT ... FOR UPDATE does.
    """
    locking = _sqlite_engine(tmp_path / "claimflow.db", begin="BEGIN IMMEDIATE")
    yield async_sessionmaker(locking, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await locking.dispose()


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
def clear_stage_handlers():
    """Stage event handlers are process-global; reset them around each test."""
    stage_events.clear()
    yield
    stage_events.clear()


@pytest_asyncio.fixture
async def actors(db) -> dict[str, Actor]:
    """Admin, two engineers with logins, and a finance user."""

    async def add_user(key: str, role: str) -> UserProfile:
        user = UserProfile(
            id=new_id(),
            email=f"{key}@claimflow.test",
            full_name=key.replace("_", " ").title(),
            role=role,
            api_key_hash=hash_api_key(API_KEYS[key]),
        )
        db.add(user)
        await db.flush()
        return user

    result = {}
    admin = await add_user("admin", "admin")
    result["admin"] = Actor(user_id=admin.id, role="admin")
    for key in ("engineer_a", "engineer_b"):
        user = await add_user(key, "engineer")
        engineer = Engineer(id=new_id(), name=user.full_name, email=user.email, auth_user_id=user.id)
        db.add(engineer)
        await db.flush()
        result[key] = Actor(user_id=user.id, role="engineer", engineer_id=engineer.id)
    finance = await add_user("finance", "read_only_finance")
    result["finance"] = Actor(user_id=finance.id, role="read_only_finance")
    await db.commit()
    return result


@pytest.fixture
def new_case(db, actors):
    """Create a request + assessment, optionally pending assignment to an engineer."""

    async def _new_case(assigned_to: str | None = "engineer_a"):
        engineer_id = actors[assigned_to].engineer_id if assigned_to else None
        request, assessment = await create_request(
            db,
            {
                "claim_number": "CLM-1001",
                "owner_name": "Sipho Dlamini",
                "vehicle_make": "Volkswagen",
                "vehicle_model": "Polo",
                "vehicle_registration": "GP 55-21 ZX",
                "assigned_engineer_id": engineer_id,
            },
            created_by=actors["admin"].user_id,
        )
        await db.commit()
        # Detached copies keep their loaded ids when an engine call rolls back
        db.expunge(request)
        db.expunge(assessment)
        return request, assessment

    return _new_case


@pytest.fixture
def book_visit(db, actors):
    """Raise an inspection and book an appointment for an engineer."""

    async def _book_visit(request, engineer: str = "engineer_a"):
        inspection = await create_inspection(db, request, changed_by=actors["admin"].user_id)
        appointment = await create_appointment(
            db,
            inspection,
            engineer_id=actors[engineer].engineer_id,
            appointment_date=datetime.now(timezone.utc) + timedelta(days=2),
            changed_by=actors["admin"].user_id,
        )
        await db.commit()
        db.expunge(inspection)
        db.expunge(appointment)
        return inspection, appointment

    return _book_visit


@pytest.fixture
def history_count(db):
    """Number of history entries for an assessment, optionally for one action."""

    async def _history_count(assessment_id: str, action: str | None = None) -> int:
        stmt = select(func.count()).select_from(HistoryEntry).where(
            HistoryEntry.assessment_id == assessment_id
        )
        if action is not None:
            stmt = stmt.where(HistoryEntry.action == action)
        result = await db.execute(stmt)
        return result.scalar_one()

    return _history_count


@pytest.fixture
def auth():
    """Bearer header for one of the seeded users."""

    def _auth(who: str) -> dict:
        return {"Authorization": f"Bearer {API_KEYS[who]}"}

    return _auth
