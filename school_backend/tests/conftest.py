"""
Centralized Test Configuration.

Every test gets a fresh in-memory SQLite database and an in-process Redis
stand-in, wired into the app through dependency overrides.
"""

import time
from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from school_backend.app.main import app
from school_backend.app.db.session import get_db, Base
from school_backend.app.core.jwt import create_access_token
from school_backend.app.core.security import get_password_hash
import school_backend.app.core.redis_client as redis_client_module
from school_backend.app.models.enums import ClassType, UserRole
from school_backend.app.models.user import User
from school_backend.app.models.school_class import SchoolClass, Section
from school_backend.app.models.fee_structure import FeeStructureVersion
from school_backend.app.models.student import Student
from school_backend.app.models.enrollment import Enrollment
from school_backend.app.models.faculty import Faculty, SalaryStructureVersion

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
ADMIN_PASSWORD = "AdminPass1"
ACCOUNTANT_PASSWORD = "Accountant1"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Mock Redis for reliability in CI/CD
class MockRedis:
    """Keyed store with the TTL semantics the app relies on."""
    
    def __init__(self):
        self.store = {}
        self.expiry = {}
        self._closed = False
    
    def _purge(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.store.pop(key, None)
            self.expiry.pop(key, None)
    
    async def ping(self):
        return not self._closed
    
    async def get(self, key):
        self._purge(key)
        return self.store.get(key)
    
    async def set(self, key, value, ex=None):
        self.store[key] = value
        if ex:
            self.expiry[key] = time.monotonic() + ex
        return True
    
    async def setex(self, key, seconds, value):
        return await self.set(key, value, ex=seconds)
    
    async def incr(self, key):
        self._purge(key)
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value
    
    async def expire(self, key, seconds):
        if key not in self.store:
            return False
        self.expiry[key] = time.monotonic() + seconds
        return True
    
    async def ttl(self, key):
        self._purge(key)
        if key not in self.store:
            return -2
        deadline = self.expiry.get(key)
        if deadline is None:
            return -1
        return max(1, int(deadline - time.monotonic()))
    
    async def delete(self, key):
        self.expiry.pop(key, None)
        return 1 if self.store.pop(key, None) is not None else 0
    
    async def exists(self, key):
        self._purge(key)
        return 1 if key in self.store else 0
    
    async def flushdb(self):
        self.store = {}
        self.expiry = {}
    
    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
def redis_mock():
    return MockRedis()


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield test_engine
    
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture(autouse=True)
def apply_overrides(request, redis_mock):
    """Patch the global Redis client and, unless a test wires its own, the database."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_mock
    
    if "session_factory" in request.fixturenames:
        factory = request.getfixturevalue("session_factory")
        
        async def override_get_db():
            async with factory() as session:
                try:
                    yield session
                except Exception:
                    await session.rollback()
                    raise
        
        app.dependency_overrides[get_db] = override_get_db
    
    yield
    
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture
async def client(session_factory):
    """Async client for testing, backed by the per-test database."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


async def create_user(db_session, email, password, role):
    user = User(email=email, hashed_password=get_password_hash(password), role=role, is_active=True)
    db_session.add(user)
    await db_session.commit()
    return user


def token_for(user):
    return create_access_token(data={"sub": user.email, "user_id": user.id, "role": user.role.value})


@pytest.fixture
async def admin_user(db_session):
    return await create_user(db_session, "admin@greenfield.edu.pk", ADMIN_PASSWORD, UserRole.ADMIN)


@pytest.fixture
async def accountant_user(db_session):
    return await create_user(db_session, "accounts@greenfield.edu.pk", ACCOUNTANT_PASSWORD, UserRole.ACCOUNTANT)


@pytest.fixture
def admin_headers(admin_user):
    return {"Authorization": f"Bearer {token_for(admin_user)}"}


@pytest.fixture
def accountant_headers(accountant_user):
    return {"Authorization": f"Bearer {token_for(accountant_user)}"}


async def seed_school(db_session, *, students=1, monthly_fee="3000", admission_fee="5000", paper_fund="500"):
    """
    One class with section A, a fee structure in force from 2024-01-01 and
    ``students`` active students enrolled in section A from the same date.
    """
    school_class = SchoolClass(class_type=ClassType.SCHOOL, name="Class 5", is_active=True)
    db_session.add(school_class)
    await db_session.flush()
    
    section = Section(class_id=school_class.id, name="A")
    other_section = Section(class_id=school_class.id, name="B")
    db_session.add_all([section, other_section])
    db_session.add(FeeStructureVersion(
        class_id=school_class.id,
        effective_from=date(2024, 1, 1),
        admission_fee=Decimal(admission_fee),
        monthly_fee=Decimal(monthly_fee),
        paper_fund=Decimal(paper_fund),
    ))
    await db_session.flush()
    
    student_ids = []
    for index in range(students):
        student = Student(name=f"Student {index + 1}", roll_no=f"R-{index + 1:03d}", is_active=True, is_expelled=False)
        db_session.add(student)
        await db_session.flush()
        db_session.add(Enrollment(
            student_id=student.id,
            class_id=school_class.id,
            section_id=section.id,
            start_date=date(2024, 1, 1),
        ))
        student_ids.append(student.id)
    
    await db_session.commit()
    return {
        "class_id": school_class.id,
        "section_id": section.id,
        "other_section_id": other_section.id,
        "student_ids": student_ids,
        "student_id": student_ids[0] if student_ids else None,
    }


@pytest.fixture
async def school(db_session):
    return await seed_school(db_session)


@pytest.fixture
async def next_class(db_session):
    """A second active class with its own section and fee structure."""
    school_class = SchoolClass(class_type=ClassType.SCHOOL, name="Class 6", is_active=True)
    db_session.add(school_class)
    await db_session.flush()
    section = Section(class_id=school_class.id, name="A")
    db_session.add(section)
    db_session.add(FeeStructureVersion(
        class_id=school_class.id,
        effective_from=date(2024, 1, 1),
        admission_fee=Decimal("6000"),
        monthly_fee=Decimal("3500"),
        paper_fund=Decimal("600"),
    ))
    await db_session.commit()
    return {"class_id": school_class.id, "section_id": section.id}


@pytest.fixture
async def faculty_member(db_session):
    faculty = Faculty(name="Ayesha Khan", role="Teacher", subject="Math", is_active=True)
    db_session.add(faculty)
    await db_session.flush()
    db_session.add(SalaryStructureVersion(
        faculty_id=faculty.id,
        effective_from=date(2024, 1, 1),
        base_salary=Decimal("50000"),
    ))
    await db_session.commit()
    return faculty


@pytest.fixture
def school_factory(db_session):
    """Seed a school with a chosen number of enrolled students."""
    async def make(**kwargs):
        return await seed_school(db_session, **kwargs)
    return make
