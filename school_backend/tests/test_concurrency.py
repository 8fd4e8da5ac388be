"""
Concurrency Tests.

Runs simultaneous requests against a file-backed SQLite database, where each
request gets its own connection, to check that the voucher and payment
guards hold when requests race.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from school_backend.app.main import app
from school_backend.app.db.session import get_db, Base
from school_backend.app.core.jwt import create_access_token
from school_backend.app.core.security import get_password_hash
from school_backend.app.models.enums import ClassType, UserRole
from school_backend.app.models.user import User
from school_backend.app.models.school_class import SchoolClass, Section
from school_backend.app.models.fee_structure import FeeStructureVersion
from school_backend.app.models.student import Student
from school_backend.app.models.enrollment import Enrollment


@pytest.fixture
async def file_factory(tmp_path):
    """
    Session factory over a SQLite file.
    
    Transactions start with BEGIN IMMEDIATE so a writer holds the database
    lock from its first statement, the way row locks serialize writers on
    PostgreSQL.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'race.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    
    @event.listens_for(engine.sync_engine, "connect")
    def disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
    
    @event.listens_for(engine.sync_engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    
    async def override_get_db():
        async with factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
    
    app.dependency_overrides[get_db] = override_get_db
    yield factory
    await engine.dispose()


@pytest.fixture
async def race_setup(file_factory):
    async with file_factory() as session:
        admin = User(
            email="admin@greenfield.edu.pk",
            hashed_password=get_password_hash("AdminPass1"),
            role=UserRole.ADMIN,
        )
        school_class = SchoolClass(class_type=ClassType.SCHOOL, name="Class 7")
        session.add_all([admin, school_class])
        await session.flush()
        
        section = Section(class_id=school_class.id, name="A")
        student = Student(name="Race Student")
        session.add_all([section, student])
        session.add(FeeStructureVersion(
            class_id=school_class.id,
            effective_from=date(2024, 1, 1),
            admission_fee=Decimal("0"),
            monthly_fee=Decimal("3000"),
            paper_fund=Decimal("0"),
        ))
        await session.flush()
        session.add(Enrollment(
            student_id=student.id,
            class_id=school_class.id,
            section_id=section.id,
            start_date=date(2024, 1, 1),
        ))
        await session.commit()
        
        token = create_access_token(data={"sub": admin.email, "user_id": admin.id, "role": "ADMIN"})
        return {"headers": {"Authorization": f"Bearer {token}"}, "student_id": student.id}


@pytest.mark.asyncio
async def test_concurrent_generation_creates_one_voucher(race_setup):
    """Five simultaneous requests for the same month: one voucher, four conflicts."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        responses = await asyncio.gather(*[
            ac.post(
                "/v1/vouchers/generate",
                json={"student_id": race_setup["student_id"], "month": "2024-02-01"},
                headers=race_setup["headers"],
            )
            for _ in range(5)
        ])
        
        codes = sorted(r.status_code for r in responses)
        assert codes == [201, 409, 409, 409, 409]
        
        listing = await ac.get(
            "/v1/vouchers", params={"student_id": race_setup["student_id"]}, headers=race_setup["headers"]
        )
        assert listing.json()["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_concurrent_payments_never_overpay(race_setup):
    """Two payments that each fit the balance alone but not together."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        created = await ac.post(
            "/v1/vouchers/generate",
            json={"student_id": race_setup["student_id"], "month": "2024-02-01"},
            headers=race_setup["headers"],
        )
        voucher_id = created.json()["data"]["voucher_id"]
        
        responses = await asyncio.gather(*[
            ac.post("/v1/fees/payment", json={"voucher_id": voucher_id, "amount": 2000}, headers=race_setup["headers"])
            for _ in range(2)
        ])
        
        assert sorted(r.status_code for r in responses) == [201, 400]
        
        voucher = await ac.get(f"/v1/vouchers/{voucher_id}", headers=race_setup["headers"])
        assert voucher.json()["data"]["paid_amount"] == 2000.0
        assert voucher.json()["data"]["status"] == "PARTIAL"
