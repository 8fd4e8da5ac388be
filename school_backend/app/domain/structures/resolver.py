"""
Effective-dated structure lookup.

Fee and salary structures are versioned by ``effective_from``. The version
in force on a date is the one with the latest ``effective_from`` that is not
after that date.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from school_backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from school_backend.app.domain.vouchers.status import round_money
from school_backend.app.models.fee_structure import FeeStructureVersion
from school_backend.app.models.faculty import SalaryStructureVersion


class StructureResolver:
    
    @staticmethod
    async def find_fee_structure(db: AsyncSession, class_id: int, on_date: date) -> Optional[FeeStructureVersion]:
        query = select(FeeStructureVersion).where(
            FeeStructureVersion.class_id == class_id,
            FeeStructureVersion.effective_from <= on_date,
        ).order_by(FeeStructureVersion.effective_from.desc()).limit(1)
        
        result = await db.execute(query)
        return result.scalar_one_or_none()
    
    @staticmethod
    async def resolve_fee_structure(db: AsyncSession, class_id: int, on_date: date) -> FeeStructureVersion:
        """
        Fee structure of a class in force on ``on_date``.
        
        Raises:
            ResourceNotFoundError: If the class has no version on or before that date.
        """
        structure = await StructureResolver.find_fee_structure(db, class_id, on_date)
        if structure is None:
            raise ResourceNotFoundError(
                "Fee structure", class_id, message="Fee structure not defined for this class"
            )
        return structure
    
    @staticmethod
    async def find_salary_structure(db: AsyncSession, faculty_id: int, on_date: date) -> Optional[SalaryStructureVersion]:
        query = select(SalaryStructureVersion).where(
            SalaryStructureVersion.faculty_id == faculty_id,
            SalaryStructureVersion.effective_from <= on_date,
        ).order_by(SalaryStructureVersion.effective_from.desc()).limit(1)
        
        result = await db.execute(query)
        return result.scalar_one_or_none()
    
    @staticmethod
    async def resolve_salary_structure(db: AsyncSession, faculty_id: int, on_date: date) -> SalaryStructureVersion:
        structure = await StructureResolver.find_salary_structure(db, faculty_id, on_date)
        if structure is None:
            raise ResourceNotFoundError(
                "Salary structure", faculty_id, message="No salary structure found for this faculty member"
            )
        return structure
    
    @staticmethod
    async def add_fee_structure(
        db: AsyncSession,
        class_id: int,
        admission_fee: Decimal,
        monthly_fee: Decimal,
        paper_fund: Decimal,
        effective_from: Optional[date] = None,
    ) -> FeeStructureVersion:
        """
        Append a fee structure version.
        
        Raises:
            ConflictError: The class already has a version starting that day.
        """
        effective_from = effective_from or date.today()
        existing = await db.execute(
            select(FeeStructureVersion.id).where(
                FeeStructureVersion.class_id == class_id,
                FeeStructureVersion.effective_from == effective_from,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(f"Fee structure already defined for this class from {effective_from.isoformat()}")
        
        structure = FeeStructureVersion(
            class_id=class_id,
            effective_from=effective_from,
            admission_fee=round_money(admission_fee),
            monthly_fee=round_money(monthly_fee),
            paper_fund=round_money(paper_fund),
        )
        db.add(structure)
        await db.flush()
        return structure
    
    @staticmethod
    async def add_salary_structure(
        db: AsyncSession,
        faculty_id: int,
        base_salary: Decimal,
        effective_from: Optional[date] = None,
    ) -> SalaryStructureVersion:
        effective_from = effective_from or date.today()
        existing = await db.execute(
            select(SalaryStructureVersion.id).where(
                SalaryStructureVersion.faculty_id == faculty_id,
                SalaryStructureVersion.effective_from == effective_from,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(f"Salary structure already exists from {effective_from.isoformat()}")
        
        structure = SalaryStructureVersion(
            faculty_id=faculty_id,
            effective_from=effective_from,
            base_salary=round_money(base_salary),
        )
        db.add(structure)
        await db.flush()
        return structure
