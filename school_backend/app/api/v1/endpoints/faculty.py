"""
Faculty API Endpoints.

Faculty members and their salary structure versions. Creating a member also
records the first salary version.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.exceptions import ConflictError, InvalidStateError, ResourceNotFoundError, ValidationError
from school_backend.app.core.guards import require_admin, require_staff
from school_backend.app.db.session import get_db
from school_backend.app.domain.structures.resolver import StructureResolver
from school_backend.app.domain.vouchers.status import ZERO, round_money
from school_backend.app.models.faculty import Faculty, SalaryStructureVersion
from school_backend.app.models.salary_voucher import SalaryVoucher
from school_backend.app.schemas.common import ApiResponse, PaginatedResponse, ok, paginated
from school_backend.app.schemas.salary import (
    FacultyCreate,
    FacultyResponse,
    FacultyStats,
    FacultyUpdate,
    SalaryStructureIn,
    SalaryStructureResponse,
)

router = APIRouter(prefix="/faculty", tags=["Faculty"])


async def get_faculty(db: AsyncSession, faculty_id: int) -> Faculty:
    faculty = await db.get(Faculty, faculty_id)
    if faculty is None:
        raise ResourceNotFoundError("Faculty member", faculty_id, message="Faculty member not found")
    return faculty


async def _ensure_cnic_free(db: AsyncSession, cnic: Optional[str], exclude_id: Optional[int] = None) -> None:
    if not cnic:
        return
    query = select(Faculty.id).where(Faculty.cnic == cnic)
    if exclude_id is not None:
        query = query.where(Faculty.id != exclude_id)
    if (await db.execute(query)).scalar_one_or_none() is not None:
        raise ConflictError("Faculty member with this CNIC already exists")


async def _response(db: AsyncSession, faculty: Faculty) -> FacultyResponse:
    response = FacultyResponse.model_validate(faculty)
    structure = await StructureResolver.find_salary_structure(db, faculty.id, date.today())
    response.current_salary = structure.base_salary if structure else None
    return response


@router.post("", response_model=ApiResponse[FacultyResponse], status_code=status.HTTP_201_CREATED)
async def create_faculty(
    payload: FacultyCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await _ensure_cnic_free(db, payload.cnic)
    
    faculty = Faculty(**payload.faculty_fields(), is_active=True)
    db.add(faculty)
    await db.flush()
    
    await StructureResolver.add_salary_structure(db, faculty.id, payload.base_salary, payload.effective_from)
    await db.commit()
    
    return ok(await _response(db, faculty), "Faculty member created successfully")


@router.get("", response_model=PaginatedResponse[FacultyResponse])
async def list_faculty(
    search: Optional[str] = Query(None, min_length=1, description="Name, CNIC or subject"),
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = select(Faculty)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            Faculty.name.ilike(pattern),
            Faculty.cnic.ilike(pattern),
            Faculty.subject.ilike(pattern),
        ))
    if role:
        query = query.where(Faculty.role == role)
    if is_active is not None:
        query = query.where(Faculty.is_active.is_(is_active))
    
    count = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    members = (await db.execute(
        query.order_by(Faculty.name, Faculty.id).offset((page - 1) * limit).limit(limit)
    )).scalars().all()
    
    return paginated([await _response(db, f) for f in members], page, limit, count)


@router.get("/stats", response_model=ApiResponse[FacultyStats])
async def faculty_stats(
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Head counts and the monthly salary bill of active faculty at current rates."""
    members = (await db.execute(select(Faculty))).scalars().all()
    today = date.today()
    
    payroll = ZERO
    for member in members:
        if not member.is_active:
            continue
        structure = await StructureResolver.find_salary_structure(db, member.id, today)
        if structure is not None:
            payroll += structure.base_salary
    
    active = sum(1 for m in members if m.is_active)
    return ok(FacultyStats(
        total_faculty=len(members),
        active_faculty=active,
        inactive_faculty=len(members) - active,
        total_monthly_salary=round_money(payroll),
    ))


@router.get("/{faculty_id}", response_model=ApiResponse[FacultyResponse])
async def get_faculty_by_id(
    faculty_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return ok(await _response(db, await get_faculty(db, faculty_id)))


@router.put("/{faculty_id}", response_model=ApiResponse[FacultyResponse])
async def update_faculty(
    faculty_id: int,
    payload: FacultyUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    faculty = await get_faculty(db, faculty_id)
    update_data = payload.model_dump(exclude_unset=True)
    if not update_data:
        raise ValidationError("No fields to update")
    
    await _ensure_cnic_free(db, update_data.get("cnic"), exclude_id=faculty_id)
    for field, value in update_data.items():
        setattr(faculty, field, value)
    await db.commit()
    
    return ok(await _response(db, faculty), "Faculty member updated successfully")


@router.delete("/{faculty_id}", response_model=ApiResponse[None])
async def delete_faculty(
    faculty_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a faculty member who has never been issued a salary voucher."""
    faculty = await get_faculty(db, faculty_id)
    
    vouchers = await db.execute(select(func.count(SalaryVoucher.id)).where(SalaryVoucher.faculty_id == faculty_id))
    if vouchers.scalar():
        raise InvalidStateError("Cannot delete faculty member with salary vouchers. Deactivate instead.")
    
    await db.execute(delete(SalaryStructureVersion).where(SalaryStructureVersion.faculty_id == faculty_id))
    await db.delete(faculty)
    await db.commit()
    return ok(None, "Faculty member deleted successfully")


@router.put("/{faculty_id}/activate", response_model=ApiResponse[FacultyResponse])
async def activate_faculty(
    faculty_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    faculty = await get_faculty(db, faculty_id)
    if faculty.is_active:
        raise InvalidStateError("Faculty member is already active")
    faculty.is_active = True
    await db.commit()
    return ok(await _response(db, faculty), "Faculty member activated successfully")


@router.put("/{faculty_id}/deactivate", response_model=ApiResponse[FacultyResponse])
async def deactivate_faculty(
    faculty_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    faculty = await get_faculty(db, faculty_id)
    if not faculty.is_active:
        raise InvalidStateError("Faculty member is already inactive")
    faculty.is_active = False
    await db.commit()
    return ok(await _response(db, faculty), "Faculty member deactivated successfully")


@router.put("/{faculty_id}/salary", response_model=ApiResponse[SalaryStructureResponse])
async def update_salary(
    faculty_id: int,
    payload: SalaryStructureIn,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Append a salary structure version.
    
    Vouchers already generated keep the base salary they were issued with.
    """
    faculty = await get_faculty(db, faculty_id)
    if not faculty.is_active:
        raise InvalidStateError("Cannot update salary for inactive faculty member")
    
    structure = await StructureResolver.add_salary_structure(db, faculty_id, payload.base_salary, payload.effective_from)
    await db.commit()
    
    return ok(SalaryStructureResponse.model_validate(structure), "Salary updated successfully")


@router.get("/{faculty_id}/salary-history", response_model=ApiResponse[List[SalaryStructureResponse]])
async def salary_history(
    faculty_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    await get_faculty(db, faculty_id)
    result = await db.execute(
        select(SalaryStructureVersion)
        .where(SalaryStructureVersion.faculty_id == faculty_id)
        .order_by(SalaryStructureVersion.effective_from.desc())
    )
    return ok([SalaryStructureResponse.model_validate(s) for s in result.scalars().all()])
