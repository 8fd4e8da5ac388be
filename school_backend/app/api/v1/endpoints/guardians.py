"""
Guardian API Endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.exceptions import ConflictError, InvalidStateError, ResourceNotFoundError, ValidationError
from school_backend.app.core.guards import require_admin, require_staff
from school_backend.app.db.session import get_db
from school_backend.app.models.student import Guardian, StudentGuardian
from school_backend.app.schemas.common import ApiResponse, PaginatedResponse, ok, paginated
from school_backend.app.schemas.student import GuardianCreate, GuardianResponse, GuardianUpdate

router = APIRouter(prefix="/guardians", tags=["Guardians"])


async def get_guardian(db: AsyncSession, guardian_id: int) -> Guardian:
    guardian = await db.get(Guardian, guardian_id)
    if guardian is None:
        raise ResourceNotFoundError("Guardian", guardian_id, message="Guardian not found")
    return guardian


async def _ensure_cnic_free(db: AsyncSession, cnic: Optional[str], exclude_id: Optional[int] = None) -> None:
    if not cnic:
        return
    query = select(Guardian.id).where(Guardian.cnic == cnic)
    if exclude_id is not None:
        query = query.where(Guardian.id != exclude_id)
    if (await db.execute(query)).scalar_one_or_none() is not None:
        raise ConflictError("Guardian with this CNIC already exists")


@router.post("", response_model=ApiResponse[GuardianResponse], status_code=status.HTTP_201_CREATED)
async def create_guardian(
    payload: GuardianCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await _ensure_cnic_free(db, payload.cnic)
    guardian = Guardian(**payload.model_dump())
    db.add(guardian)
    await db.commit()
    return ok(GuardianResponse.model_validate(guardian), "Guardian created successfully")


@router.get("", response_model=PaginatedResponse[GuardianResponse])
async def list_guardians(
    search: Optional[str] = Query(None, min_length=1, description="Name, CNIC or phone"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = select(Guardian)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            Guardian.name.ilike(pattern),
            Guardian.cnic.ilike(pattern),
            Guardian.phone.ilike(pattern),
        ))
    
    count = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    guardians = (await db.execute(
        query.order_by(Guardian.name, Guardian.id).offset((page - 1) * limit).limit(limit)
    )).scalars().all()
    
    return paginated([GuardianResponse.model_validate(g) for g in guardians], page, limit, count)


@router.get("/search/cnic/{cnic}", response_model=ApiResponse[GuardianResponse])
async def search_by_cnic(
    cnic: str,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Exact CNIC lookup, used to reuse an existing guardian when adding a sibling."""
    cnic = cnic.replace("-", "")
    if not cnic.isdigit() or len(cnic) != 13:
        raise ValidationError("CNIC must be 13 digits")
    
    result = await db.execute(select(Guardian).where(Guardian.cnic == cnic))
    guardian = result.scalar_one_or_none()
    if guardian is None:
        raise ResourceNotFoundError("Guardian", message="No guardian found with this CNIC")
    return ok(GuardianResponse.model_validate(guardian))


@router.get("/{guardian_id}", response_model=ApiResponse[GuardianResponse])
async def get_guardian_by_id(
    guardian_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return ok(GuardianResponse.model_validate(await get_guardian(db, guardian_id)))


@router.put("/{guardian_id}", response_model=ApiResponse[GuardianResponse])
async def update_guardian(
    guardian_id: int,
    payload: GuardianUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    guardian = await get_guardian(db, guardian_id)
    update_data = payload.model_dump(exclude_unset=True)
    if not update_data:
        raise ValidationError("No fields to update")
    
    await _ensure_cnic_free(db, update_data.get("cnic"), exclude_id=guardian_id)
    for field, value in update_data.items():
        setattr(guardian, field, value)
    await db.commit()
    
    return ok(GuardianResponse.model_validate(guardian), "Guardian updated successfully")


@router.delete("/{guardian_id}", response_model=ApiResponse[None])
async def delete_guardian(
    guardian_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a guardian that is not linked to any student."""
    guardian = await get_guardian(db, guardian_id)
    
    linked = await db.execute(
        select(func.count()).select_from(StudentGuardian).where(StudentGuardian.guardian_id == guardian_id)
    )
    count = linked.scalar()
    if count:
        raise InvalidStateError(f"Cannot delete guardian linked to {count} student(s)")
    
    await db.delete(guardian)
    await db.commit()
    return ok(None, "Guardian deleted successfully")
