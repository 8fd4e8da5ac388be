"""
Class API Endpoints.

Classes carry sections and a versioned fee structure. Deleting a class only
deactivates it, and is refused while students are enrolled.
"""

from datetime import date
from typing import Dict, Iterable, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.exceptions import ConflictError, InvalidStateError, ResourceNotFoundError, ValidationError
from school_backend.app.core.guards import require_admin, require_staff
from school_backend.app.db.session import get_db
from school_backend.app.domain.structures.resolver import StructureResolver
from school_backend.app.models.enrollment import Enrollment
from school_backend.app.models.enums import ClassType
from school_backend.app.models.fee_structure import FeeStructureVersion
from school_backend.app.models.school_class import SchoolClass
from school_backend.app.schemas.common import ApiResponse, ok
from school_backend.app.schemas.school_class import (
    ClassCreate,
    ClassResponse,
    ClassUpdate,
    FeeStructureIn,
    FeeStructureResponse,
    SectionResponse,
)

router = APIRouter(prefix="/classes", tags=["Classes"])


async def section_student_counts(db: AsyncSession, class_ids: Iterable[int]) -> Dict[int, int]:
    """Open enrollments per section for the given classes."""
    result = await db.execute(
        select(Enrollment.section_id, func.count(Enrollment.id))
        .where(Enrollment.class_id.in_(list(class_ids)), Enrollment.end_date.is_(None))
        .group_by(Enrollment.section_id)
    )
    return {section_id: count for section_id, count in result.all()}


async def get_class(db: AsyncSession, class_id: int) -> SchoolClass:
    result = await db.execute(
        select(SchoolClass).where(SchoolClass.id == class_id).execution_options(populate_existing=True)
    )
    school_class = result.scalar_one_or_none()
    if school_class is None:
        raise ResourceNotFoundError("Class", class_id, message="Class not found")
    return school_class


async def _ensure_unique_name(db: AsyncSession, class_type: ClassType, name: str, exclude_id: Optional[int] = None) -> None:
    query = select(SchoolClass.id).where(SchoolClass.class_type == class_type, SchoolClass.name == name)
    if exclude_id is not None:
        query = query.where(SchoolClass.id != exclude_id)
    if (await db.execute(query)).scalar_one_or_none() is not None:
        raise ConflictError(f"Class '{name}' already exists")


async def _class_responses(db: AsyncSession, classes: List[SchoolClass]) -> List[ClassResponse]:
    counts = await section_student_counts(db, [c.id for c in classes])
    today = date.today()
    
    responses = []
    for school_class in classes:
        structure = await StructureResolver.find_fee_structure(db, school_class.id, today)
        sections = [
            SectionResponse(
                id=section.id,
                class_id=section.class_id,
                name=section.name,
                student_count=counts.get(section.id, 0),
                created_at=section.created_at,
            )
            for section in school_class.sections
        ]
        responses.append(ClassResponse(
            id=school_class.id,
            class_type=school_class.class_type,
            name=school_class.name,
            is_active=school_class.is_active,
            created_at=school_class.created_at,
            student_count=sum(s.student_count for s in sections),
            sections=sections,
            current_fee_structure=FeeStructureResponse.model_validate(structure) if structure else None,
        ))
    return responses


@router.post("", response_model=ApiResponse[ClassResponse], status_code=status.HTTP_201_CREATED)
async def create_class(
    payload: ClassCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a class, optionally with its first fee structure version."""
    await _ensure_unique_name(db, payload.class_type, payload.name)
    
    school_class = SchoolClass(class_type=payload.class_type, name=payload.name, is_active=True)
    db.add(school_class)
    await db.flush()
    
    if payload.fee_structure:
        await StructureResolver.add_fee_structure(db, school_class.id, **payload.fee_structure.model_dump())
    await db.commit()
    
    school_class = await get_class(db, school_class.id)
    return ok((await _class_responses(db, [school_class]))[0], "Class created successfully")


@router.get("", response_model=ApiResponse[List[ClassResponse]])
async def list_classes(
    class_type: Optional[ClassType] = None,
    is_active: Optional[bool] = Query(None),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = select(SchoolClass).order_by(SchoolClass.class_type, SchoolClass.name)
    if class_type:
        query = query.where(SchoolClass.class_type == class_type)
    if is_active is not None:
        query = query.where(SchoolClass.is_active.is_(is_active))
    
    classes = list((await db.execute(query)).scalars().all())
    return ok(await _class_responses(db, classes))


@router.get("/{class_id}", response_model=ApiResponse[ClassResponse])
async def get_class_by_id(
    class_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    school_class = await get_class(db, class_id)
    return ok((await _class_responses(db, [school_class]))[0])


@router.put("/{class_id}", response_model=ApiResponse[ClassResponse])
async def update_class(
    class_id: int,
    payload: ClassUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    school_class = await get_class(db, class_id)
    update_data = payload.model_dump(exclude_unset=True)
    if not update_data:
        raise ValidationError("No fields to update")
    
    if "name" in update_data or "class_type" in update_data:
        await _ensure_unique_name(
            db,
            update_data.get("class_type", school_class.class_type),
            update_data.get("name", school_class.name),
            exclude_id=class_id,
        )
    
    for field, value in update_data.items():
        setattr(school_class, field, value)
    await db.commit()
    
    return ok((await _class_responses(db, [school_class]))[0], "Class updated successfully")


@router.delete("/{class_id}", response_model=ApiResponse[None])
async def delete_class(
    class_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Deactivate a class. Refused while it has enrolled students."""
    school_class = await get_class(db, class_id)
    
    enrolled = sum((await section_student_counts(db, [class_id])).values())
    if enrolled:
        raise InvalidStateError(
            f"Cannot delete class with {enrolled} active student(s). Please transfer or withdraw them first."
        )
    
    school_class.is_active = False
    await db.commit()
    return ok(None, "Class deactivated successfully")


@router.put("/{class_id}/fee-structure", response_model=ApiResponse[FeeStructureResponse])
async def update_fee_structure(
    class_id: int,
    payload: FeeStructureIn,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Append a fee structure version effective from ``effective_from``.
    
    Vouchers already generated keep the amounts they were issued with.
    """
    await get_class(db, class_id)
    structure = await StructureResolver.add_fee_structure(db, class_id, **payload.model_dump())
    await db.commit()
    
    return ok(FeeStructureResponse.model_validate(structure), "Fee structure updated successfully")


@router.get("/{class_id}/fee-history", response_model=ApiResponse[List[FeeStructureResponse]])
async def fee_history(
    class_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    await get_class(db, class_id)
    result = await db.execute(
        select(FeeStructureVersion)
        .where(FeeStructureVersion.class_id == class_id)
        .order_by(FeeStructureVersion.effective_from.desc())
    )
    return ok([FeeStructureResponse.model_validate(s) for s in result.scalars().all()])
