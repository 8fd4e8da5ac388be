"""
Section API Endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.api.v1.endpoints.classes import get_class, section_student_counts
from school_backend.app.core.exceptions import ConflictError, InvalidStateError, ResourceNotFoundError
from school_backend.app.core.guards import require_admin, require_staff
from school_backend.app.db.session import get_db
from school_backend.app.models.enrollment import Enrollment
from school_backend.app.models.school_class import Section
from school_backend.app.models.student import Student
from school_backend.app.schemas.common import ApiResponse, ok
from school_backend.app.schemas.school_class import SectionCreate, SectionResponse, SectionUpdate
from school_backend.app.schemas.student import StudentResponse

router = APIRouter(prefix="/sections", tags=["Sections"])


async def get_section(db: AsyncSession, section_id: int) -> Section:
    section = await db.get(Section, section_id)
    if section is None:
        raise ResourceNotFoundError("Section", section_id, message="Section not found")
    return section


async def _ensure_unique_name(db: AsyncSession, class_id: int, name: str, exclude_id: Optional[int] = None) -> None:
    query = select(Section.id).where(Section.class_id == class_id, Section.name == name)
    if exclude_id is not None:
        query = query.where(Section.id != exclude_id)
    if (await db.execute(query)).scalar_one_or_none() is not None:
        raise ConflictError(f"Section '{name}' already exists in this class")


async def _responses(db: AsyncSession, sections: List[Section]) -> List[SectionResponse]:
    counts = await section_student_counts(db, {s.class_id for s in sections})
    return [
        SectionResponse(
            id=s.id,
            class_id=s.class_id,
            name=s.name,
            student_count=counts.get(s.id, 0),
            created_at=s.created_at,
        )
        for s in sections
    ]


@router.post("", response_model=ApiResponse[SectionResponse], status_code=status.HTTP_201_CREATED)
async def create_section(
    payload: SectionCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await get_class(db, payload.class_id)
    await _ensure_unique_name(db, payload.class_id, payload.name)
    
    section = Section(class_id=payload.class_id, name=payload.name)
    db.add(section)
    await db.commit()
    
    return ok((await _responses(db, [section]))[0], "Section created successfully")


@router.get("", response_model=ApiResponse[List[SectionResponse]])
async def list_sections(
    class_id: Optional[int] = Query(None, gt=0),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = select(Section).order_by(Section.class_id, Section.name)
    if class_id:
        query = query.where(Section.class_id == class_id)
    sections = list((await db.execute(query)).scalars().all())
    return ok(await _responses(db, sections))


@router.get("/class/{class_id}", response_model=ApiResponse[List[SectionResponse]])
async def sections_of_class(
    class_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    await get_class(db, class_id)
    result = await db.execute(select(Section).where(Section.class_id == class_id).order_by(Section.name))
    return ok(await _responses(db, list(result.scalars().all())))


@router.get("/{section_id}", response_model=ApiResponse[SectionResponse])
async def get_section_by_id(
    section_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    section = await get_section(db, section_id)
    return ok((await _responses(db, [section]))[0])


@router.put("/{section_id}", response_model=ApiResponse[SectionResponse])
async def update_section(
    section_id: int,
    payload: SectionUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    section = await get_section(db, section_id)
    await _ensure_unique_name(db, section.class_id, payload.name, exclude_id=section_id)
    
    section.name = payload.name
    await db.commit()
    
    return ok((await _responses(db, [section]))[0], "Section updated successfully")


@router.delete("/{section_id}", response_model=ApiResponse[None])
async def delete_section(
    section_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a section that has never had students enrolled."""
    section = await get_section(db, section_id)
    
    active = (await section_student_counts(db, [section.class_id])).get(section_id, 0)
    if active:
        raise InvalidStateError(f"Cannot delete section with {active} active student(s)")
    
    history = await db.execute(select(func.count(Enrollment.id)).where(Enrollment.section_id == section_id))
    if history.scalar():
        raise InvalidStateError("Cannot delete section with enrollment history")
    
    await db.delete(section)
    await db.commit()
    return ok(None, "Section deleted successfully")


@router.get("/{section_id}/students", response_model=ApiResponse[List[StudentResponse]])
async def section_students(
    section_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Students currently enrolled in the section."""
    await get_section(db, section_id)
    result = await db.execute(
        select(Student)
        .join(Enrollment, Enrollment.student_id == Student.id)
        .where(Enrollment.section_id == section_id, Enrollment.end_date.is_(None))
        .order_by(Student.name)
    )
    return ok([StudentResponse.model_validate(s) for s in result.scalars().all()])
