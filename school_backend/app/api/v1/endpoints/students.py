"""
Student API Endpoints.

Student records, guardians and the enrollment ledger: enroll, withdraw,
transfer, promote, and the active/inactive/expelled state machine.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.exceptions import ConflictError, ValidationError
from school_backend.app.core.guards import require_admin, require_staff
from school_backend.app.db.session import get_db
from school_backend.app.domain.enrollment.lifecycle import EnrollmentService, get_student, get_student_fresh
from school_backend.app.models.enrollment import Enrollment
from school_backend.app.models.student import Student
from school_backend.app.schemas.common import ApiResponse, PaginatedResponse, ok, paginated
from school_backend.app.schemas.student import (
    AddGuardianRequest,
    EnrollmentResponse,
    EnrollRequest,
    LinkedGuardian,
    PromoteRequest,
    StudentCreate,
    StudentDetailResponse,
    StudentListItem,
    StudentResponse,
    StudentUpdate,
    TransferRequest,
    WithdrawRequest,
)
from school_backend.app.services.audit import AuditAction, log_user_action

router = APIRouter(prefix="/students", tags=["Students"])


async def _enrollments_of(db: AsyncSession, student_id: int) -> List[Enrollment]:
    result = await db.execute(
        select(Enrollment)
        .where(Enrollment.student_id == student_id)
        .order_by(Enrollment.start_date.desc(), Enrollment.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def student_detail(db: AsyncSession, student_id: int) -> StudentDetailResponse:
    """Student with guardians, current enrollment and full enrollment history."""
    student = await get_student_fresh(db, student_id)
    history = await _enrollments_of(db, student_id)
    current = next((e for e in history if e.is_open), None)
    
    return StudentDetailResponse(
        **StudentResponse.model_validate(student).model_dump(),
        current_enrollment=EnrollmentResponse.from_enrollment(current) if current else None,
        guardians=[
            LinkedGuardian(
                id=link.guardian.id,
                name=link.guardian.name,
                cnic=link.guardian.cnic,
                phone=link.guardian.phone,
                occupation=link.guardian.occupation,
                created_at=link.guardian.created_at,
                relation=link.relation,
            )
            for link in student.guardian_links
        ],
        enrollment_history=[EnrollmentResponse.from_enrollment(e) for e in history],
    )


@router.post("", response_model=ApiResponse[StudentDetailResponse], status_code=status.HTTP_201_CREATED)
async def create_student(
    payload: StudentCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a student, link or create guardians, and optionally enroll in one go."""
    student = await EnrollmentService.create_student(
        db,
        payload.student_fields(),
        guardians=[g.model_dump() for g in payload.guardians],
        enrollment=payload.enrollment.model_dump() if payload.enrollment else None,
    )
    if payload.enrollment:
        await log_user_action(
            db, current_user, AuditAction.STUDENT_ENROLLED,
            entity_type="student", entity_id=student.id,
            metadata=payload.enrollment.model_dump(mode="json")
        )
    await db.commit()
    
    return ok(await student_detail(db, student.id), "Student created successfully")


@router.get("", response_model=PaginatedResponse[StudentListItem])
async def list_students(
    search: Optional[str] = Query(None, min_length=1, description="Name or roll number"),
    class_id: Optional[int] = Query(None, gt=0),
    section_id: Optional[int] = Query(None, gt=0),
    is_active: Optional[bool] = None,
    is_expelled: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = select(Student)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Student.name.ilike(pattern), Student.roll_no.ilike(pattern)))
    if is_active is not None:
        query = query.where(Student.is_active.is_(is_active))
    if is_expelled is not None:
        query = query.where(Student.is_expelled.is_(is_expelled))
    if class_id or section_id:
        query = query.join(
            Enrollment,
            (Enrollment.student_id == Student.id) & Enrollment.end_date.is_(None),
        )
        if class_id:
            query = query.where(Enrollment.class_id == class_id)
        if section_id:
            query = query.where(Enrollment.section_id == section_id)
    
    count = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    students = (await db.execute(
        query.order_by(Student.name, Student.id).offset((page - 1) * limit).limit(limit)
    )).scalars().all()
    
    open_rows = await db.execute(
        select(Enrollment).where(
            Enrollment.student_id.in_([s.id for s in students]),
            Enrollment.end_date.is_(None),
        )
    )
    current: Dict[int, Enrollment] = {e.student_id: e for e in open_rows.scalars().all()}
    
    items = [
        StudentListItem(
            **StudentResponse.model_validate(s).model_dump(),
            current_enrollment=EnrollmentResponse.from_enrollment(current[s.id]) if s.id in current else None,
        )
        for s in students
    ]
    return paginated(items, page, limit, count)


@router.get("/{student_id}", response_model=ApiResponse[StudentDetailResponse])
async def get_student_by_id(
    student_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return ok(await student_detail(db, student_id))


@router.put("/{student_id}", response_model=ApiResponse[StudentDetailResponse])
async def update_student(
    student_id: int,
    payload: StudentUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    student = await get_student(db, student_id, lock=True)
    update_data = payload.model_dump(exclude_unset=True)
    if not update_data:
        raise ValidationError("No fields to update")
    
    roll_no = update_data.get("roll_no")
    if roll_no and roll_no != student.roll_no:
        taken = await db.execute(select(Student.id).where(Student.roll_no == roll_no, Student.id != student_id))
        if taken.scalar_one_or_none() is not None:
            raise ConflictError("Roll number already exists")
    
    for field, value in update_data.items():
        setattr(student, field, value)
    await db.commit()
    
    return ok(await student_detail(db, student_id), "Student updated successfully")


@router.post("/{student_id}/enroll", response_model=ApiResponse[StudentDetailResponse], status_code=status.HTTP_201_CREATED)
async def enroll_student(
    student_id: int,
    payload: EnrollRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    enrollment = await EnrollmentService.enroll(db, student_id, payload.class_id, payload.section_id, payload.start_date)
    await log_user_action(
        db, current_user, AuditAction.STUDENT_ENROLLED,
        entity_type="student", entity_id=student_id,
        metadata={"enrollment_id": enrollment.id, "class_id": payload.class_id, "section_id": payload.section_id}
    )
    await db.commit()
    
    return ok(await student_detail(db, student_id), "Student enrolled successfully")


@router.post("/{student_id}/withdraw", response_model=ApiResponse[StudentDetailResponse])
async def withdraw_student(
    student_id: int,
    payload: WithdrawRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    enrollment = await EnrollmentService.withdraw(db, student_id, payload.end_date)
    await log_user_action(
        db, current_user, AuditAction.STUDENT_WITHDRAWN,
        entity_type="student", entity_id=student_id,
        metadata={"enrollment_id": enrollment.id, "class_id": enrollment.class_id}
    )
    await db.commit()
    
    return ok(await student_detail(db, student_id), "Student withdrawn successfully")


@router.post("/{student_id}/transfer", response_model=ApiResponse[StudentDetailResponse])
async def transfer_student(
    student_id: int,
    payload: TransferRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    enrollment = await EnrollmentService.transfer(
        db, student_id, payload.class_id, payload.section_id, payload.transfer_date
    )
    await log_user_action(
        db, current_user, AuditAction.STUDENT_TRANSFERRED,
        entity_type="student", entity_id=student_id,
        metadata={"enrollment_id": enrollment.id, "class_id": payload.class_id, "section_id": payload.section_id}
    )
    await db.commit()
    
    return ok(await student_detail(db, student_id), "Student transferred successfully")


@router.post("/{student_id}/promote", response_model=ApiResponse[StudentDetailResponse])
async def promote_student(
    student_id: int,
    payload: PromoteRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Move the student into the next class.
    
    With ``reset_discount`` (the default) discounts held for the class being
    left are removed.
    """
    enrollment = await EnrollmentService.promote(
        db, student_id, payload.class_id, payload.section_id,
        promotion_date=payload.promotion_date,
        reset_discount=payload.reset_discount,
    )
    await log_user_action(
        db, current_user, AuditAction.STUDENT_PROMOTED,
        entity_type="student", entity_id=student_id,
        metadata={
            "enrollment_id": enrollment.id,
            "class_id": payload.class_id,
            "section_id": payload.section_id,
            "reset_discount": payload.reset_discount,
        }
    )
    await db.commit()
    
    return ok(await student_detail(db, student_id), "Student promoted successfully")


@router.post("/{student_id}/activate", response_model=ApiResponse[StudentDetailResponse])
async def activate_student(
    student_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await EnrollmentService.activate(db, student_id)
    await db.commit()
    return ok(await student_detail(db, student_id), "Student activated successfully")


@router.post("/{student_id}/deactivate", response_model=ApiResponse[StudentDetailResponse])
async def deactivate_student(
    student_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await EnrollmentService.deactivate(db, student_id)
    await db.commit()
    return ok(await student_detail(db, student_id), "Student deactivated successfully")


@router.post("/{student_id}/expel", response_model=ApiResponse[StudentDetailResponse])
async def expel_student(
    student_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await EnrollmentService.expel(db, student_id)
    await log_user_action(db, current_user, AuditAction.STUDENT_EXPELLED, entity_type="student", entity_id=student_id)
    await db.commit()
    return ok(await student_detail(db, student_id), "Student expelled successfully")


@router.post("/{student_id}/clear-expulsion", response_model=ApiResponse[StudentDetailResponse])
async def clear_expulsion(
    student_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Clear an expulsion. The student comes back inactive and must be activated separately."""
    await EnrollmentService.clear_expulsion(db, student_id)
    await db.commit()
    return ok(await student_detail(db, student_id), "Expulsion cleared successfully")


@router.post("/{student_id}/guardians", response_model=ApiResponse[StudentDetailResponse], status_code=status.HTTP_201_CREATED)
async def add_guardian(
    student_id: int,
    payload: AddGuardianRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await EnrollmentService.add_guardian(db, student_id, payload.guardian_id, payload.relation)
    await db.commit()
    return ok(await student_detail(db, student_id), "Guardian linked successfully")


@router.delete("/{student_id}/guardians/{guardian_id}", response_model=ApiResponse[StudentDetailResponse])
async def remove_guardian(
    student_id: int,
    guardian_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await EnrollmentService.remove_guardian(db, student_id, guardian_id)
    await db.commit()
    return ok(await student_detail(db, student_id), "Guardian unlinked successfully")
