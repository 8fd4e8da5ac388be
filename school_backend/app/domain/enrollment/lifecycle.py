"""
Student lifecycle and enrollment ledger (Domain Logic).

Student states and transitions:

    active   --deactivate-->     inactive
    inactive --activate-->       active
    any      --expel-->          expelled  (open enrollment closed)
    expelled --clear_expulsion-> inactive

Enroll, withdraw, transfer and promote need an active, non-expelled student.
A student holds at most one open enrollment; moving between classes closes
the old row and opens a new one in the same transaction.
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationError,
)
from school_backend.app.domain.vouchers.discounts import remove_class_discounts
from school_backend.app.models.enrollment import Enrollment
from school_backend.app.models.school_class import SchoolClass, Section
from school_backend.app.models.student import Guardian, Student, StudentGuardian

logger = logging.getLogger(__name__)


async def get_student(db: AsyncSession, student_id: int, lock: bool = False) -> Student:
    query = select(Student).where(Student.id == student_id)
    if lock:
        query = query.with_for_update()
    student = (await db.execute(query)).scalar_one_or_none()
    if student is None:
        raise ResourceNotFoundError("Student", student_id, message="Student not found")
    return student


async def get_open_enrollment(db: AsyncSession, student_id: int) -> Optional[Enrollment]:
    result = await db.execute(
        select(Enrollment).where(
            Enrollment.student_id == student_id,
            Enrollment.end_date.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def enrollment_history(db: AsyncSession, student_id: int) -> List[Enrollment]:
    result = await db.execute(
        select(Enrollment)
        .where(Enrollment.student_id == student_id)
        .order_by(Enrollment.start_date.desc(), Enrollment.id.desc())
    )
    return list(result.scalars().all())


async def check_placement(db: AsyncSession, class_id: int, section_id: int, action: str = "enroll in") -> SchoolClass:
    """The class exists and is active, and the section belongs to it."""
    school_class = await db.get(SchoolClass, class_id)
    if school_class is None:
        raise ResourceNotFoundError("Class", class_id, message="Class not found")
    if not school_class.is_active:
        raise InvalidStateError(f"Cannot {action} inactive class")
    
    result = await db.execute(
        select(Section.id).where(Section.id == section_id, Section.class_id == class_id)
    )
    if result.scalar_one_or_none() is None:
        raise ResourceNotFoundError(
            "Section", section_id, message="Section not found or does not belong to the specified class"
        )
    return school_class


def require_enrollable(student: Student, verb: str = "enroll") -> None:
    if student.is_expelled:
        raise InvalidStateError(f"Cannot {verb} expelled student")
    if not student.is_active:
        raise InvalidStateError(f"Cannot {verb} inactive student")


class EnrollmentService:
    
    @staticmethod
    async def create_student(
        db: AsyncSession,
        fields: Dict[str, Any],
        guardians: Iterable[Dict[str, Any]] = (),
        enrollment: Optional[Dict[str, Any]] = None,
    ) -> Student:
        """
        Create a student with optional guardians and an optional first enrollment.
        
        A guardian entry either names an existing ``guardian_id``, carries a
        CNIC that matches an existing guardian, or carries enough to create one.
        """
        roll_no = fields.get("roll_no")
        if roll_no:
            existing = await db.execute(select(Student.id).where(Student.roll_no == roll_no))
            if existing.scalar_one_or_none() is not None:
                raise ConflictError("Roll number already exists")
        
        if enrollment:
            await check_placement(db, enrollment["class_id"], enrollment["section_id"])
        
        student = Student(**fields, is_active=True, is_expelled=False)
        db.add(student)
        await db.flush()
        
        linked = set()
        for entry in guardians:
            guardian = await EnrollmentService._resolve_guardian(db, entry)
            if guardian.id in linked:
                continue
            linked.add(guardian.id)
            db.add(StudentGuardian(student_id=student.id, guardian_id=guardian.id, relation=entry.get("relation")))
        
        if enrollment:
            db.add(Enrollment(
                student_id=student.id,
                class_id=enrollment["class_id"],
                section_id=enrollment["section_id"],
                start_date=enrollment.get("start_date") or date.today(),
            ))
        
        await db.flush()
        logger.info("Student %s created (guardians=%s, enrolled=%s)", student.id, len(linked), bool(enrollment))
        return await get_student_fresh(db, student.id)
    
    @staticmethod
    async def _resolve_guardian(db: AsyncSession, entry: Dict[str, Any]) -> Guardian:
        guardian_id = entry.get("guardian_id")
        if guardian_id:
            guardian = await db.get(Guardian, guardian_id)
            if guardian is None:
                raise ResourceNotFoundError("Guardian", guardian_id, message=f"Guardian with ID {guardian_id} not found")
            return guardian
        
        cnic = entry.get("cnic")
        if cnic:
            result = await db.execute(select(Guardian).where(Guardian.cnic == cnic))
            guardian = result.scalar_one_or_none()
            if guardian is not None:
                return guardian
        
        if not entry.get("name"):
            raise ValidationError("Guardian name is required when creating new guardian")
        
        guardian = Guardian(
            name=entry["name"],
            cnic=cnic,
            phone=entry.get("phone"),
            occupation=entry.get("occupation"),
        )
        db.add(guardian)
        await db.flush()
        return guardian
    
    @staticmethod
    async def enroll(
        db: AsyncSession,
        student_id: int,
        class_id: int,
        section_id: int,
        start_date: Optional[date] = None,
    ) -> Enrollment:
        student = await get_student(db, student_id, lock=True)
        require_enrollable(student)
        
        if await get_open_enrollment(db, student_id) is not None:
            raise InvalidStateError(
                "Student already has an active enrollment. Please withdraw from current class first."
            )
        
        await check_placement(db, class_id, section_id)
        
        enrollment = Enrollment(
            student_id=student_id,
            class_id=class_id,
            section_id=section_id,
            start_date=start_date or date.today(),
        )
        db.add(enrollment)
        await db.flush()
        logger.info("Student %s enrolled in class %s section %s", student_id, class_id, section_id)
        return enrollment
    
    @staticmethod
    async def withdraw(db: AsyncSession, student_id: int, end_date: Optional[date] = None) -> Enrollment:
        student = await get_student(db, student_id, lock=True)
        require_enrollable(student, "withdraw")
        
        current = await get_open_enrollment(db, student_id)
        if current is None:
            raise InvalidStateError("Student has no active enrollment")
        
        current.end_date = end_date or date.today()
        await db.flush()
        logger.info("Student %s withdrawn from class %s", student_id, current.class_id)
        return current
    
    @staticmethod
    async def transfer(
        db: AsyncSession,
        student_id: int,
        class_id: int,
        section_id: int,
        transfer_date: Optional[date] = None,
    ) -> Enrollment:
        """Close the open enrollment and open one in the new class/section on the same date."""
        student = await get_student(db, student_id, lock=True)
        require_enrollable(student, "transfer")
        
        current = await get_open_enrollment(db, student_id)
        if current is None:
            raise InvalidStateError("Student has no active enrollment to transfer from")
        
        await check_placement(db, class_id, section_id, action="transfer to")
        
        moved_on = transfer_date or date.today()
        current.end_date = moved_on
        await db.flush()
        
        enrollment = Enrollment(
            student_id=student_id,
            class_id=class_id,
            section_id=section_id,
            start_date=moved_on,
        )
        db.add(enrollment)
        await db.flush()
        logger.info(
            "Student %s moved from class %s to class %s section %s",
            student_id, current.class_id, class_id, section_id,
        )
        return enrollment
    
    @staticmethod
    async def promote(
        db: AsyncSession,
        student_id: int,
        class_id: int,
        section_id: int,
        promotion_date: Optional[date] = None,
        reset_discount: bool = True,
    ) -> Enrollment:
        """
        Transfer to the next class and, when ``reset_discount`` is set, drop
        the discounts the student held in the class being left.
        """
        await get_student(db, student_id, lock=True)
        current = await get_open_enrollment(db, student_id)
        old_class_id = current.class_id if current is not None else None
        
        enrollment = await EnrollmentService.transfer(db, student_id, class_id, section_id, promotion_date)
        
        if reset_discount and old_class_id is not None:
            removed = await remove_class_discounts(db, student_id, old_class_id)
            logger.info("Promotion of student %s removed %s discount(s) of class %s", student_id, removed, old_class_id)
        return enrollment
    
    @staticmethod
    async def activate(db: AsyncSession, student_id: int) -> Student:
        student = await get_student(db, student_id, lock=True)
        if student.is_expelled:
            raise InvalidStateError("Cannot activate expelled student. Please clear expulsion first.")
        student.is_active = True
        await db.flush()
        return student
    
    @staticmethod
    async def deactivate(db: AsyncSession, student_id: int) -> Student:
        student = await get_student(db, student_id, lock=True)
        student.is_active = False
        await db.flush()
        return student
    
    @staticmethod
    async def expel(db: AsyncSession, student_id: int) -> Student:
        """Close the open enrollment (if any) and mark the student expelled and inactive."""
        student = await get_student(db, student_id, lock=True)
        
        current = await get_open_enrollment(db, student_id)
        if current is not None:
            current.end_date = date.today()
        
        student.is_active = False
        student.is_expelled = True
        await db.flush()
        logger.warning("Student %s expelled", student_id)
        return student
    
    @staticmethod
    async def clear_expulsion(db: AsyncSession, student_id: int) -> Student:
        student = await get_student(db, student_id, lock=True)
        if not student.is_expelled:
            raise InvalidStateError("Student is not expelled")
        student.is_expelled = False
        student.is_active = False
        await db.flush()
        return student
    
    @staticmethod
    async def add_guardian(db: AsyncSession, student_id: int, guardian_id: int, relation: Optional[str] = None) -> None:
        await get_student(db, student_id)
        if await db.get(Guardian, guardian_id) is None:
            raise ResourceNotFoundError("Guardian", guardian_id, message="Guardian not found")
        
        if await db.get(StudentGuardian, (student_id, guardian_id)) is not None:
            raise ConflictError("Guardian already linked to this student")
        
        db.add(StudentGuardian(student_id=student_id, guardian_id=guardian_id, relation=relation))
        await db.flush()
    
    @staticmethod
    async def remove_guardian(db: AsyncSession, student_id: int, guardian_id: int) -> None:
        link = await db.get(StudentGuardian, (student_id, guardian_id))
        if link is None:
            raise ResourceNotFoundError("Guardian relationship", message="Guardian relationship not found")
        await db.delete(link)
        await db.flush()


async def get_student_fresh(db: AsyncSession, student_id: int) -> Student:
    """Reload a student so its guardian links reflect the latest flush."""
    result = await db.execute(
        select(Student)
        .where(Student.id == student_id)
        .execution_options(populate_existing=True)
    )
    student = result.scalar_one_or_none()
    if student is None:
        raise ResourceNotFoundError("Student", student_id, message="Student not found")
    return student
