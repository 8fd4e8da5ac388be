"""
Student Discount API Endpoints.

One discount per (student, class). Applying a discount for a pair that
already has one updates it in place. The discount is turned into a DISCOUNT
line when a voucher is generated for that class.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.exceptions import InvalidStateError, ResourceNotFoundError, ValidationError
from school_backend.app.core.guards import require_admin, require_staff
from school_backend.app.db.session import get_db
from school_backend.app.domain.enrollment.lifecycle import get_open_enrollment, get_student
from school_backend.app.domain.vouchers.discounts import get_discount
from school_backend.app.models.discount import Discount
from school_backend.app.models.enums import DiscountType
from school_backend.app.models.school_class import SchoolClass
from school_backend.app.models.student import Student
from school_backend.app.schemas.common import ApiResponse, PaginatedResponse, ok, paginated
from school_backend.app.schemas.discount import DiscountCreate, DiscountResponse, DiscountUpdate
from school_backend.app.services.audit import AuditAction, log_user_action

router = APIRouter(prefix="/discounts", tags=["Discounts"])


def _listing_query():
    return (
        select(Discount, Student.name, SchoolClass.name)
        .join(Student, Student.id == Discount.student_id)
        .join(SchoolClass, SchoolClass.id == Discount.class_id)
    )


def _to_response(discount: Discount, student_name: Optional[str] = None, class_name: Optional[str] = None) -> DiscountResponse:
    response = DiscountResponse.model_validate(discount)
    response.student_name = student_name
    response.class_name = class_name
    return response


async def _load(db: AsyncSession, discount_id: int) -> DiscountResponse:
    row = (await db.execute(_listing_query().where(Discount.id == discount_id))).one_or_none()
    if row is None:
        raise ResourceNotFoundError("Discount", discount_id, message="Discount not found")
    return _to_response(*row)


@router.post("", response_model=ApiResponse[DiscountResponse], status_code=status.HTTP_201_CREATED)
async def apply_discount(
    payload: DiscountCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Apply a discount to a student for the class they are currently enrolled in.
    
    An existing discount for the same class is replaced.
    """
    await get_student(db, payload.student_id)
    if await db.get(SchoolClass, payload.class_id) is None:
        raise ResourceNotFoundError("Class", payload.class_id, message="Class not found")
    
    enrollment = await get_open_enrollment(db, payload.student_id)
    if enrollment is None or enrollment.class_id != payload.class_id:
        raise InvalidStateError("Student is not currently enrolled in this class")
    
    discount = await get_discount(db, payload.student_id, payload.class_id)
    created = discount is None
    if created:
        discount = Discount(student_id=payload.student_id, class_id=payload.class_id)
        db.add(discount)
    discount.discount_type = payload.discount_type
    discount.discount_value = payload.discount_value
    discount.reason = payload.reason
    discount.applied_by = current_user["user_id"]
    await db.flush()
    
    await log_user_action(
        db, current_user, AuditAction.DISCOUNT_APPLIED,
        entity_type="discount", entity_id=discount.id,
        metadata={
            "student_id": payload.student_id,
            "class_id": payload.class_id,
            "type": payload.discount_type.value,
            "value": float(payload.discount_value),
            "replaced": not created,
        }
    )
    await db.commit()
    
    return ok(
        await _load(db, discount.id),
        "Discount applied successfully" if created else "Discount updated successfully"
    )


@router.get("", response_model=PaginatedResponse[DiscountResponse])
async def list_discounts(
    class_id: Optional[int] = Query(None, gt=0),
    student_id: Optional[int] = Query(None, gt=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = _listing_query()
    if class_id:
        query = query.where(Discount.class_id == class_id)
    if student_id:
        query = query.where(Discount.student_id == student_id)
    
    count = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    rows = (await db.execute(
        query.order_by(Discount.created_at.desc(), Discount.id.desc()).offset((page - 1) * limit).limit(limit)
    )).all()
    
    return paginated([_to_response(*row) for row in rows], page, limit, count)


@router.get("/student/{student_id}", response_model=ApiResponse[List[DiscountResponse]])
async def student_discounts(
    student_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    await get_student(db, student_id)
    rows = (await db.execute(
        _listing_query().where(Discount.student_id == student_id).order_by(Discount.id)
    )).all()
    return ok([_to_response(*row) for row in rows])


@router.put("/{discount_id}", response_model=ApiResponse[DiscountResponse])
async def update_discount(
    discount_id: int,
    payload: DiscountUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    discount = await db.get(Discount, discount_id)
    if discount is None:
        raise ResourceNotFoundError("Discount", discount_id, message="Discount not found")
    
    update_data = payload.model_dump(exclude_unset=True)
    if not update_data:
        raise ValidationError("No fields to update")
    for field, value in update_data.items():
        setattr(discount, field, value)
    if discount.discount_type == DiscountType.PERCENTAGE and discount.discount_value > 100:
        raise ValidationError("Percentage discount cannot exceed 100")
    discount.applied_by = current_user["user_id"]
    await db.flush()
    
    await log_user_action(
        db, current_user, AuditAction.DISCOUNT_APPLIED,
        entity_type="discount", entity_id=discount.id,
        metadata={"updated_fields": list(update_data.keys())}
    )
    await db.commit()
    
    return ok(await _load(db, discount_id), "Discount updated successfully")


@router.delete("/{discount_id}", response_model=ApiResponse[None])
async def remove_discount(
    discount_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    discount = await db.get(Discount, discount_id)
    if discount is None:
        raise ResourceNotFoundError("Discount", discount_id, message="Discount not found")
    
    await log_user_action(
        db, current_user, AuditAction.DISCOUNT_REMOVED,
        entity_type="discount", entity_id=discount_id,
        metadata={"student_id": discount.student_id, "class_id": discount.class_id}
    )
    await db.delete(discount)
    await db.commit()
    
    return ok(None, "Discount removed successfully")
