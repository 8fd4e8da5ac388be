"""
Student, guardian and enrollment schemas.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from school_backend.app.models.enrollment import Enrollment

CNIC_PATTERN = r"^\d{13}$"


class GuardianCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    cnic: Optional[str] = Field(None, pattern=CNIC_PATTERN, description="13 digits, no dashes")
    phone: Optional[str] = Field(None, max_length=30)
    occupation: Optional[str] = Field(None, max_length=100)


class GuardianUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    cnic: Optional[str] = Field(None, pattern=CNIC_PATTERN)
    phone: Optional[str] = Field(None, max_length=30)
    occupation: Optional[str] = Field(None, max_length=100)


class GuardianResponse(BaseModel):
    id: int
    name: str
    cnic: Optional[str]
    phone: Optional[str]
    occupation: Optional[str]
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class StudentGuardianIn(BaseModel):
    """Link an existing guardian by id or CNIC, or describe a new one."""
    guardian_id: Optional[int] = Field(None, gt=0)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    cnic: Optional[str] = Field(None, pattern=CNIC_PATTERN)
    phone: Optional[str] = Field(None, max_length=30)
    occupation: Optional[str] = Field(None, max_length=100)
    relation: Optional[str] = Field(None, max_length=50)


class LinkedGuardian(GuardianResponse):
    relation: Optional[str] = None


class EnrollmentIn(BaseModel):
    class_id: int = Field(..., gt=0)
    section_id: int = Field(..., gt=0)
    start_date: Optional[date] = None


class StudentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    roll_no: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    bay_form: Optional[str] = Field(None, max_length=30)
    caste: Optional[str] = Field(None, max_length=100)
    previous_school: Optional[str] = Field(None, max_length=200)
    guardians: List[StudentGuardianIn] = Field(default_factory=list)
    enrollment: Optional[EnrollmentIn] = None
    
    def student_fields(self) -> dict:
        return self.model_dump(exclude={"guardians", "enrollment"})


class StudentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    roll_no: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    bay_form: Optional[str] = Field(None, max_length=30)
    caste: Optional[str] = Field(None, max_length=100)
    previous_school: Optional[str] = Field(None, max_length=200)


class EnrollRequest(EnrollmentIn):
    pass


class WithdrawRequest(BaseModel):
    end_date: Optional[date] = None


class TransferRequest(BaseModel):
    class_id: int = Field(..., gt=0)
    section_id: int = Field(..., gt=0)
    transfer_date: Optional[date] = None


class PromoteRequest(BaseModel):
    class_id: int = Field(..., gt=0)
    section_id: int = Field(..., gt=0)
    promotion_date: Optional[date] = None
    reset_discount: bool = True


class AddGuardianRequest(BaseModel):
    guardian_id: int = Field(..., gt=0)
    relation: Optional[str] = Field(None, max_length=50)


class EnrollmentResponse(BaseModel):
    id: int
    class_id: int
    class_name: str
    section_id: int
    section_name: str
    start_date: date
    end_date: Optional[date]
    
    @classmethod
    def from_enrollment(cls, enrollment: Enrollment) -> "EnrollmentResponse":
        return cls(
            id=enrollment.id,
            class_id=enrollment.class_id,
            class_name=enrollment.school_class.name,
            section_id=enrollment.section_id,
            section_name=enrollment.section.name,
            start_date=enrollment.start_date,
            end_date=enrollment.end_date,
        )


class StudentResponse(BaseModel):
    id: int
    name: str
    roll_no: Optional[str]
    phone: Optional[str]
    address: Optional[str]
    date_of_birth: Optional[date]
    bay_form: Optional[str]
    caste: Optional[str]
    previous_school: Optional[str]
    is_active: bool
    is_expelled: bool
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class StudentListItem(StudentResponse):
    current_enrollment: Optional[EnrollmentResponse] = None


class StudentDetailResponse(StudentListItem):
    guardians: List[LinkedGuardian] = []
    enrollment_history: List[EnrollmentResponse] = []
