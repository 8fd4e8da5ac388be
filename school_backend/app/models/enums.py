"""
Enumerations shared by models and schemas.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.
    
    Roles:
        ADMIN: Full access, including every write to financial records
        ACCOUNTANT: Read access to students, vouchers, payments and reports
    """
    ADMIN = "ADMIN"
    ACCOUNTANT = "ACCOUNTANT"


class ClassType(str, enum.Enum):
    SCHOOL = "SCHOOL"
    COLLEGE = "COLLEGE"


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FLAT = "FLAT"


class FeeItemType(str, enum.Enum):
    """
    Built-in fee voucher line types.
    
    Vouchers may also carry free-form custom types (e.g. ARREARS, TRANSPORT),
    so the item column itself is a plain string.
    """
    ADMISSION = "ADMISSION"
    MONTHLY = "MONTHLY"
    PAPER_FUND = "PAPER_FUND"
    DISCOUNT = "DISCOUNT"


class VoucherStatus(str, enum.Enum):
    """Derived from items and payments on every read, never stored."""
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class AdjustmentType(str, enum.Enum):
    BONUS = "BONUS"
    ADVANCE = "ADVANCE"


class CalcType(str, enum.Enum):
    FLAT = "FLAT"
    PERCENTAGE = "PERCENTAGE"
