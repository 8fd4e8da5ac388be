"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from school_backend.app.api.v1.endpoints import (
    auth, classes, sections, students, guardians, discounts,
    vouchers, fees, faculty, salaries, expenses
)

router = APIRouter()

# Authentication and staff accounts
router.include_router(auth.router)

# Reference data
router.include_router(classes.router)
router.include_router(sections.router)
router.include_router(guardians.router)
router.include_router(faculty.router)
router.include_router(expenses.router)

# Students and enrollment
router.include_router(students.router)
router.include_router(discounts.router)

# Fee vouchers, payments and reports
router.include_router(vouchers.router)
router.include_router(fees.router)

# Salary vouchers
router.include_router(salaries.router)
