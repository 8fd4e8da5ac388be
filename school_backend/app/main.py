"""
FastAPI Application Entry Point.

This is the main application file for the School Administration Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from school_backend.app.core.config import settings
from school_backend.app.api.v1.router import router as api_v1_router
from school_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from school_backend.app.core.redis_client import ping_redis
from school_backend.app.db.session import engine, Base
from school_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    integrity_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from school_backend.app.models.user import User
from school_backend.app.models.audit_log import AuditLog
from school_backend.app.models.school_class import SchoolClass, Section
from school_backend.app.models.fee_structure import FeeStructureVersion
from school_backend.app.models.student import Student, Guardian, StudentGuardian
from school_backend.app.models.enrollment import Enrollment
from school_backend.app.models.discount import Discount
from school_backend.app.models.fee_voucher import FeeVoucher, FeeVoucherItem, FeePayment
from school_backend.app.models.faculty import Faculty, SalaryStructureVersion
from school_backend.app.models.salary_voucher import SalaryVoucher, SalaryAdjustment, SalaryPayment
from school_backend.app.models.expense import Expense

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.
    
    Creates database tables on startup and disposes the pool on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Fee and salary voucher management for a school",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(IntegrityError, integrity_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.
    
    Returns:
        dict: Status, application information and Redis reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.
    
    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the School Administration Backend API",
        "docs": "/docs",
        "health": "/health",
    }
