"""
Failure handling: every error leaves the API in the same envelope.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import IntegrityError

from school_backend.app.main import app
from school_backend.app.core.config import Settings
from school_backend.app.core.exceptions import (
    CHECK_VIOLATION,
    FOREIGN_KEY_VIOLATION,
    UNIQUE_VIOLATION,
    classify_integrity_error,
)
from school_backend.app.services.reports import ReportService


def integrity_error(message):
    return IntegrityError("INSERT ...", {}, Exception(message))


def test_classify_sqlite_messages():
    assert classify_integrity_error(integrity_error("UNIQUE constraint failed: fee_vouchers.month")) == UNIQUE_VIOLATION
    assert classify_integrity_error(integrity_error("FOREIGN KEY constraint failed")) == FOREIGN_KEY_VIOLATION
    assert classify_integrity_error(integrity_error("CHECK constraint failed: ck_x")) == CHECK_VIOLATION
    assert classify_integrity_error(integrity_error("something else")) is None


@pytest.mark.asyncio
async def test_validation_error_is_400(client, admin_headers):
    response = await client.post("/v1/vouchers/generate", json={"month": "not-a-date"}, headers=admin_headers)
    
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "ERR_VALIDATION"
    fields = {error["field"] for error in body["errors"]["errors"]}
    assert {"student_id", "month"} <= fields


@pytest.mark.asyncio
async def test_missing_token_is_rejected(client):
    response = await client.get("/v1/vouchers")
    
    assert response.status_code in (401, 403)
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_unknown_resource_envelope(client, admin_headers):
    response = await client.get("/v1/vouchers/4242", headers=admin_headers)
    
    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error_code": "ERR_NOT_FOUND_001",
        "message": "Voucher not found",
        "errors": {"resource": "Voucher", "id": 4242},
    }


@pytest.mark.asyncio
async def test_escaped_unique_violation_is_409(client, admin_headers, mocker):
    mocker.patch.object(
        ReportService, "get_fee_stats", side_effect=integrity_error("UNIQUE constraint failed: classes.name")
    )
    
    response = await client.get("/v1/fees/stats", headers=admin_headers)
    
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT"


@pytest.mark.asyncio
async def test_escaped_foreign_key_violation_is_400(client, admin_headers, mocker):
    mocker.patch.object(
        ReportService, "get_fee_stats", side_effect=integrity_error("FOREIGN KEY constraint failed")
    )
    
    response = await client.get("/v1/fees/stats", headers=admin_headers)
    
    assert response.status_code == 400
    assert response.json()["message"] == "Referenced record does not exist"


@pytest.mark.asyncio
async def test_unhandled_error_is_500_envelope(admin_headers, mocker):
    """Internal details never reach the client."""
    mocker.patch.object(ReportService, "get_fee_stats", side_effect=RuntimeError("db password is hunter2"))
    
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/v1/fees/stats", headers=admin_headers)
    
    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error_code": "ERR_INTERNAL_SERVER",
        "message": "An internal server error occurred",
        "errors": {},
    }


def test_debug_off_by_default(monkeypatch):
    """Debug mode would render tracebacks instead of the error envelope."""
    monkeypatch.delenv("DEBUG", raising=False)
    
    assert Settings(_env_file=None).debug is False
    assert app.debug is False

@pytest.mark.asyncio
async def test_health_reports_redis(client, redis_mock):
    response = await client.get("/health")
    assert response.json()["redis"] == "up"
    
    await redis_mock.aclose()
    response = await client.get("/health")
    assert response.json()["redis"] == "down"
