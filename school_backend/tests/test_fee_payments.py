"""
Fee payment ledger: partial payments, overpayment guard and corrections.
"""

import pytest


@pytest.fixture
async def voucher(client, admin_headers, school):
    """February voucher of the seeded student, total 8500."""
    response = await client.post(
        "/v1/vouchers/generate",
        json={"student_id": school["student_id"], "month": "2024-02-01"},
        headers=admin_headers,
    )
    return response.json()["data"]


async def pay(client, headers, voucher_id, amount, **extra):
    return await client.post(
        "/v1/fees/payment",
        json={"voucher_id": voucher_id, "amount": amount, **extra},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_partial_then_full_payment(client, admin_headers, voucher):
    first = await pay(client, admin_headers, voucher["voucher_id"], 3000, payment_date="2024-02-05")
    
    assert first.status_code == 201
    receipt = first.json()["data"]
    assert receipt["payment"]["amount"] == 3000.0
    assert receipt["payment"]["payment_date"] == "2024-02-05"
    assert receipt["voucher_status"] == {
        "voucher_id": voucher["voucher_id"],
        "total_fee": 8500.0,
        "paid_amount": 3000.0,
        "due_amount": 5500.0,
        "status": "PARTIAL",
    }
    
    second = await pay(client, admin_headers, voucher["voucher_id"], 5500)
    assert second.status_code == 201
    assert second.json()["data"]["voucher_status"]["status"] == "PAID"
    assert second.json()["data"]["voucher_status"]["due_amount"] == 0.0


@pytest.mark.asyncio
async def test_overpayment_rejected_without_writing(client, admin_headers, voucher):
    await pay(client, admin_headers, voucher["voucher_id"], 8000)
    
    response = await pay(client, admin_headers, voucher["voucher_id"], 600)
    
    assert response.status_code == 400
    assert response.json()["message"] == "Payment amount (600.00) exceeds due amount (500.00)"
    
    payments = await client.get(f"/v1/fees/voucher/{voucher['voucher_id']}/payments", headers=admin_headers)
    assert [p["amount"] for p in payments.json()["data"]] == [8000.0]


@pytest.mark.asyncio
async def test_non_positive_amount_rejected(client, admin_headers, voucher):
    response = await pay(client, admin_headers, voucher["voucher_id"], 0)
    
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_payment_on_unknown_voucher(client, admin_headers, school):
    response = await pay(client, admin_headers, 9999, 100)
    
    assert response.status_code == 404
    assert response.json()["message"] == "Voucher not found"


@pytest.mark.asyncio
async def test_deleting_payment_reopens_voucher(client, admin_headers, voucher):
    """Status is derived, so removing a payment moves the voucher back."""
    receipt = (await pay(client, admin_headers, voucher["voucher_id"], 8500)).json()["data"]
    assert receipt["voucher_status"]["status"] == "PAID"
    
    response = await client.delete(f"/v1/fees/payment/{receipt['payment']['id']}", headers=admin_headers)
    
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "UNPAID"
    assert response.json()["data"]["due_amount"] == 8500.0


@pytest.mark.asyncio
async def test_accountant_reads_but_cannot_pay(client, admin_headers, accountant_headers, voucher):
    refused = await pay(client, accountant_headers, voucher["voucher_id"], 100)
    assert refused.status_code == 403
    
    await pay(client, admin_headers, voucher["voucher_id"], 100)
    listing = await client.get("/v1/fees/payments", headers=accountant_headers)
    
    assert listing.status_code == 200
    assert listing.json()["pagination"]["total"] == 1
    row = listing.json()["data"][0]
    assert row["student_name"] == "Student 1"
    assert row["month"] == "2024-02-01"
    assert row["class_name"] == "Class 5"
