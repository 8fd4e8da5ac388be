"""
Faculty salary vouchers: generation, adjustments and payments.
"""

import pytest


async def generate(client, headers, faculty_id, month="2024-02-01", adjustments=()):
    return await client.post(
        "/v1/salaries/generate",
        json={"faculty_id": faculty_id, "month": month, "adjustments": list(adjustments)},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_generate_with_adjustments(client, admin_headers, faculty_member):
    response = await generate(client, admin_headers, faculty_member.id, adjustments=[
        {"type": "BONUS", "amount": 10, "calc_type": "PERCENTAGE"},
        {"type": "ADVANCE", "amount": 2000},
    ])
    
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["base_salary"] == 50000.0
    assert data["net_salary"] == 53000.0
    assert [a["calculated_amount"] for a in data["adjustments"]] == [5000.0, 2000.0]
    assert data["status"] == "UNPAID"


@pytest.mark.asyncio
async def test_salary_duplicate_and_inactive(client, admin_headers, faculty_member):
    assert (await generate(client, admin_headers, faculty_member.id)).status_code == 201
    assert (await generate(client, admin_headers, faculty_member.id, "2024-02-15")).status_code == 409
    
    await client.put(f"/v1/faculty/{faculty_member.id}/deactivate", headers=admin_headers)
    
    response = await generate(client, admin_headers, faculty_member.id, "2024-03-01")
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot generate salary for inactive faculty member"


@pytest.mark.asyncio
async def test_salary_structure_versions_apply_by_month(client, admin_headers, faculty_member):
    raised = await client.put(
        f"/v1/faculty/{faculty_member.id}/salary",
        json={"base_salary": 55000, "effective_from": "2024-07-01"},
        headers=admin_headers,
    )
    assert raised.status_code == 200
    
    june = (await generate(client, admin_headers, faculty_member.id, "2024-06-01")).json()["data"]
    july = (await generate(client, admin_headers, faculty_member.id, "2024-07-01")).json()["data"]
    
    assert june["base_salary"] == 50000.0
    assert july["base_salary"] == 55000.0
    
    missing = await generate(client, admin_headers, faculty_member.id, "2023-12-01")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_payments_and_adjustment_barrier(client, admin_headers, faculty_member):
    voucher = (await generate(client, admin_headers, faculty_member.id)).json()["data"]
    
    bonus = await client.post(
        f"/v1/salaries/voucher/{voucher['voucher_id']}/adjustment",
        json={"type": "BONUS", "amount": 1500},
        headers=admin_headers,
    )
    assert bonus.json()["data"]["net_salary"] == 51500.0
    
    paid = await client.post(
        "/v1/salaries/payment", json={"voucher_id": voucher["voucher_id"], "amount": 20000}, headers=admin_headers
    )
    assert paid.status_code == 201
    assert paid.json()["data"]["voucher_status"]["status"] == "PARTIAL"
    assert paid.json()["data"]["voucher_status"]["due_amount"] == 31500.0
    
    refused = await client.post(
        f"/v1/salaries/voucher/{voucher['voucher_id']}/adjustment",
        json={"type": "ADVANCE", "amount": 500},
        headers=admin_headers,
    )
    assert refused.status_code == 400
    
    over = await client.post(
        "/v1/salaries/payment", json={"voucher_id": voucher["voucher_id"], "amount": 31500.01}, headers=admin_headers
    )
    assert over.status_code == 400
    
    rest = await client.post(
        "/v1/salaries/payment", json={"voucher_id": voucher["voucher_id"], "amount": 31500}, headers=admin_headers
    )
    assert rest.json()["data"]["voucher_status"]["status"] == "PAID"
    
    blocked = await client.delete(f"/v1/salaries/voucher/{voucher['voucher_id']}", headers=admin_headers)
    assert blocked.status_code == 400


@pytest.mark.asyncio
async def test_bulk_salary_generation(client, admin_headers, faculty_member):
    other = await client.post(
        "/v1/faculty",
        json={"name": "Bilal Ahmed", "role": "Clerk", "base_salary": 30000, "effective_from": "2024-01-01"},
        headers=admin_headers,
    )
    assert other.status_code == 201
    await generate(client, admin_headers, faculty_member.id)
    
    response = await client.post("/v1/salaries/generate-bulk", json={"month": "2024-02-01"}, headers=admin_headers)
    
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["summary"] == {"total": 2, "generated": 1, "skipped": 1, "failed": 0}
    assert data["details"]["generated"][0]["faculty_name"] == "Bilal Ahmed"
    assert data["details"]["generated"][0]["net_salary"] == 30000.0


@pytest.mark.asyncio
async def test_unpaid_and_status_filter(client, admin_headers, accountant_headers, faculty_member):
    february = (await generate(client, admin_headers, faculty_member.id, "2024-02-01")).json()["data"]
    await generate(client, admin_headers, faculty_member.id, "2024-03-01")
    await client.post(
        "/v1/salaries/payment", json={"voucher_id": february["voucher_id"], "amount": 50000}, headers=admin_headers
    )
    
    unpaid = await client.get("/v1/salaries/unpaid", headers=accountant_headers)
    assert unpaid.json()["data"]["total_unpaid"] == 1
    assert unpaid.json()["data"]["total_due"] == 50000.0
    
    paid = await client.get("/v1/salaries/vouchers", params={"status": "PAID"}, headers=accountant_headers)
    assert [v["voucher_id"] for v in paid.json()["data"]] == [february["voucher_id"]]


@pytest.mark.asyncio
async def test_raise_starting_mid_month_pays_that_month(client, admin_headers, faculty_member):
    await client.put(
        f"/v1/faculty/{faculty_member.id}/salary",
        json={"base_salary": 60000, "effective_from": "2024-05-15"},
        headers=admin_headers,
    )
    
    may = await generate(client, admin_headers, faculty_member.id, "2024-05-01")
    
    assert may.status_code == 201
    assert may.json()["data"]["base_salary"] == 60000.0
    assert may.json()["data"]["month"] == "2024-05-01"
