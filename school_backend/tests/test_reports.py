"""
Fee and salary reports built from derived balances.
"""

import pytest


async def generate(client, headers, student_id, month):
    response = await client.post(
        "/v1/vouchers/generate", json={"student_id": student_id, "month": month}, headers=headers
    )
    return response.json()["data"]


async def pay(client, headers, voucher_id, amount):
    await client.post("/v1/fees/payment", json={"voucher_id": voucher_id, "amount": amount}, headers=headers)


@pytest.mark.asyncio
async def test_defaulters_sorted_by_due(client, admin_headers, accountant_headers, school_factory):
    school = await school_factory(students=3)
    first, second, third = school["student_ids"]
    
    v1 = await generate(client, admin_headers, first, "2024-02-01")
    v2 = await generate(client, admin_headers, second, "2024-02-01")
    v3 = await generate(client, admin_headers, third, "2024-02-01")
    await pay(client, admin_headers, v1["voucher_id"], 8500)
    await pay(client, admin_headers, v2["voucher_id"], 8000)
    await pay(client, admin_headers, v3["voucher_id"], 1000)
    
    response = await client.get("/v1/fees/defaulters", headers=accountant_headers)
    
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["summary"] == {"total_defaulters": 2, "total_due_amount": 8000.0}
    assert [d["student_id"] for d in data["defaulters"]] == [third, second]
    assert data["defaulters"][0]["due_amount"] == 7500.0
    
    filtered = await client.get("/v1/fees/defaulters", params={"min_due_amount": 1000}, headers=accountant_headers)
    assert [d["student_id"] for d in filtered.json()["data"]["defaulters"]] == [third]


@pytest.mark.asyncio
async def test_withdrawn_students_are_not_defaulters(client, admin_headers, school):
    await generate(client, admin_headers, school["student_id"], "2024-02-01")
    await client.post(
        f"/v1/students/{school['student_id']}/withdraw", json={"end_date": "2024-03-31"}, headers=admin_headers
    )
    
    response = await client.get("/v1/fees/defaulters", headers=admin_headers)
    
    assert response.json()["data"]["defaulters"] == []


@pytest.mark.asyncio
async def test_student_history_and_due(client, admin_headers, school):
    february = await generate(client, admin_headers, school["student_id"], "2024-02-01")
    await generate(client, admin_headers, school["student_id"], "2024-03-01")
    await pay(client, admin_headers, february["voucher_id"], 500)
    
    history = (await client.get(f"/v1/fees/student/{school['student_id']}", headers=admin_headers)).json()["data"]
    assert history["summary"]["total_vouchers"] == 2
    assert history["summary"]["partial_vouchers"] == 1
    assert history["summary"]["unpaid_vouchers"] == 1
    assert history["summary"]["total_fee"] == 12000.0
    assert history["summary"]["total_due"] == 11500.0
    
    due = (await client.get(f"/v1/fees/student/{school['student_id']}/due", headers=admin_headers)).json()["data"]
    assert due == {
        "student_id": school["student_id"],
        "student_name": "Student 1",
        "pending_vouchers": 2,
        "total_due": 11500.0,
        "oldest_due_month": "2024-02-01",
    }


@pytest.mark.asyncio
async def test_fee_stats_collection_rate(client, admin_headers, school):
    february = await generate(client, admin_headers, school["student_id"], "2024-02-01")
    await pay(client, admin_headers, february["voucher_id"], 4250)
    
    stats = (await client.get("/v1/fees/stats", headers=admin_headers)).json()["data"]
    
    assert stats["total_vouchers"] == 1
    assert stats["partial_vouchers"] == 1
    assert stats["total_collected"] == 4250.0
    assert stats["total_payments"] == 1
    assert stats["collection_rate"] == 50.0


@pytest.mark.asyncio
async def test_salary_stats(client, admin_headers, faculty_member):
    created = await client.post(
        "/v1/salaries/generate", json={"faculty_id": faculty_member.id, "month": "2024-02-01"}, headers=admin_headers
    )
    voucher_id = created.json()["data"]["voucher_id"]
    await client.post("/v1/salaries/payment", json={"voucher_id": voucher_id, "amount": 10000}, headers=admin_headers)
    
    stats = (await client.get("/v1/salaries/stats", params={"month": "2024-02-01"}, headers=admin_headers)).json()["data"]
    
    assert stats["total_vouchers"] == 1
    assert stats["partial_vouchers"] == 1
    assert stats["total_net_salary"] == 50000.0
    assert stats["total_due"] == 40000.0
