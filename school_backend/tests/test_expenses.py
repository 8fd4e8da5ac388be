"""
Expense records and their summaries.
"""

import pytest


async def add_expense(client, headers, title, amount, expense_date):
    response = await client.post(
        "/v1/expenses",
        json={"title": title, "amount": amount, "expense_date": expense_date},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["data"]


@pytest.mark.asyncio
async def test_expense_crud(client, admin_headers):
    expense = await add_expense(client, admin_headers, "Chalk", 450.5, "2024-02-03")
    assert expense["amount"] == 450.5
    
    updated = await client.put(f"/v1/expenses/{expense['id']}", json={"amount": 500}, headers=admin_headers)
    assert updated.json()["data"]["amount"] == 500.0
    assert updated.json()["data"]["title"] == "Chalk"
    
    deleted = await client.delete(f"/v1/expenses/{expense['id']}", headers=admin_headers)
    assert deleted.status_code == 200
    assert (await client.get(f"/v1/expenses/{expense['id']}", headers=admin_headers)).status_code == 404


@pytest.mark.asyncio
async def test_expense_amount_must_be_positive(client, admin_headers):
    response = await client.post(
        "/v1/expenses", json={"title": "Refund", "amount": -10, "expense_date": "2024-02-03"}, headers=admin_headers
    )
    
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_bulk_reports_invalid_rows(client, admin_headers):
    response = await client.post(
        "/v1/expenses/bulk",
        json={"expenses": [
            {"title": "Electricity", "amount": 12000, "expense_date": "2024-02-10"},
            {"title": "Broken", "amount": 0, "expense_date": "2024-02-10"},
            {"title": "Water", "amount": 800, "expense_date": "2024-02-11"},
        ]},
        headers=admin_headers,
    )
    
    assert response.status_code == 201
    data = response.json()["data"]
    assert [e["title"] for e in data["created"]] == ["Electricity", "Water"]
    assert data["failed"][0]["index"] == 1
    assert data["failed"][0]["title"] == "Broken"


@pytest.mark.asyncio
async def test_summary_and_filters(client, admin_headers, accountant_headers):
    await add_expense(client, admin_headers, "Paint", 3000, "2024-01-15")
    await add_expense(client, admin_headers, "Fans", 9000, "2024-02-01")
    await add_expense(client, admin_headers, "Paper", 1500, "2024-02-20")
    
    summary = (await client.get("/v1/expenses/summary", headers=accountant_headers)).json()["data"]
    assert summary["total_expenses"] == 3
    assert summary["total_amount"] == 13500.0
    assert summary["average_amount"] == 4500.0
    assert summary["min_amount"] == 1500.0
    assert summary["max_amount"] == 9000.0
    assert summary["monthly"] == [
        {"month": "2024-01", "count": 1, "total": 3000.0},
        {"month": "2024-02", "count": 2, "total": 10500.0},
    ]
    
    february = await client.get(
        "/v1/expenses", params={"from_date": "2024-02-01", "to_date": "2024-02-29"}, headers=accountant_headers
    )
    assert february.json()["pagination"]["total"] == 2
    
    top = await client.get("/v1/expenses/top", params={"limit": 1}, headers=accountant_headers)
    assert [e["title"] for e in top.json()["data"]] == ["Fans"]


@pytest.mark.asyncio
async def test_accountant_cannot_write_expenses(client, accountant_headers):
    response = await client.post(
        "/v1/expenses", json={"title": "Chalk", "amount": 100, "expense_date": "2024-02-03"}, headers=accountant_headers
    )
    
    assert response.status_code == 403
