"""
Discounts, how vouchers pick them up, and what promotion does to them.
"""

import pytest

from school_backend.app.domain.enrollment import lifecycle


async def apply_discount(client, headers, school, discount_type="PERCENTAGE", value=10):
    return await client.post(
        "/v1/discounts",
        json={
            "student_id": school["student_id"],
            "class_id": school["class_id"],
            "discount_type": discount_type,
            "discount_value": value,
            "reason": "Sibling",
        },
        headers=headers,
    )


async def generate(client, headers, student_id, month):
    response = await client.post(
        "/v1/vouchers/generate", json={"student_id": student_id, "month": month}, headers=headers
    )
    assert response.status_code == 201
    return response.json()["data"]


def discount_line(voucher):
    return next((i["amount"] for i in voucher["items"] if i["item_type"] == "DISCOUNT"), None)


@pytest.mark.asyncio
async def test_percentage_discount_becomes_voucher_line(client, admin_headers, school):
    applied = await apply_discount(client, admin_headers, school, "PERCENTAGE", 10)
    assert applied.status_code == 201
    assert applied.json()["message"] == "Discount applied successfully"
    assert applied.json()["data"]["student_name"] == "Student 1"
    
    voucher = await generate(client, admin_headers, school["student_id"], "2024-02-01")
    
    assert discount_line(voucher) == -850.0
    assert voucher["total_fee"] == 7650.0


@pytest.mark.asyncio
async def test_reapplying_replaces_discount(client, admin_headers, school):
    await apply_discount(client, admin_headers, school, "PERCENTAGE", 10)
    
    replaced = await apply_discount(client, admin_headers, school, "FLAT", 1000)
    
    assert replaced.json()["message"] == "Discount updated successfully"
    listing = await client.get(f"/v1/discounts/student/{school['student_id']}", headers=admin_headers)
    assert len(listing.json()["data"]) == 1
    assert listing.json()["data"][0]["discount_type"] == "FLAT"
    
    voucher = await generate(client, admin_headers, school["student_id"], "2024-02-01")
    assert discount_line(voucher) == -1000.0


@pytest.mark.asyncio
async def test_discount_requires_current_class(client, admin_headers, school, next_class):
    response = await client.post(
        "/v1/discounts",
        json={
            "student_id": school["student_id"],
            "class_id": next_class["class_id"],
            "discount_type": "FLAT",
            "discount_value": 500,
        },
        headers=admin_headers,
    )
    
    assert response.status_code == 400
    assert response.json()["message"] == "Student is not currently enrolled in this class"


@pytest.mark.asyncio
async def test_percentage_over_hundred_rejected(client, admin_headers, school):
    response = await apply_discount(client, admin_headers, school, "PERCENTAGE", 120)
    
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_promotion_resets_discount_by_default(client, admin_headers, school, next_class):
    await apply_discount(client, admin_headers, school, "FLAT", 1000)
    
    promoted = await client.post(
        f"/v1/students/{school['student_id']}/promote",
        json={"class_id": next_class["class_id"], "section_id": next_class["section_id"], "promotion_date": "2024-04-01"},
        headers=admin_headers,
    )
    
    assert promoted.status_code == 200
    student = promoted.json()["data"]
    assert student["current_enrollment"]["class_id"] == next_class["class_id"]
    assert student["current_enrollment"]["start_date"] == "2024-04-01"
    
    discounts = await client.get(f"/v1/discounts/student/{school['student_id']}", headers=admin_headers)
    assert discounts.json()["data"] == []
    
    voucher = await generate(client, admin_headers, school["student_id"], "2024-04-01")
    assert discount_line(voucher) is None
    assert voucher["class_id"] == next_class["class_id"]
    # New enrollment, so admission is charged again
    assert voucher["total_fee"] == 10100.0


@pytest.mark.asyncio
async def test_promotion_can_keep_discount_history(client, admin_headers, school, next_class):
    await apply_discount(client, admin_headers, school, "FLAT", 1000)
    
    await client.post(
        f"/v1/students/{school['student_id']}/promote",
        json={
            "class_id": next_class["class_id"],
            "section_id": next_class["section_id"],
            "promotion_date": "2024-04-01",
            "reset_discount": False,
        },
        headers=admin_headers,
    )
    
    discounts = await client.get(f"/v1/discounts/student/{school['student_id']}", headers=admin_headers)
    assert [d["class_id"] for d in discounts.json()["data"]] == [school["class_id"]]
    
    voucher = await generate(client, admin_headers, school["student_id"], "2024-04-01")
    assert discount_line(voucher) is None


@pytest.mark.asyncio
async def test_removing_discount(client, admin_headers, school):
    discount = (await apply_discount(client, admin_headers, school)).json()["data"]
    
    removed = await client.delete(f"/v1/discounts/{discount['id']}", headers=admin_headers)
    
    assert removed.status_code == 200
    voucher = await generate(client, admin_headers, school["student_id"], "2024-02-01")
    assert discount_line(voucher) is None


@pytest.mark.asyncio
async def test_flat_discount_clamped_to_charges(client, admin_headers, school):
    applied = await apply_discount(client, admin_headers, school, "FLAT", 100000)
    assert applied.status_code == 201
    
    voucher = await generate(client, admin_headers, school["student_id"], "2024-02-01")
    
    assert discount_line(voucher) == -8500.0
    assert voucher["total_fee"] == 0.0
    assert voucher["status"] == "PAID"


@pytest.mark.asyncio
async def test_bulk_generation_applies_each_students_discount(client, admin_headers, school_factory):
    school = await school_factory(students=2)
    discounted, full_price = school["student_ids"]
    await apply_discount(
        client, admin_headers, {"student_id": discounted, "class_id": school["class_id"]}, "PERCENTAGE", 10
    )
    
    response = await client.post(
        "/v1/vouchers/generate-bulk",
        json={"class_id": school["class_id"], "month": "2024-02-01"},
        headers=admin_headers,
    )
    
    assert response.status_code == 200
    generated = {entry["student_id"]: entry for entry in response.json()["data"]["details"]["generated"]}
    assert generated[discounted]["total_fee"] == 7650.0
    assert generated[full_price]["total_fee"] == 8500.0
    
    voucher = (await client.get(
        f"/v1/vouchers/{generated[discounted]['voucher_id']}", headers=admin_headers
    )).json()["data"]
    assert discount_line(voucher) == -850.0
    other = (await client.get(
        f"/v1/vouchers/{generated[full_price]['voucher_id']}", headers=admin_headers
    )).json()["data"]
    assert discount_line(other) is None


@pytest.mark.asyncio
async def test_promotion_locks_student_before_reading_enrollment(client, admin_headers, school, next_class, mocker):
    calls = []
    load_student = lifecycle.get_student
    load_enrollment = lifecycle.get_open_enrollment
    
    async def tracked_student(db, student_id, lock=False):
        calls.append(("student", lock))
        return await load_student(db, student_id, lock)
    
    async def tracked_enrollment(db, student_id):
        calls.append(("enrollment", None))
        return await load_enrollment(db, student_id)
    
    mocker.patch.object(lifecycle, "get_student", new=tracked_student)
    mocker.patch.object(lifecycle, "get_open_enrollment", new=tracked_enrollment)
    
    promoted = await client.post(
        f"/v1/students/{school['student_id']}/promote",
        json={"class_id": next_class["class_id"], "section_id": next_class["section_id"], "promotion_date": "2024-04-01"},
        headers=admin_headers,
    )
    
    assert promoted.status_code == 200
    assert calls[:2] == [("student", True), ("enrollment", None)]
