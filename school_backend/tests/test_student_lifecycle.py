"""
Student records and the enrollment ledger: enroll, withdraw, transfer,
expel and guardians.
"""

import pytest


@pytest.mark.asyncio
async def test_create_student_with_guardian_and_enrollment(client, admin_headers, school):
    response = await client.post(
        "/v1/students",
        json={
            "name": "Hamza Ali",
            "roll_no": "R-100",
            "guardians": [{"name": "Ali Raza", "cnic": "3520212345671", "phone": "03001234567", "relation": "Father"}],
            "enrollment": {"class_id": school["class_id"], "section_id": school["section_id"], "start_date": "2024-03-01"},
        },
        headers=admin_headers,
    )
    
    assert response.status_code == 201
    student = response.json()["data"]
    assert student["is_active"] is True
    assert student["is_expelled"] is False
    assert student["guardians"][0]["name"] == "Ali Raza"
    assert student["guardians"][0]["relation"] == "Father"
    assert student["current_enrollment"]["section_name"] == "A"
    assert len(student["enrollment_history"]) == 1


@pytest.mark.asyncio
async def test_duplicate_roll_number_conflicts(client, admin_headers, school):
    response = await client.post("/v1/students", json={"name": "Copy", "roll_no": "R-001"}, headers=admin_headers)
    
    assert response.status_code == 409
    assert response.json()["message"] == "Roll number already exists"


@pytest.mark.asyncio
async def test_enroll_twice_rejected(client, admin_headers, school):
    response = await client.post(
        f"/v1/students/{school['student_id']}/enroll",
        json={"class_id": school["class_id"], "section_id": school["other_section_id"]},
        headers=admin_headers,
    )
    
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_section_must_belong_to_class(client, admin_headers, school, next_class):
    await client.post(
        f"/v1/students/{school['student_id']}/withdraw", json={"end_date": "2024-03-31"}, headers=admin_headers
    )
    
    response = await client.post(
        f"/v1/students/{school['student_id']}/enroll",
        json={"class_id": next_class["class_id"], "section_id": school["section_id"]},
        headers=admin_headers,
    )
    
    assert response.status_code == 404
    assert response.json()["message"] == "Section not found or does not belong to the specified class"


@pytest.mark.asyncio
async def test_withdraw_then_reenroll_keeps_history(client, admin_headers, school):
    withdrawn = await client.post(
        f"/v1/students/{school['student_id']}/withdraw", json={"end_date": "2024-03-31"}, headers=admin_headers
    )
    assert withdrawn.status_code == 200
    assert withdrawn.json()["data"]["current_enrollment"] is None
    
    enrolled = await client.post(
        f"/v1/students/{school['student_id']}/enroll",
        json={"class_id": school["class_id"], "section_id": school["other_section_id"], "start_date": "2024-05-01"},
        headers=admin_headers,
    )
    
    assert enrolled.status_code == 201
    data = enrolled.json()["data"]
    assert data["current_enrollment"]["section_name"] == "B"
    assert [e["end_date"] for e in data["enrollment_history"]] == [None, "2024-03-31"]


@pytest.mark.asyncio
async def test_transfer_closes_and_opens_on_same_day(client, admin_headers, school):
    response = await client.post(
        f"/v1/students/{school['student_id']}/transfer",
        json={"class_id": school["class_id"], "section_id": school["other_section_id"], "transfer_date": "2024-06-01"},
        headers=admin_headers,
    )
    
    assert response.status_code == 200
    history = response.json()["data"]["enrollment_history"]
    assert history[0]["start_date"] == "2024-06-01"
    assert history[0]["end_date"] is None
    assert history[1]["end_date"] == "2024-06-01"


@pytest.mark.asyncio
async def test_new_enrollment_is_billed_admission_again(client, admin_headers, school):
    """ADMISSION belongs to the first voucher of each enrollment, not of the student."""
    await client.post(
        "/v1/vouchers/generate", json={"student_id": school["student_id"], "month": "2024-02-01"}, headers=admin_headers
    )
    await client.post(
        f"/v1/students/{school['student_id']}/transfer",
        json={"class_id": school["class_id"], "section_id": school["other_section_id"], "transfer_date": "2024-03-01"},
        headers=admin_headers,
    )
    
    response = await client.post(
        "/v1/vouchers/generate", json={"student_id": school["student_id"], "month": "2024-03-01"}, headers=admin_headers
    )
    
    assert response.status_code == 201
    assert {i["item_type"] for i in response.json()["data"]["items"]} == {"ADMISSION", "MONTHLY", "PAPER_FUND"}


@pytest.mark.asyncio
async def test_expel_and_clear(client, admin_headers, school):
    expelled = await client.post(f"/v1/students/{school['student_id']}/expel", headers=admin_headers)
    
    assert expelled.status_code == 200
    data = expelled.json()["data"]
    assert (data["is_active"], data["is_expelled"]) == (False, True)
    assert data["current_enrollment"] is None
    
    refused = await client.post(f"/v1/students/{school['student_id']}/activate", headers=admin_headers)
    assert refused.status_code == 400
    
    cleared = await client.post(f"/v1/students/{school['student_id']}/clear-expulsion", headers=admin_headers)
    assert (cleared.json()["data"]["is_active"], cleared.json()["data"]["is_expelled"]) == (False, False)
    
    activated = await client.post(f"/v1/students/{school['student_id']}/activate", headers=admin_headers)
    assert activated.json()["data"]["is_active"] is True


@pytest.mark.asyncio
async def test_expelled_student_cannot_enroll(client, admin_headers, school):
    await client.post(f"/v1/students/{school['student_id']}/expel", headers=admin_headers)
    
    response = await client.post(
        f"/v1/students/{school['student_id']}/enroll",
        json={"class_id": school["class_id"], "section_id": school["section_id"]},
        headers=admin_headers,
    )
    
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot enroll expelled student"


@pytest.mark.asyncio
async def test_link_and_unlink_guardian(client, admin_headers, school):
    guardian = await client.post(
        "/v1/guardians", json={"name": "Sana Bibi", "cnic": "3520298765432"}, headers=admin_headers
    )
    assert guardian.status_code == 201
    guardian_id = guardian.json()["data"]["id"]
    
    linked = await client.post(
        f"/v1/students/{school['student_id']}/guardians",
        json={"guardian_id": guardian_id, "relation": "Mother"},
        headers=admin_headers,
    )
    assert linked.status_code == 201
    assert linked.json()["data"]["guardians"][0]["relation"] == "Mother"
    
    again = await client.post(
        f"/v1/students/{school['student_id']}/guardians",
        json={"guardian_id": guardian_id},
        headers=admin_headers,
    )
    assert again.status_code == 409
    
    blocked = await client.delete(f"/v1/guardians/{guardian_id}", headers=admin_headers)
    assert blocked.status_code == 400
    
    unlinked = await client.delete(f"/v1/students/{school['student_id']}/guardians/{guardian_id}", headers=admin_headers)
    assert unlinked.json()["data"]["guardians"] == []


@pytest.mark.asyncio
async def test_list_students_by_section(client, accountant_headers, school_factory):
    school = await school_factory(students=3)
    
    response = await client.get(
        "/v1/students", params={"section_id": school["section_id"], "limit": 2}, headers=accountant_headers
    )
    
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert body["data"][0]["current_enrollment"]["class_name"] == "Class 5"
