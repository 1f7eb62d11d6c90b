def test_create_and_list_class(client, teacher, make_class):
    _, headers = teacher
    created = make_class(headers)
    assert created["subject"] == "Maths"
    assert created["students"] == []

    res = client.get("/api/classes", headers=headers)
    assert res.status_code == 200
    assert [c["_id"] for c in res.json()] == [created["_id"]]


def test_create_requires_subject_and_grade(client, teacher):
    _, headers = teacher
    res = client.post("/api/classes", json={"subject": "Maths"}, headers=headers)
    assert res.status_code == 400


def test_negative_price_rejected(client, teacher):
    _, headers = teacher
    res = client.post("/api/classes", json={"subject": "Maths", "grade": "10", "price": -1}, headers=headers)
    assert res.status_code == 400


def test_classes_are_scoped_to_owner(client, make_user, make_class):
    _, headers_a = make_user("teacher")
    _, headers_b = make_user("teacher")
    make_class(headers_a)

    res = client.get("/api/classes", headers=headers_b)
    assert res.json() == []


def test_students_cannot_manage_classes(client, student):
    _, headers = student
    res = client.post("/api/classes", json={"subject": "Maths", "grade": "10"}, headers=headers)
    assert res.status_code == 403


def test_update_applies_only_sent_fields(client, teacher, make_class):
    _, headers = teacher
    created = make_class(headers)

    res = client.put(f"/api/classes/{created['_id']}", json={"price": 0, "area": ""}, headers=headers)
    assert res.status_code == 200
    updated = res.json()
    assert updated["price"] == 0
    assert updated["area"] == ""
    assert updated["subject"] == "Maths"
    assert updated["time"] == "Mon 4pm"


def test_update_rejects_blank_subject(client, teacher, make_class):
    _, headers = teacher
    created = make_class(headers)
    res = client.put(f"/api/classes/{created['_id']}", json={"subject": ""}, headers=headers)
    assert res.status_code == 400


def test_update_by_other_teacher_is_forbidden(client, make_user, make_class):
    _, headers_a = make_user("teacher")
    _, headers_b = make_user("teacher")
    created = make_class(headers_a)

    res = client.put(f"/api/classes/{created['_id']}", json={"price": 1}, headers=headers_b)
    assert res.status_code == 403
    res = client.delete(f"/api/classes/{created['_id']}", headers=headers_b)
    assert res.status_code == 403


def test_missing_and_malformed_ids_are_not_found(client, teacher):
    _, headers = teacher
    res = client.put("/api/classes/64b000000000000000000000", json={"price": 1}, headers=headers)
    assert res.status_code == 404
    res = client.delete("/api/classes/not-an-id", headers=headers)
    assert res.status_code == 404
    assert res.json()["message"] == "Class not found"


def test_delete_class(client, teacher, make_class):
    _, headers = teacher
    created = make_class(headers)
    res = client.delete(f"/api/classes/{created['_id']}", headers=headers)
    assert res.status_code == 200
    assert client.get("/api/classes", headers=headers).json() == []
