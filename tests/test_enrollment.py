def test_enroll_student(client, teacher, student, make_class):
    _, headers = teacher
    student_user, _ = student
    cls = make_class(headers)

    res = client.put(f"/api/classes/{cls['_id']}/enroll", json={"studentId": student_user["_id"]}, headers=headers)
    assert res.status_code == 200
    assert res.json()["student"]["email"] == student_user["email"]

    res = client.get(f"/api/classes/{cls['_id']}/students", headers=headers)
    assert [s["_id"] for s in res.json()] == [student_user["_id"]]
    assert set(res.json()[0]) == {"_id", "name", "email", "phone"}


def test_enroll_twice_conflicts(client, db, teacher, student, make_class):
    _, headers = teacher
    student_user, _ = student
    cls = make_class(headers)
    url = f"/api/classes/{cls['_id']}/enroll"

    assert client.put(url, json={"studentId": student_user["_id"]}, headers=headers).status_code == 200
    res = client.put(url, json={"studentId": student_user["_id"]}, headers=headers)
    assert res.status_code == 409

    res = client.get(f"/api/classes/{cls['_id']}/students", headers=headers)
    assert len(res.json()) == 1


def test_enroll_rejects_teacher_user(client, make_user, make_class):
    _, headers = make_user("teacher")
    other, _ = make_user("teacher")
    cls = make_class(headers)
    res = client.put(f"/api/classes/{cls['_id']}/enroll", json={"studentId": other["_id"]}, headers=headers)
    assert res.status_code == 400


def test_enroll_unknown_student_or_class(client, teacher, student, make_class):
    _, headers = teacher
    student_user, _ = student
    cls = make_class(headers)

    res = client.put(f"/api/classes/{cls['_id']}/enroll", json={"studentId": "64b000000000000000000000"}, headers=headers)
    assert res.status_code == 404
    res = client.put("/api/classes/64b000000000000000000000/enroll", json={"studentId": student_user["_id"]}, headers=headers)
    assert res.status_code == 404


def test_enroll_in_other_teachers_class_forbidden(client, make_user, student, make_class):
    _, headers_a = make_user("teacher")
    _, headers_b = make_user("teacher")
    student_user, _ = student
    cls = make_class(headers_a)
    res = client.put(f"/api/classes/{cls['_id']}/enroll", json={"studentId": student_user["_id"]}, headers=headers_b)
    assert res.status_code == 403


def test_unenroll_is_idempotent(client, teacher, student, make_class):
    _, headers = teacher
    student_user, _ = student
    cls = make_class(headers)
    body = {"studentId": student_user["_id"]}

    res = client.put(f"/api/classes/{cls['_id']}/unenroll", json=body, headers=headers)
    assert res.status_code == 200

    client.put(f"/api/classes/{cls['_id']}/enroll", json=body, headers=headers)
    res = client.put(f"/api/classes/{cls['_id']}/unenroll", json=body, headers=headers)
    assert res.status_code == 200
    assert client.get(f"/api/classes/{cls['_id']}/students", headers=headers).json() == []


def test_student_sees_own_classes(client, teacher, student, make_class):
    teacher_user, headers = teacher
    student_user, student_headers = student
    cls = make_class(headers, subject="Physics")
    make_class(headers, subject="Chemistry")
    client.put(f"/api/classes/{cls['_id']}/enroll", json={"studentId": student_user["_id"]}, headers=headers)

    res = client.get("/api/classes/myclasses", headers=student_headers)
    assert res.status_code == 200
    assert res.json() == [{
        "_id": cls["_id"],
        "subject": "Physics",
        "grade": "Grade 10",
        "time": "Mon 4pm",
        "teacher": {"_id": teacher_user["_id"], "name": teacher_user["name"]},
    }]
