from unittest.mock import AsyncMock

import anyio
import pytest

from auth import generate_token
from realtime import Notifier, user_room


@pytest.fixture
def notifier(settings, db):
    server = Notifier(settings, db)
    server.sio.enter_room = AsyncMock()
    return server


def test_socketio_answers_under_ws(client):
    res = client.get("/ws/socket.io/", params={"EIO": 4, "transport": "polling"})
    assert res.status_code == 200
    assert res.text.startswith("0")
    assert '"sid"' in res.text


def test_connect_without_token_is_refused(notifier):
    assert anyio.run(notifier.connect, "sid-1", {}, None) is False
    assert anyio.run(notifier.connect, "sid-1", {}, {}) is False
    notifier.sio.enter_room.assert_not_called()


def test_connect_with_bad_token_is_refused(settings, notifier):
    assert anyio.run(notifier.connect, "sid-1", {}, {"token": "not-a-jwt"}) is False
    forged = generate_token("64b000000000000000000000", settings.model_copy(update={"jwt_secret": "other"}))
    assert anyio.run(notifier.connect, "sid-1", {}, {"token": forged}) is False
    notifier.sio.enter_room.assert_not_called()


def test_connect_for_deleted_user_is_refused(settings, notifier):
    token = generate_token("64b000000000000000000000", settings)
    assert anyio.run(notifier.connect, "sid-1", {}, {"token": token}) is False


def test_connect_joins_user_room(notifier, student):
    student_user, _ = student
    assert anyio.run(notifier.connect, "sid-1", {}, {"token": student_user["token"]}) is True
    notifier.sio.enter_room.assert_awaited_once_with("sid-1", user_room(student_user["_id"]))


def test_routes_emit_through_real_server(client, teacher, student, make_class):
    _, headers = teacher
    student_user, _ = student
    cls = make_class(headers)
    res = client.post("/api/payments", json={
        "studentId": student_user["_id"], "classId": cls["_id"],
        "amount": 1500, "feeMonth": "October", "feeYear": 2026,
    }, headers=headers)
    assert res.status_code == 201
