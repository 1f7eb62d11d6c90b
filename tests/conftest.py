from unittest.mock import MagicMock

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from media import MediaRelay


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", s3_bucket="test-bucket", s3_prefix="", environment="development")


@pytest.fixture
def db():
    return mongomock.MongoClient()["tutordesk_test"]


@pytest.fixture
def s3():
    return MagicMock()


@pytest.fixture
def media(s3):
    return MediaRelay(bucket="test-bucket", base_url="https://cdn.example.com", client=s3)


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def client(settings, db, media, notifier):
    app = create_app(settings=settings, db=db, media=media, notifier=notifier)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(client):
    """Register and log in a user; returns (user, auth headers)."""
    counter = {"n": 0}

    def _make(role="student", name=None):
        counter["n"] += 1
        email = f"{role}{counter['n']}@example.com"
        body = {"name": name or f"{role.title()} {counter['n']}", "email": email, "password": "secret123", "role": role}
        res = client.post("/api/users/register", json=body)
        assert res.status_code == 201, res.text
        res = client.post("/api/users/login", json={"email": email, "password": "secret123"})
        assert res.status_code == 200, res.text
        user = res.json()
        return user, {"Authorization": f"Bearer {user['token']}"}

    return _make


@pytest.fixture
def teacher(make_user):
    return make_user("teacher")


@pytest.fixture
def student(make_user):
    return make_user("student")


@pytest.fixture
def make_class(client):
    def _make(headers, **fields):
        body = {"subject": "Maths", "grade": "Grade 10", "area": "Colombo", "time": "Mon 4pm", "price": 2500}
        body.update(fields)
        res = client.post("/api/classes", json=body, headers=headers)
        assert res.status_code == 201, res.text
        return res.json()

    return _make
