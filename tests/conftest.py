import mongomock
import pytest
from fastapi.testclient import TestClient
from passlib.hash import bcrypt as bcrypt_hasher

import database
from main import app

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password"


@pytest.fixture
def db():
    database.close_db()
    handle = database.init_db(client=mongomock.MongoClient())
    yield handle
    database.close_db()


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


def make_user(db, email, password, role="user", username="someone"):
    return database.create_document(db, "user", {
        "username": username,
        "email": email,
        "passwordHash": bcrypt_hasher.using(rounds=4).hash(password),
        "role": role,
    })


@pytest.fixture
def admin_headers(client, db):
    make_user(db, ADMIN_EMAIL, ADMIN_PASSWORD, role="admin", username="admin")
    res = client.post("/api/auth", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['data']['token']}"}


@pytest.fixture
def create_content(client, admin_headers):
    def _create(**overrides):
        payload = {"title": "Hello", "type": "Article", "category": "python"}
        payload.update(overrides)
        res = client.post("/api/content", json=payload, headers=admin_headers)
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _create
