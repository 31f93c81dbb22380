"""
Test configuration and fixtures: an in-memory Mongo (mongomock) injected
through the `get_db` dependency, plus seeded users and bearer headers.
"""
import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import get_db
from main import app, create_token


@pytest.fixture
def mongo():
    return mongomock.MongoClient()["civic_test"]


@pytest.fixture
def client(mongo):
    app.dependency_overrides[get_db] = lambda: mongo
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _insert_user(mongo, first_name, role, email):
    user = {
        "first_name": first_name,
        "last_name": "Tester",
        "email": email,
        "role": role,
        "is_active": True,
    }
    user["_id"] = mongo["user"].insert_one(user).inserted_id
    return user


@pytest.fixture
def citizen(mongo):
    return _insert_user(mongo, "Asha", "citizen", "asha@example.com")


@pytest.fixture
def other_citizen(mongo):
    return _insert_user(mongo, "Ravi", "citizen", "ravi@example.com")


@pytest.fixture
def employee(mongo):
    return _insert_user(mongo, "Meera", "employee", "meera@example.com")


@pytest.fixture
def admin(mongo):
    return _insert_user(mongo, "Admin", "admin", "admin@example.com")


def headers_for(user):
    return {"Authorization": f"Bearer {create_token(str(user['_id']), user['role'])}"}


@pytest.fixture
def report_payload():
    return {
        "title": "Pothole on Main Street",
        "description": "Deep pothole near the bus stop",
        "category": "road_issue",
        "priority": "high",
        "location": {"coordinates": [77.59, 12.97], "address": {"street": "Main St", "city": "Bengaluru"}},
    }


@pytest.fixture
def make_report(client, citizen, report_payload):
    def _make(**overrides):
        payload = {**report_payload, **overrides}
        response = client.post("/reports", json=payload, headers=headers_for(citizen))
        assert response.status_code == 201
        return response.json()["data"]["report"]
    return _make


@pytest.fixture
def assigned_report(mongo, make_report, employee):
    report = make_report()
    mongo["report"].update_one({"_id": ObjectId(report["id"])}, {"$set": {"assigned_to": str(employee["_id"])}})
    report["assigned_to"] = str(employee["_id"])
    return report


@pytest.fixture
def auth_headers():
    """Return a builder producing bearer headers for a seeded user."""
    return headers_for
