"""Shared fixtures: in-memory MongoDB + FastAPI test client.

Every test gets a fresh mongomock database injected through the current_db
dependency, with the same indexes the service creates on startup.
"""

import os

# Never reach a real MongoDB from the test suite
os.environ["DATABASE_URL"] = ""
os.environ["MONGODB_URI"] = ""

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import current_db, ensure_indexes
from main import app


@pytest.fixture
def mongo_db():
    database = mongomock.MongoClient()["BookInventoryTest"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(mongo_db):
    app.dependency_overrides[current_db] = lambda: mongo_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(client):
    """Create a user through the API and return its id and credentials."""
    payload = {"email": "ada@example.com", "password": "s3cret!", "username": "ada"}
    resp = client.post("/createUser", json=payload)
    assert resp.status_code == 200
    return {"id": resp.json()["userId"], **payload}


@pytest.fixture
def bare_db():
    """A database that never went through startup, so it has no indexes."""
    return mongomock.MongoClient()["BookInventoryBare"]
