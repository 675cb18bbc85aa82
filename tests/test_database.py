import pytest
from bson import ObjectId
from fastapi import HTTPException
from pymongo.errors import ServerSelectionTimeoutError

from database import (
    USERS,
    current_db,
    ensure_indexes,
    serialize,
    to_object_id,
    without_id,
)
from main import app


def test_to_object_id():
    oid = ObjectId()
    assert to_object_id(str(oid)) == oid
    assert to_object_id(oid) is oid
    for bad in ("", "123", "z" * 24, None):
        with pytest.raises(HTTPException) as exc:
            to_object_id(bad)
        assert exc.value.status_code == 400


def test_serialize_converts_nested_object_ids():
    oid, other = ObjectId(), ObjectId()
    doc = {"_id": oid, "refs": [other], "meta": {"owner": other}, "n": 1}
    assert serialize(doc) == {"_id": str(oid), "refs": [str(other)], "meta": {"owner": str(other)}, "n": 1}
    assert serialize([doc])[0]["_id"] == str(oid)


def test_without_id():
    assert without_id({"_id": "x", "a": 1}) == {"a": 1}


def test_ensure_indexes_is_idempotent(mongo_db):
    ensure_indexes(mongo_db)
    ensure_indexes(mongo_db)
    unique = {
        tuple(k for k, _ in index["key"])
        for index in mongo_db[USERS].index_information().values()
        if index.get("unique")
    }
    assert ("username",) in unique
    assert ("email",) in unique


def test_requests_fail_with_500_without_database(client):
    app.dependency_overrides[current_db] = lambda: None
    resp = client.get("/all-books")
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Database not available"


def test_health_reports_missing_database(client):
    app.dependency_overrides[current_db] = lambda: None
    body = client.get("/test").json()
    assert body["backend"] == "✅ Running"
    assert body["connection_status"] == "Not Connected"


def test_store_failure_is_generic_500(client, mongo_db, monkeypatch):
    def unreachable(*args, **kwargs):
        raise ServerSelectionTimeoutError("no servers")

    monkeypatch.setattr(type(mongo_db[USERS]), "find_one", unreachable)
    resp = client.post("/check-username", json={"username": "ada"})
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Failed to check username"}
