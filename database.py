# Example usage:
# from database import get_db, to_object_id, serialize
#
# @app.get("/book/{id}")
# def get_book(id: str, database: Database = Depends(get_db)):
#     book = database[BOOKS].find_one({"_id": to_object_id(id)})
#     return serialize(book)


import logging
import os
import threading
from typing import Any, Dict, Optional

from bson import ObjectId
from dotenv import load_dotenv
from fastapi import Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult
from pymongo.server_api import ServerApi

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

BOOKS = "books"
USERS = "users"
REVIEWS = "reviews"
CART = "cart"

_client = None
db = None

# id(database) -> database, for handles whose indexes are known to exist
_indexed = {}
_indexed_lock = threading.Lock()

database_url = os.getenv("DATABASE_URL") or os.getenv("MONGODB_URI")
database_name = os.getenv("DATABASE_NAME", "BookInventory")

if database_url:
    # MongoClient connects lazily, so this never blocks import
    _client = MongoClient(
        database_url,
        server_api=ServerApi("1", strict=True, deprecation_errors=True),
    )
    db = _client[database_name]


def current_db() -> Optional[Database]:
    """Return the process-wide database handle, or None when unconfigured."""
    return db


def get_db(database: Optional[Database] = Depends(current_db)) -> Database:
    """FastAPI dependency handing the shared database to a route."""
    if database is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return database


def ping(database: Database) -> None:
    database.client.admin.command("ping")


def ensure_indexes(database: Database) -> None:
    """Create the indexes the service relies on

    username and email are unique so that two concurrent sign-ups can never
    both succeed. Safe to call on every startup.
    """
    database[USERS].create_index([("username", ASCENDING)], unique=True)
    database[USERS].create_index([("email", ASCENDING)], unique=True)
    database[CART].create_index([("userId", ASCENDING)])
    database[BOOKS].create_index([("category", ASCENDING)])
    database[REVIEWS].create_index([("category", ASCENDING)])


def require_indexes(database: Database) -> None:
    """Ensure indexes once per handle, retrying on later calls until it works

    Raises PyMongoError when the indexes cannot be created, so writes that
    rely on uniqueness never happen without them.
    """
    with _indexed_lock:
        if _indexed.get(id(database)) is database:
            return
        ensure_indexes(database)
        _indexed[id(database)] = database


def to_object_id(value: Any) -> ObjectId:
    """Parse an identifier string, answering 400 when it is malformed"""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail="Invalid id")
    return ObjectId(value)


def serialize(doc: Any) -> Any:
    """Make a document (or list of documents) JSON friendly"""
    return jsonable_encoder(doc, custom_encoder={ObjectId: str})


def without_id(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop a caller-supplied _id; the store owns identifiers."""
    return {k: v for k, v in data.items() if k != "_id"}


def insert_ack(result: InsertOneResult) -> Dict[str, Any]:
    return {
        "acknowledged": result.acknowledged,
        "insertedId": str(result.inserted_id),
    }


def update_ack(result: UpdateResult) -> Dict[str, Any]:
    upserted_id = result.upserted_id
    return {
        "acknowledged": result.acknowledged,
        "matchedCount": result.matched_count,
        "modifiedCount": result.modified_count,
        "upsertedCount": 1 if upserted_id is not None else 0,
        "upsertedId": str(upserted_id) if upserted_id is not None else None,
    }


def delete_ack(result: DeleteResult) -> Dict[str, Any]:
    return {
        "acknowledged": result.acknowledged,
        "deletedCount": result.deleted_count,
    }
