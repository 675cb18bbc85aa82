import asyncio
import hmac
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from passlib.context import CryptContext
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import (
    BOOKS,
    CART,
    REVIEWS,
    USERS,
    current_db,
    delete_ack,
    get_db,
    insert_ack,
    ping,
    require_indexes,
    serialize,
    to_object_id,
    update_ack,
    without_id,
)
from schemas import (
    CreateUserRequest,
    EmailCheck,
    LoginRequest,
    ProfileUpload,
    UserProfileUpdate,
    UsernameCheck,
)

logger = logging.getLogger(__name__)

PORT = int(os.getenv("PORT", 3000))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def prepare_store(database: Database) -> None:
    try:
        ping(database)
        require_indexes(database)
        logger.info("Connected to MongoDB database %s", database.name)
    except PyMongoError:
        # Keep serving HTTP; each request reports its own failure
        logger.exception("Error connecting to MongoDB")


@asynccontextmanager
async def lifespan(app: FastAPI):
    database = current_db()
    startup = None
    if database is None:
        logger.warning("DATABASE_URL is not set; requests needing the database will fail")
    else:
        # The listener must not wait on server selection
        startup = asyncio.create_task(asyncio.to_thread(prepare_store, database))
    yield
    if startup is not None and not startup.done():
        startup.cancel()


app = FastAPI(title="Book Inventory API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    # Starlette re-raises after this, and the server logs the traceback
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def store_failure(message: str) -> HTTPException:
    logger.exception(message)
    return HTTPException(status_code=500, detail=message)


# ---------- Passwords ----------

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def check_password(database: Database, user: Dict[str, Any], password: str) -> bool:
    """Verify a login attempt against the stored credential

    Accounts created before hashing still carry a plaintext "password" field.
    Those are compared in constant time and upgraded to a hash on success.
    """
    hashed = user.get("password_hash")
    if hashed:
        return pwd_context.verify(password, hashed)
    legacy = user.get("password")
    if not isinstance(legacy, str):
        return False
    if not hmac.compare_digest(legacy.encode(), password.encode()):
        return False
    database[USERS].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(password)}, "$unset": {"password": ""}},
    )
    logger.info("Upgraded stored password for user %s", user["_id"])
    return True


# ---------- Health ----------

@app.get("/", response_class=PlainTextResponse)
def root():
    return f"Book Inventory API listening on port {PORT}"


@app.get("/test")
def test_database(database: Optional[Database] = Depends(current_db)):
    """Test endpoint to check if database is available and accessible"""
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    if database is None:
        return response

    response["database"] = "✅ Available"
    response["database_name"] = database.name
    try:
        ping(database)
        response["connection_status"] = "Connected"
        response["collections"] = database.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


# ---------- Books ----------

@app.post("/upload-book")
def upload_book(data: Dict[str, Any], database: Database = Depends(get_db)):
    try:
        result = database[BOOKS].insert_one(without_id(data))
    except PyMongoError:
        raise store_failure("Failed to upload book")
    return insert_ack(result)


@app.patch("/book/{id}")
def update_book(id: str, data: Dict[str, Any], database: Database = Depends(get_db)):
    book_id = to_object_id(id)
    fields = without_id(data)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        result = database[BOOKS].update_one({"_id": book_id}, {"$set": fields}, upsert=True)
    except PyMongoError:
        raise store_failure("Failed to update book")
    return update_ack(result)


@app.delete("/book/{id}")
def delete_book(id: str, database: Database = Depends(get_db)):
    book_id = to_object_id(id)
    try:
        result = database[BOOKS].delete_one({"_id": book_id})
    except PyMongoError:
        raise store_failure("Failed to delete book")
    return delete_ack(result)


@app.get("/book/{id}")
def get_book(id: str, database: Database = Depends(get_db)):
    book_id = to_object_id(id)
    try:
        book = database[BOOKS].find_one({"_id": book_id})
    except PyMongoError:
        raise store_failure("Failed to fetch book")
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return serialize(book)


@app.get("/all-books")
def all_books(category: Optional[str] = None, database: Database = Depends(get_db)):
    query = {"category": category} if category else {}
    try:
        books = list(database[BOOKS].find(query))
    except PyMongoError:
        raise store_failure("Failed to fetch all books")
    return serialize(books)


# ---------- Cart ----------

@app.post("/add-to-cart")
def add_to_cart(data: Dict[str, Any], database: Database = Depends(get_db)):
    if not data.get("userId"):
        raise HTTPException(status_code=400, detail="userId is required")
    try:
        result = database[CART].insert_one(without_id(data))
    except PyMongoError:
        raise store_failure("Failed to add to cart")
    return insert_ack(result)


@app.get("/cart/{id}")
def get_cart(id: str, database: Database = Depends(get_db)):
    try:
        items = list(database[CART].find({"userId": id}))
    except PyMongoError:
        raise store_failure("Failed to fetch cart items")
    return serialize(items)


@app.delete("/cart/{userId}/{id}")
def remove_from_cart(userId: str, id: str, database: Database = Depends(get_db)):
    item_id = to_object_id(id)
    try:
        result = database[CART].delete_one({"userId": userId, "_id": item_id})
    except PyMongoError:
        raise store_failure("Failed to remove item from cart")
    return {"message": "Item removed from cart successfully", "result": delete_ack(result)}


# ---------- Reviews ----------

@app.post("/submit-review", status_code=201)
def submit_review(data: Dict[str, Any], database: Database = Depends(get_db)):
    try:
        result = database[REVIEWS].insert_one(without_id(data))
    except PyMongoError:
        raise store_failure("Failed to submit review")
    return insert_ack(result)


@app.get("/getReviews")
def get_reviews(category: Optional[str] = None, database: Database = Depends(get_db)):
    query = {"category": category} if category else {}
    try:
        reviews = list(database[REVIEWS].find(query))
    except PyMongoError:
        raise store_failure("Failed to fetch reviews")
    return serialize(reviews)


# ---------- Users ----------

@app.post("/createUser")
def create_user(req: CreateUserRequest, database: Database = Depends(get_db)):
    user = {
        "email": req.email,
        "username": req.username,
        "password_hash": hash_password(req.password),
    }
    try:
        # No insert unless uniqueness is enforced by the store
        require_indexes(database)
    except PyMongoError:
        raise store_failure("Failed to create user")
    try:
        result = database[USERS].insert_one(user)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Username or email already exists")
    except PyMongoError:
        raise store_failure("Failed to create user")
    return {"userId": str(result.inserted_id)}


@app.get("/getUserData/{id}")
def get_user_data(id: str, database: Database = Depends(get_db)):
    user_id = to_object_id(id)
    try:
        user = database[USERS].find_one(
            {"_id": user_id}, projection={"password": 0, "password_hash": 0}
        )
    except PyMongoError:
        raise store_failure("Failed to fetch user data")
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize(user)


@app.post("/upload-profile")
def upload_profile(req: ProfileUpload, database: Database = Depends(get_db)):
    user_id = to_object_id(req.userId)
    fields = req.model_dump(exclude_unset=True, exclude={"userId"})
    if not fields:
        raise HTTPException(status_code=400, detail="No profile fields to update")
    try:
        result = database[USERS].update_one({"_id": user_id}, {"$set": fields})
    except PyMongoError:
        raise store_failure("Failed to update profile")
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "Profile updated successfully"}


@app.put("/updateUserProfile")
def update_user_profile(req: UserProfileUpdate, database: Database = Depends(get_db)):
    user_id = to_object_id(req.userId)
    fields = req.updates()
    if not fields:
        raise HTTPException(status_code=400, detail="No profile fields to update")
    try:
        result = database[USERS].update_one({"_id": user_id}, {"$set": fields})
    except PyMongoError:
        raise store_failure("Failed to update user profile")
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "User profile updated successfully"}


@app.post("/check-username")
def check_username(req: UsernameCheck, database: Database = Depends(get_db)):
    try:
        user = database[USERS].find_one({"username": req.username}, projection={"_id": 1})
    except PyMongoError:
        raise store_failure("Failed to check username")
    return {"exists": user is not None}


@app.post("/check-email")
def check_email(req: EmailCheck, database: Database = Depends(get_db)):
    try:
        user = database[USERS].find_one({"email": req.email}, projection={"_id": 1})
    except PyMongoError:
        raise store_failure("Failed to check email")
    return {"exists": user is not None}


@app.post("/login")
def login(req: LoginRequest, database: Database = Depends(get_db)):
    try:
        user = database[USERS].find_one({"username": req.username})
        valid = user is not None and check_password(database, user, req.password)
    except PyMongoError:
        raise store_failure("Failed to login")
    if not valid:
        raise HTTPException(status_code=400, detail="Invalid username or password")
    return {"userId": str(user["_id"])}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=PORT)
