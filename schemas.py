"""
Request Schemas

Pydantic models for the endpoints that take an explicit set of fields.
Books, cart items and reviews have no fixed shape and are accepted as plain
dictionaries in main.py.

Collections (see database.py):
- books: book inventory, arbitrary documents
- users: accounts, unique username and email
- cart: cart items, partitioned by userId
- reviews: product reviews, optionally tagged with a category
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Any

# Fields the generic profile update path may never write
PROTECTED_USER_FIELDS = {"_id", "username", "email", "password", "password_hash"}


class CreateUserRequest(BaseModel):
    email: str
    password: str
    username: str


class LoginRequest(BaseModel):
    username: str
    password: str


class UsernameCheck(BaseModel):
    username: str


class EmailCheck(BaseModel):
    email: str


class ProfileUpload(BaseModel):
    userId: str
    location: Optional[Any] = None
    age: Optional[Any] = None
    work: Optional[Any] = None
    dob: Optional[Any] = None
    description: Optional[Any] = None


class UserProfileUpdate(BaseModel):
    """
    Arbitrary profile fields keyed by user. Extra fields are kept so callers
    can set any profile attribute; protected fields are dropped before write.
    """
    model_config = ConfigDict(extra="allow")

    userId: str = Field(..., description="Identifier of the user to update")

    def updates(self) -> dict:
        data = self.model_dump(exclude={"userId"})
        return {k: v for k, v in data.items() if k not in PROTECTED_USER_FIELDS}
