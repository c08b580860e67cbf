"""
Credential helpers.

Password hashing uses passlib. Requests identify their actor with the
X-User-Id header; verify_actor checks that the id belongs to a stored user.
"""
from typing import Optional

from bson import ObjectId
from passlib.context import CryptContext
from pydantic import BaseModel

from database import Store
from errors import UnauthorizedError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class ActorIdentity(BaseModel):
    id: str
    username: str


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def verify_actor(store: Store, token: Optional[str]) -> ActorIdentity:
    if not token:
        raise UnauthorizedError("Missing X-User-Id header")
    if not ObjectId.is_valid(token):
        raise UnauthorizedError("Invalid user id")
    user = store.users.find_one({"_id": ObjectId(token)}, {"username": 1})
    if not user:
        raise UnauthorizedError("Invalid user id")
    return ActorIdentity(id=str(user["_id"]), username=user.get("username", ""))
