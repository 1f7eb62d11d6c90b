import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from jose import JWTError, jwt
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from werkzeug.security import check_password_hash, generate_password_hash

from config import Settings
from database import create_document, object_id
from errors import Forbidden, NotFound, Unauthenticated, ValidationError
from schemas import LoginBody, RegisterBody

logger = logging.getLogger(__name__)

PUBLIC_USER_FIELDS = ("_id", "name", "email", "phone", "role")


# ----------------------
# Tokens & passwords
# ----------------------
def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def generate_token(user_id: Any, settings: Settings) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=settings.token_ttl_days)
    payload = {"id": str(user_id), "exp": int(exp.timestamp())}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise Unauthenticated("Not authorized, token failed") from e


def user_for_token(db: Database, token: str, settings: Settings) -> Dict[str, Any]:
    data = decode_token(token, settings)
    user_id = object_id(data.get("id"))
    user = db["user"].find_one({"_id": user_id}, {"password": 0}) if user_id else None
    if not user:
        raise Unauthenticated("Not authorized, token failed")
    return user


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: user.get(k, "") for k in PUBLIC_USER_FIELDS}


# ----------------------
# Dependencies
# ----------------------
def get_db(request: Request) -> Database:
    return request.app.state.db


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(request: Request) -> Dict[str, Any]:
    auth = request.headers.get("Authorization")
    if not auth or not auth.startswith("Bearer"):
        raise Unauthenticated("Not authorized, no token")
    parts = auth.split(" ", 1)
    token = parts[1].strip() if len(parts) == 2 else ""
    if not token:
        raise Unauthenticated("Not authorized, no token")
    return user_for_token(request.app.state.db, token, request.app.state.settings)


def require_teacher(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "teacher":
        raise Forbidden("Access denied. You must be a teacher.")
    return user


def ensure_owner(record: Optional[Dict[str, Any]], user: Dict[str, Any], noun: str, field: str = "teacher") -> Dict[str, Any]:
    """Ownership check shared by every teacher-owned resource."""
    if record is None:
        raise NotFound(f"{noun} not found")
    if record.get(field) != user["_id"]:
        raise Forbidden(f"User not authorized to access this {noun.lower()}")
    return record


# ----------------------
# User operations
# ----------------------
def register_user(db: Database, body: RegisterBody) -> Dict[str, Any]:
    if db["user"].find_one({"email": body.email}):
        raise ValidationError("User already exists")
    doc = body.model_dump()
    doc["password"] = hash_password(body.password)
    try:
        user = create_document(db, "user", doc)
    except DuplicateKeyError as e:
        raise ValidationError("User already exists") from e
    logger.info("Registered %s user %s", user["role"], user["_id"])
    return public_user(user)


def login_user(db: Database, body: LoginBody, settings: Settings) -> Dict[str, Any]:
    user = db["user"].find_one({"email": body.email})
    if not user or not verify_password(user["password"], body.password):
        raise Unauthenticated("Invalid credentials")
    return public_user(user) | {"token": generate_token(user["_id"], settings)}


def list_students(db: Database):
    return list(db["user"].find({"role": "student"}, {"password": 0}).sort("name", 1))
