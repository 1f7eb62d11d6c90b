"""
MongoDB access helpers.

Every collection is named after the lower-case entity name:
- User -> "user"
- Class -> "class"
- Lesson -> "lesson"
- Paper -> "paper"
- Video -> "video"
- Attendance -> "attendance"
- Payment -> "payment"
- TeacherProfile -> "teacherprofile"
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)

OWNED_COLLECTIONS = ("class", "lesson", "paper", "video", "payment")

# _id breaks ties between documents created in the same millisecond
NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


def now_utc() -> datetime:
    # naive UTC, which is what pymongo hands back on reads
    return datetime.now(timezone.utc).replace(tzinfo=None)


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db["user"].create_index("email", unique=True)
    db["attendance"].create_index(
        [("student", ASCENDING), ("class", ASCENDING), ("classDate", ASCENDING)],
        unique=True,
    )
    db["teacherprofile"].create_index("user", unique=True)
    for name in OWNED_COLLECTIONS:
        db[name].create_index("teacher")
    logger.info("Indexes ensured on %s", db.name)


def object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id string; malformed ids come back as None."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    stamp = now_utc()
    doc["createdAt"] = stamp
    doc["updatedAt"] = stamp
    result = db[collection_name].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def serialize(value: Any) -> Any:
    """Make a Mongo document JSON friendly (ObjectId -> str)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value


def lookup(db: Database, collection_name: str, ids: Iterable[Any], fields: Dict[str, int]) -> Dict[Any, Dict[str, Any]]:
    """Fetch referenced documents by id in one query, keyed by _id."""
    ids = list(set(ids))
    if not ids:
        return {}
    return {d["_id"]: d for d in db[collection_name].find({"_id": {"$in": ids}}, fields)}