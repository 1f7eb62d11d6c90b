from typing import Any, Dict, Optional

from fastapi import UploadFile
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings
from database import NEWEST_FIRST, now_utc, object_id
from errors import NotFound
from media import IMAGE, MediaRelay, StoredFile, read_upload, upload_then_commit
from schemas import TeacherProfile

# slot -> (url field, public id field, storage folder)
IMAGE_SLOTS = {
    "logo": ("logoUrl", "logoPublicId", "profile_logos"),
    "main-image": ("mainImageUrl", "mainImagePublicId", "profile_main_images"),
}

PRIVATE_FIELDS = ("logoPublicId", "mainImagePublicId")


def get_or_create(db: Database, user_id: Any) -> Dict[str, Any]:
    stamp = now_utc()
    defaults = TeacherProfile().model_dump()
    query = {"user": user_id}
    update = {"$setOnInsert": dict(defaults, user=user_id, createdAt=stamp, updatedAt=stamp)}
    try:
        return db["teacherprofile"].find_one_and_update(
            query, update, upsert=True, return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # lost the insert race; the winner's document is there now
        return db["teacherprofile"].find_one(query)


def update_profile(db: Database, teacher: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    profile = get_or_create(db, teacher["_id"])
    if not changes:
        return profile
    return db["teacherprofile"].find_one_and_update(
        {"_id": profile["_id"]},
        {"$set": dict(changes, updatedAt=now_utc())},
        return_document=ReturnDocument.AFTER,
    )


def replace_image(db: Database, teacher: Dict[str, Any], slot: str, file: Optional[UploadFile],
                  relay: MediaRelay, settings: Settings) -> Dict[str, Any]:
    url_field, id_field, folder = IMAGE_SLOTS[slot]
    label = "logo" if slot == "logo" else "main image"
    content = read_upload(file, IMAGE, settings, label=label)
    profile = get_or_create(db, teacher["_id"])
    previous = profile.get(id_field, "")

    def commit(stored: StoredFile) -> Dict[str, Any]:
        return db["teacherprofile"].find_one_and_update(
            {"_id": profile["_id"]},
            {"$set": {url_field: stored.url, id_field: stored.public_id, "updatedAt": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )

    updated = upload_then_commit(
        relay, content, folder, IMAGE, file.content_type, commit,
        failure_message=f"Failed to save profile {label} after successful upload.",
    )
    if previous and previous != updated.get(id_field):
        relay.discard(previous, IMAGE)
    return updated


def public_profile(db: Database, user_id: str) -> Dict[str, Any]:
    oid = object_id(user_id)
    teacher = db["user"].find_one({"_id": oid}, {"name": 1, "role": 1}) if oid else None
    if not teacher or teacher.get("role") != "teacher":
        raise NotFound("Teacher profile not found")

    profile = get_or_create(db, teacher["_id"])
    for field in PRIVATE_FIELDS:
        profile.pop(field, None)
    profile["teacherName"] = teacher.get("name", "")
    profile["classes"] = list(db["class"].find(
        {"teacher": teacher["_id"]},
        {"subject": 1, "grade": 1, "area": 1, "time": 1, "price": 1},
    ).sort(NEWEST_FIRST))
    profile["videos"] = list(db["video"].find(
        {"teacher": teacher["_id"]},
        {"topic": 1, "subject": 1, "grade": 1, "videoUrl": 1},
    ).sort(NEWEST_FIRST))
    return profile
