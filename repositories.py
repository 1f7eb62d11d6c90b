from typing import Any, Dict, List, Optional, Sequence

from pymongo import ReturnDocument
from pymongo.database import Database

from auth import ensure_owner
from config import Settings
from database import NEWEST_FIRST, create_document, now_utc, object_id
from errors import ValidationError
from media import RAW, MediaRelay, StoredFile, read_upload, upload_then_commit


class OwnedRepository:
    """CRUD for a collection whose documents belong to one teacher."""

    def __init__(self, collection: str, noun: str, required: Sequence[str]):
        self.collection = collection
        self.noun = noun
        self.required = tuple(required)

    def list(self, db: Database, teacher: Dict[str, Any]) -> List[Dict[str, Any]]:
        return list(db[self.collection].find({"teacher": teacher["_id"]}).sort(NEWEST_FIRST))

    def find(self, db: Database, record_id: str) -> Optional[Dict[str, Any]]:
        oid = object_id(record_id)
        return db[self.collection].find_one({"_id": oid}) if oid else None

    def get_owned(self, db: Database, record_id: str, teacher: Dict[str, Any]) -> Dict[str, Any]:
        return ensure_owner(self.find(db, record_id), teacher, self.noun)

    def create(self, db: Database, teacher: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
        missing = [name for name in self.required if fields.get(name) in (None, "")]
        if missing:
            raise ValidationError(f"Please add {', '.join(missing)}")
        return create_document(db, self.collection, dict(fields, teacher=teacher["_id"]))

    def update(self, db: Database, record_id: str, teacher: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
        record = self.get_owned(db, record_id, teacher)
        if not changes:
            return record
        return db[self.collection].find_one_and_update(
            {"_id": record["_id"]},
            {"$set": dict(changes, updatedAt=now_utc())},
            return_document=ReturnDocument.AFTER,
        )

    def delete(self, db: Database, record_id: str, teacher: Dict[str, Any]) -> Dict[str, Any]:
        record = self.get_owned(db, record_id, teacher)
        db[self.collection].delete_one({"_id": record["_id"]})
        return record


classes = OwnedRepository("class", "Class", ["subject", "grade"])
lessons = OwnedRepository("lesson", "Lesson", ["title", "subject", "grade", "fileUrl", "storagePublicId"])
papers = OwnedRepository("paper", "Paper", ["title", "subject", "grade", "fileUrl", "storagePublicId"])
videos = OwnedRepository("video", "Video", ["topic", "subject", "grade", "videoUrl"])

MATERIALS = {"lesson": lessons, "paper": papers}


def create_class(db: Database, teacher: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    return classes.create(db, teacher, dict(fields, students=[]))


def create_material(db: Database, repo: OwnedRepository, teacher: Dict[str, Any], fields: Dict[str, Any],
                    file, relay: MediaRelay, settings: Settings) -> Dict[str, Any]:
    noun = repo.noun.lower()
    content = read_upload(file, RAW, settings, label=noun)
    if not all(fields.get(name) for name in ("title", "subject", "grade")):
        raise ValidationError("Please add title, subject, and grade")

    def commit(stored: StoredFile) -> Dict[str, Any]:
        return repo.create(db, teacher, dict(
            fields,
            description=fields.get("description") or "",
            fileUrl=stored.url,
            storagePublicId=stored.public_id,
        ))

    return upload_then_commit(
        relay, content, repo.collection + "s", RAW, "application/pdf", commit,
        failure_message=f"Failed to save {noun} details after successful file upload.",
    )


def delete_material(db: Database, repo: OwnedRepository, record_id: str, teacher: Dict[str, Any], relay: MediaRelay) -> Dict[str, Any]:
    """Remove the stored file first (best effort), then the record."""
    record = repo.get_owned(db, record_id, teacher)
    file_deleted = relay.discard(record.get("storagePublicId", ""), RAW)
    db[repo.collection].delete_one({"_id": record["_id"]})
    message = f"{repo.noun} deleted successfully."
    if not file_deleted:
        message += " Stored file may still exist."
    return {"id": str(record["_id"]), "message": message}


def materials_for_student(db: Database, repo: OwnedRepository, student: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Lessons or papers from the teachers of the caller's classes."""
    teacher_ids = db["class"].distinct("teacher", {"students": student["_id"]})
    if not teacher_ids:
        return []
    cursor = db[repo.collection].find(
        {"teacher": {"$in": teacher_ids}},
        {"storagePublicId": 0},
    ).sort(NEWEST_FIRST)
    return list(cursor)
