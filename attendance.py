import logging
from datetime import date, datetime
from typing import Any, Dict, List

from pymongo import UpdateOne
from pymongo.database import Database
from pymongo.errors import BulkWriteError, PyMongoError

from auth import ensure_owner
from database import lookup, now_utc, object_id
from errors import Conflict, PersistenceError, ValidationError
from repositories import classes
from schemas import AttendanceEntry

logger = logging.getLogger(__name__)

DUPLICATE_KEY = 11000


def day_start(day: date) -> datetime:
    """Calendar date -> midnight UTC, the stored form of classDate."""
    return datetime(day.year, day.month, day.day)


def mark_attendance(db: Database, teacher: Dict[str, Any], class_id: str, class_date: date,
                    entries: List[AttendanceEntry]) -> Dict[str, Any]:
    class_item = ensure_owner(classes.find(db, class_id), teacher, classes.noun)
    when = day_start(class_date)
    stamp = now_utc()

    operations = []
    student_ids = []
    for entry in entries:
        student_id = object_id(entry.studentId)
        if student_id is None:
            raise ValidationError(f"Invalid student id: {entry.studentId}")
        student_ids.append(student_id)
        key = {"student": student_id, "class": class_item["_id"], "classDate": when}
        operations.append(UpdateOne(
            key,
            {
                "$set": {
                    "teacher": teacher["_id"],
                    "status": entry.status,
                    "notes": entry.notes,
                    "updatedAt": stamp,
                },
                "$setOnInsert": {"createdAt": stamp},
            },
            upsert=True,
        ))

    try:
        result = db["attendance"].bulk_write(operations, ordered=False)
    except BulkWriteError as e:
        codes = {err.get("code") for err in e.details.get("writeErrors", [])}
        logger.error("Attendance bulk write failed for class %s: %s", class_item["_id"], codes)
        if DUPLICATE_KEY in codes:
            raise Conflict("A duplicate attendance record was detected.") from e
        raise PersistenceError("Server error while recording attendance.") from e
    except PyMongoError as e:
        logger.error("Attendance bulk write failed for class %s: %s", class_item["_id"], e)
        raise PersistenceError("Server error while recording attendance.") from e

    return {
        "message": "Attendance recorded successfully",
        "students": student_ids,
        "result": {
            "matched": result.matched_count,
            "modified": result.modified_count,
            "upserted": result.upserted_count,
        },
    }


def class_attendance(db: Database, teacher: Dict[str, Any], class_id: str, class_date: date) -> List[Dict[str, Any]]:
    class_item = classes.get_owned(db, class_id, teacher)
    records = list(db["attendance"].find({
        "class": class_item["_id"],
        "classDate": day_start(class_date),
        "teacher": teacher["_id"],
    }))
    students = lookup(db, "user", (r["student"] for r in records), {"name": 1})
    for r in records:
        r["student"] = students.get(r["student"], {"_id": r["student"], "name": ""})
    return records


def student_attendance(db: Database, student: Dict[str, Any]) -> List[Dict[str, Any]]:
    records = list(db["attendance"].find({"student": student["_id"]}).sort("classDate", -1))
    class_docs = lookup(db, "class", (r["class"] for r in records), {"subject": 1, "grade": 1})
    teachers = lookup(db, "user", (r["teacher"] for r in records), {"name": 1})
    for r in records:
        r["class"] = class_docs.get(r["class"], {"_id": r["class"]})
        r["teacher"] = teachers.get(r["teacher"], {"_id": r["teacher"]})
    return records
