from typing import Any, Dict, List

from pymongo.database import Database

from auth import ensure_owner
from database import NEWEST_FIRST, lookup, now_utc, object_id
from errors import Conflict, NotFound, ValidationError
from repositories import classes

STUDENT_FIELDS = {"name": 1, "email": 1, "phone": 1}


def _load_student(db: Database, student_id: str) -> Dict[str, Any]:
    oid = object_id(student_id)
    student = db["user"].find_one({"_id": oid}, {"password": 0}) if oid else None
    if not student:
        raise NotFound("Student not found")
    return student


def enroll(db: Database, class_id: str, student_id: str, teacher: Dict[str, Any]) -> Dict[str, Any]:
    class_item = classes.find(db, class_id)
    if class_item is None:
        raise NotFound("Class not found")
    student = _load_student(db, student_id)
    if student.get("role") != "student":
        raise ValidationError("Only students can be enrolled in a class")
    ensure_owner(class_item, teacher, classes.noun)

    # guarded push keeps membership unique under concurrent requests
    result = db["class"].update_one(
        {"_id": class_item["_id"], "students": {"$ne": student["_id"]}},
        {"$push": {"students": student["_id"]}, "$set": {"updatedAt": now_utc()}},
    )
    if result.modified_count == 0:
        raise Conflict("Student is already enrolled in this class")
    return {
        "_id": student["_id"],
        "name": student.get("name", ""),
        "email": student.get("email", ""),
        "phone": student.get("phone", ""),
    }


def unenroll(db: Database, class_id: str, student_id: str, teacher: Dict[str, Any]) -> None:
    class_item = classes.get_owned(db, class_id, teacher)
    oid = object_id(student_id)
    if oid is None:
        return
    db["class"].update_one(
        {"_id": class_item["_id"]},
        {"$pull": {"students": oid}, "$set": {"updatedAt": now_utc()}},
    )


def list_enrolled(db: Database, class_id: str, teacher: Dict[str, Any]) -> List[Dict[str, Any]]:
    class_item = classes.get_owned(db, class_id, teacher)
    ids = class_item.get("students", [])
    if not ids:
        return []
    return list(db["user"].find({"_id": {"$in": ids}}, STUDENT_FIELDS).sort("name", 1))


def list_my_classes(db: Database, student: Dict[str, Any]) -> List[Dict[str, Any]]:
    found = list(db["class"].find({"students": student["_id"]}).sort(NEWEST_FIRST))
    teachers = lookup(db, "user", (c["teacher"] for c in found), {"name": 1})
    return [
        {
            "_id": c["_id"],
            "subject": c.get("subject", ""),
            "grade": c.get("grade", ""),
            "time": c.get("time", ""),
            "teacher": {"_id": c["teacher"], "name": teachers.get(c["teacher"], {}).get("name", "")},
        }
        for c in found
    ]
