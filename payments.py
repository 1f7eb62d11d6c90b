from typing import Any, Dict, List

from pymongo.database import Database

from auth import ensure_owner
from database import create_document, lookup, now_utc, object_id
from errors import NotFound
from repositories import classes
from schemas import PaymentCreate


def record_payment(db: Database, teacher: Dict[str, Any], body: PaymentCreate) -> Dict[str, Any]:
    student_id = object_id(body.studentId)
    student = db["user"].find_one({"_id": student_id}) if student_id else None
    if not student or student.get("role") != "student":
        raise NotFound("Student not found")
    class_item = classes.find(db, body.classId)
    if class_item is None:
        raise NotFound("Class not found")
    ensure_owner(class_item, teacher, classes.noun)

    return create_document(db, "payment", {
        "student": student["_id"],
        "teacher": teacher["_id"],
        "class": class_item["_id"],
        "amount": body.amount,
        "feeMonth": body.feeMonth,
        "feeYear": body.feeYear,
        "paymentDate": now_utc(),
    })


def student_payments(db: Database, student: Dict[str, Any]) -> List[Dict[str, Any]]:
    payments = list(db["payment"].find({"student": student["_id"]}).sort("paymentDate", -1))
    class_docs = lookup(db, "class", (p["class"] for p in payments), {"subject": 1, "grade": 1})
    teachers = lookup(db, "user", (p["teacher"] for p in payments), {"name": 1})
    for p in payments:
        p["class"] = class_docs.get(p["class"], {"_id": p["class"]})
        p["teacher"] = teachers.get(p["teacher"], {"_id": p["teacher"]})
    return payments
