"""
Dashboard statistics for teachers and students.

Monthly series cover the trailing six months. Months without records are
left out, so chart series can be sparse.
"""

import calendar
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from database import now_utc

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
ATTENDED = ("Present", "Late")
WINDOW_MONTHS = 6


def month_label(year: int, month: int) -> str:
    return f"{MONTH_ABBR[month - 1]} {str(year)[-2:]}"


def months_before(moment: datetime, months: int) -> datetime:
    index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def percentage(attended: int, total: int) -> int:
    if total == 0:
        return 100
    # round half up, in integers
    return (200 * attended + total) // (2 * total)


def _month_buckets(db: Database, collection: str, match: Dict[str, Any], date_field: str,
                   extra: Dict[str, Any], group: Dict[str, Any]) -> List[Dict[str, Any]]:
    pipeline = [
        {"$match": match},
        {"$project": dict(extra, year={"$year": f"${date_field}"}, month={"$month": f"${date_field}"})},
        {"$group": group},
        {"$sort": {"_id.year": 1, "_id.month": 1}},
    ]
    return list(db[collection].aggregate(pipeline))


def teacher_stats(db: Database, teacher_id: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    since = months_before(now or now_utc(), WINDOW_MONTHS)

    class_docs = list(db["class"].find({"teacher": teacher_id}, {"students": 1}))
    students = set()
    for c in class_docs:
        students.update(c.get("students", []))

    total_revenue = sum(p.get("amount", 0) for p in db["payment"].find({"teacher": teacher_id}, {"amount": 1}))

    rows = _month_buckets(
        db, "payment",
        match={"teacher": teacher_id, "createdAt": {"$gte": since}},
        date_field="createdAt",
        extra={"amount": 1},
        group={"_id": {"year": "$year", "month": "$month"}, "total": {"$sum": "$amount"}},
    )
    monthly = [
        {"name": month_label(r["_id"]["year"], r["_id"]["month"]), "Revenue": r["total"]}
        for r in rows
    ]

    return {
        "activeClasses": len(class_docs),
        "totalStudents": len(students),
        "totalRevenue": total_revenue,
        "monthlyRevenue": monthly,
    }


def student_stats(db: Database, student_id: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    since = months_before(now or now_utc(), WINDOW_MONTHS)

    last = db["payment"].find_one({"student": student_id}, {"paymentDate": 1}, sort=[("paymentDate", -1)])

    total = db["attendance"].count_documents({"student": student_id})
    attended = db["attendance"].count_documents({"student": student_id, "status": {"$in": list(ATTENDED)}})

    rows = _month_buckets(
        db, "attendance",
        match={"student": student_id, "classDate": {"$gte": since}},
        date_field="classDate",
        extra={"status": 1},
        group={"_id": {"year": "$year", "month": "$month", "status": "$status"}, "count": {"$sum": 1}},
    )
    # (year, month) -> [attended, total]
    buckets = defaultdict(lambda: [0, 0])
    for r in rows:
        key = (r["_id"]["year"], r["_id"]["month"])
        buckets[key][1] += r["count"]
        if r["_id"]["status"] in ATTENDED:
            buckets[key][0] += r["count"]
    monthly = [
        {"name": month_label(year, month), "Attendance": percentage(*buckets[(year, month)])}
        for year, month in sorted(buckets)
    ]

    return {
        "lastFeePaid": last["paymentDate"] if last else None,
        "attendancePercentage": percentage(attended, total),
        "enrolledClassesCount": db["class"].count_documents({"students": student_id}),
        "monthlyAttendance": monthly,
    }
