import os
import logging
import traceback
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pymongo.database import Database

import attendance
import enrollment
import payments
import profiles
import stats
from auth import (
    get_current_user,
    get_db,
    get_settings,
    list_students,
    login_user,
    public_user,
    register_user,
    require_teacher,
)
from config import Settings, configure_logging, load_settings
from database import connect, ensure_indexes, serialize
from errors import AppError, ValidationError
from media import MediaRelay
from realtime import Notifier
from repositories import (
    MATERIALS,
    classes,
    create_class,
    create_material,
    delete_material,
    materials_for_student,
    videos,
)
from schemas import (
    AttendanceBody,
    ClassCreate,
    ClassUpdate,
    EnrollmentBody,
    LoginBody,
    MaterialUpdate,
    PaymentCreate,
    RegisterBody,
    TeacherProfileUpdate,
    VideoCreate,
    VideoUpdate,
    present_fields,
)

logger = logging.getLogger(__name__)

User = Dict[str, Any]


def get_media(request: Request) -> MediaRelay:
    return request.app.state.media


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


# ----------------------
# Users
# ----------------------
users_router = APIRouter(prefix="/users")


@users_router.post("/register", status_code=201)
def register(body: RegisterBody, db: Database = Depends(get_db)):
    user = register_user(db, body)
    return serialize(user | {"message": "User registered successfully"})


@users_router.post("/login")
def login(body: LoginBody, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return serialize(login_user(db, body, settings))


@users_router.get("/profile")
def user_profile(user: User = Depends(get_current_user)):
    return serialize(public_user(user))


@users_router.get("/students")
def students(db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return serialize(list_students(db))


# ----------------------
# Classes & enrollment
# ----------------------
classes_router = APIRouter(prefix="/classes")


@classes_router.get("/myclasses")
def my_classes(db: Database = Depends(get_db), user: User = Depends(get_current_user)):
    return serialize(enrollment.list_my_classes(db, user))


@classes_router.get("")
def list_classes(db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return serialize(classes.list(db, teacher))


@classes_router.post("", status_code=201)
def add_class(body: ClassCreate, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return serialize(create_class(db, teacher, body.model_dump()))


@classes_router.put("/{class_id}")
def edit_class(class_id: str, body: ClassUpdate, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return serialize(classes.update(db, class_id, teacher, present_fields(body)))


@classes_router.delete("/{class_id}")
def remove_class(class_id: str, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    classes.delete(db, class_id, teacher)
    return {"id": class_id, "message": "Class deleted successfully"}


@classes_router.get("/{class_id}/students")
def enrolled_students(class_id: str, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return serialize(enrollment.list_enrolled(db, class_id, teacher))


@classes_router.put("/{class_id}/enroll")
def enroll_student(class_id: str, body: EnrollmentBody, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    student = enrollment.enroll(db, class_id, body.studentId, teacher)
    return serialize({"message": "Student enrolled successfully", "student": student})


@classes_router.put("/{class_id}/unenroll")
def unenroll_student(class_id: str, body: EnrollmentBody, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    enrollment.unenroll(db, class_id, body.studentId, teacher)
    return {"message": "Student unenrolled successfully"}


# ----------------------
# Lessons & papers
# ----------------------
def material_router(kind: str) -> APIRouter:
    repo = MATERIALS[kind]
    router = APIRouter(prefix=f"/{kind}s")

    @router.get("/student")
    def for_student(db: Database = Depends(get_db), user: User = Depends(get_current_user)):
        return serialize(materials_for_student(db, repo, user))

    @router.get("")
    def list_materials(db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
        return serialize(repo.list(db, teacher))

    @router.post("", status_code=201)
    def add_material(
        title: str = Form(""),
        description: str = Form(""),
        subject: str = Form(""),
        grade: str = Form(""),
        file: Optional[UploadFile] = File(None),
        db: Database = Depends(get_db),
        settings: Settings = Depends(get_settings),
        media: MediaRelay = Depends(get_media),
        teacher: User = Depends(require_teacher),
    ):
        fields = {"title": title, "description": description, "subject": subject, "grade": grade}
        return serialize(create_material(db, repo, teacher, fields, file, media, settings))

    @router.put("/{record_id}")
    def edit_material(record_id: str, body: MaterialUpdate, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
        return serialize(repo.update(db, record_id, teacher, present_fields(body)))

    @router.delete("/{record_id}")
    def remove_material(record_id: str, db: Database = Depends(get_db), media: MediaRelay = Depends(get_media),
                        teacher: User = Depends(require_teacher)):
        return delete_material(db, repo, record_id, teacher, media)

    return router


# ----------------------
# Videos
# ----------------------
videos_router = APIRouter(prefix="/videos")


@videos_router.get("")
def list_videos(db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return serialize(videos.list(db, teacher))


@videos_router.post("", status_code=201)
def add_video(body: VideoCreate, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return serialize(videos.create(db, teacher, body.model_dump()))


@videos_router.put("/{video_id}")
def edit_video(video_id: str, body: VideoUpdate, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return serialize(videos.update(db, video_id, teacher, present_fields(body)))


@videos_router.delete("/{video_id}")
def remove_video(video_id: str, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    videos.delete(db, video_id, teacher)
    return {"id": video_id, "message": "Video deleted successfully"}


# ----------------------
# Attendance
# ----------------------
attendance_router = APIRouter(prefix="/attendance")


@attendance_router.post("", status_code=201)
def mark_attendance(body: AttendanceBody, db: Database = Depends(get_db), notifier: Notifier = Depends(get_notifier),
                    teacher: User = Depends(require_teacher)):
    outcome = attendance.mark_attendance(db, teacher, body.classId, body.classDate, body.attendanceData)
    for student_id in outcome.pop("students"):
        notifier.notify("attendance:marked", {"classId": body.classId, "classDate": body.classDate.isoformat()}, student_id)
    return outcome


@attendance_router.get("/class/{class_id}")
def class_attendance(class_id: str, day: Optional[date] = Query(None, alias="date"), db: Database = Depends(get_db),
                     teacher: User = Depends(require_teacher)):
    if day is None:
        raise ValidationError("Please provide a date")
    return serialize(attendance.class_attendance(db, teacher, class_id, day))


@attendance_router.get("/myattendance")
def my_attendance(db: Database = Depends(get_db), user: User = Depends(get_current_user)):
    return serialize(attendance.student_attendance(db, user))


# ----------------------
# Payments
# ----------------------
payments_router = APIRouter(prefix="/payments")


@payments_router.post("", status_code=201)
def record_payment(body: PaymentCreate, db: Database = Depends(get_db), notifier: Notifier = Depends(get_notifier),
                   teacher: User = Depends(require_teacher)):
    payment = serialize(payments.record_payment(db, teacher, body))
    notifier.notify("payment:recorded", {"paymentId": payment["_id"], "amount": payment["amount"]}, payment["student"])
    return payment


@payments_router.get("/mypayments")
def my_payments(db: Database = Depends(get_db), user: User = Depends(get_current_user)):
    return serialize(payments.student_payments(db, user))


# ----------------------
# Teacher profile
# ----------------------
profile_router = APIRouter(prefix="/profile")


@profile_router.get("/public/{user_id}")
def public_profile(user_id: str, db: Database = Depends(get_db)):
    return serialize(profiles.public_profile(db, user_id))


@profile_router.get("/teacher")
def teacher_profile(db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return serialize(profiles.get_or_create(db, teacher["_id"]))


@profile_router.put("/teacher")
def edit_teacher_profile(body: TeacherProfileUpdate, db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return serialize(profiles.update_profile(db, teacher, present_fields(body)))


@profile_router.put("/teacher/logo")
def upload_logo(profileLogo: Optional[UploadFile] = File(None), db: Database = Depends(get_db),
                settings: Settings = Depends(get_settings), media: MediaRelay = Depends(get_media),
                teacher: User = Depends(require_teacher)):
    return serialize(profiles.replace_image(db, teacher, "logo", profileLogo, media, settings))


@profile_router.put("/teacher/main-image")
def upload_main_image(mainImage: Optional[UploadFile] = File(None), db: Database = Depends(get_db),
                      settings: Settings = Depends(get_settings), media: MediaRelay = Depends(get_media),
                      teacher: User = Depends(require_teacher)):
    return serialize(profiles.replace_image(db, teacher, "main-image", mainImage, media, settings))


# ----------------------
# Stats
# ----------------------
stats_router = APIRouter(prefix="/stats")


@stats_router.get("/teacher")
def teacher_stats(db: Database = Depends(get_db), teacher: User = Depends(require_teacher)):
    return stats.teacher_stats(db, teacher["_id"])


@stats_router.get("/student")
def student_stats(db: Database = Depends(get_db), user: User = Depends(get_current_user)):
    return stats.student_stats(db, user["_id"])


# ----------------------
# Error handlers
# ----------------------
def error_body(request: Request, exc: Exception, message: str) -> Dict[str, Any]:
    body = {"message": message}
    if not request.app.state.settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=error_body(request, exc, exc.message))

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
            message = f"{field}: {first.get('msg')}" if field else first.get("msg")
        else:
            message = "Invalid request data"
        return JSONResponse(status_code=400, content=error_body(request, exc, message))

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_body(request, exc, f"Server Error: {exc}"))


# ----------------------
# App factory
# ----------------------
def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    media: Optional[MediaRelay] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    settings = settings or load_settings()
    if db is None:
        db = connect(settings)
    media = media or MediaRelay.from_settings(settings)
    notifier = notifier or Notifier(settings, db)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_indexes(app.state.db)
        yield

    app = FastAPI(title="TutorDesk API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.media = media
    app.state.notifier = notifier

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    api = APIRouter(prefix="/api")
    for router in (users_router, classes_router, material_router("lesson"), material_router("paper"),
                   videos_router, attendance_router, payments_router, profile_router, stats_router):
        api.include_router(router)
    app.include_router(api)

    # Mount Socket.IO under /ws
    if isinstance(notifier, Notifier):
        app.mount(notifier.mount_path, notifier.asgi_app)
    if media.is_local:
        os.makedirs(media.upload_dir, exist_ok=True)
        app.mount("/uploads", StaticFiles(directory=media.upload_dir), name="uploads")

    @app.get("/", response_class=PlainTextResponse)
    def read_root():
        return "API is running..."

    @app.get("/test")
    def test_database():
        response = {
            "backend": "Running",
            "database": "Not Available",
            "database_name": None,
            "connection_status": "Not Connected",
            "collections": [],
        }
        try:
            response["collections"] = app.state.db.list_collection_names()[:10]
            response["database"] = "Connected & Working"
            response["database_name"] = app.state.db.name
            response["connection_status"] = "Connected"
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            response["database"] = f"Error: {str(e)[:50]}"
        return response

    return app


# ----------------------
# Uvicorn
# ----------------------
if __name__ == "__main__":
    import uvicorn
    settings = load_settings()
    configure_logging(settings)
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(create_app(settings), host="0.0.0.0", port=port)
