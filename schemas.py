"""
Request bodies and document models.

Document models map onto collections (see database.py). Update bodies keep
every field optional; handlers apply `model_dump(exclude_unset=True)` so a
field sent as "" or 0 is stored, while an omitted field is left alone.
"""

from pydantic import BaseModel, Field, EmailStr, field_validator
from typing import Optional, List, Literal
from datetime import date

Role = Literal["student", "teacher"]
AttendanceStatus = Literal["Present", "Absent", "Late", "Excused"]

URL_PATTERN = r"^(http|https)?:?//.*"


# ----------------------
# Users
# ----------------------
class RegisterBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: Role = "student"
    phone: str = ""


class LoginBody(BaseModel):
    email: EmailStr
    password: str


# ----------------------
# Classes
# ----------------------
class ClassCreate(BaseModel):
    subject: str = Field(..., min_length=1)
    grade: str = Field(..., min_length=1)
    area: str = ""
    time: str = ""
    price: float = Field(0, ge=0)


class ClassUpdate(BaseModel):
    subject: Optional[str] = Field(None, min_length=1)
    grade: Optional[str] = Field(None, min_length=1)
    area: Optional[str] = None
    time: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)


class EnrollmentBody(BaseModel):
    studentId: str = Field(..., min_length=1)


# ----------------------
# Lessons / Papers (metadata; the PDF arrives as multipart)
# ----------------------
class MaterialUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    subject: Optional[str] = Field(None, min_length=1)
    grade: Optional[str] = Field(None, min_length=1)


# ----------------------
# Videos
# ----------------------
class VideoCreate(BaseModel):
    topic: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    grade: str = Field(..., min_length=1)
    videoUrl: str = Field(..., pattern=URL_PATTERN, description="Externally hosted video link")


class VideoUpdate(BaseModel):
    topic: Optional[str] = Field(None, min_length=1)
    subject: Optional[str] = Field(None, min_length=1)
    grade: Optional[str] = Field(None, min_length=1)
    videoUrl: Optional[str] = Field(None, pattern=URL_PATTERN)


# ----------------------
# Attendance
# ----------------------
class AttendanceEntry(BaseModel):
    studentId: str = Field(..., min_length=1)
    status: AttendanceStatus = "Present"
    notes: str = ""


class AttendanceBody(BaseModel):
    classId: str = Field(..., min_length=1)
    classDate: date
    attendanceData: List[AttendanceEntry]

    @field_validator("attendanceData")
    @classmethod
    def not_empty(cls, v):
        if not v:
            raise ValueError("attendanceData must contain at least one entry")
        return v


# ----------------------
# Payments
# ----------------------
class PaymentCreate(BaseModel):
    studentId: str = Field(..., min_length=1)
    classId: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    feeMonth: str = Field(..., min_length=1, description="Month the fee covers, e.g. 'October'")
    feeYear: int = Field(..., ge=1900)


# ----------------------
# Teacher profile
# ----------------------
PROFILE_TEXT_FIELDS = (
    "profileTitle",
    "publicContactNumber",
    "publicEmailAddress",
    "youtubeVideoUrl",
    "facebookUrl",
    "youtubeChannelUrl",
    "tiktokUrl",
    "instagramUrl",
    "homeHeadline",
    "homeSubheadline",
    "aboutText",
)


class TeacherProfile(BaseModel):
    """teacherprofile collection; one document per teacher user"""
    profileTitle: str = ""
    publicContactNumber: str = ""
    publicEmailAddress: str = ""
    youtubeVideoUrl: str = ""
    facebookUrl: str = ""
    youtubeChannelUrl: str = ""
    tiktokUrl: str = ""
    instagramUrl: str = ""
    homeHeadline: str = ""
    homeSubheadline: str = ""
    aboutText: str = ""
    logoUrl: str = ""
    logoPublicId: str = ""
    mainImageUrl: str = ""
    mainImagePublicId: str = ""


class TeacherProfileUpdate(BaseModel):
    profileTitle: Optional[str] = None
    publicContactNumber: Optional[str] = None
    publicEmailAddress: Optional[str] = None
    youtubeVideoUrl: Optional[str] = None
    facebookUrl: Optional[str] = None
    youtubeChannelUrl: Optional[str] = None
    tiktokUrl: Optional[str] = None
    instagramUrl: Optional[str] = None
    homeHeadline: Optional[str] = None
    homeSubheadline: Optional[str] = None
    aboutText: Optional[str] = None


def present_fields(body: BaseModel) -> dict:
    """Fields the client actually sent; an explicit null means no change."""
    return {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
