from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

CourseLevel = Literal["beginner", "intermediate", "advanced"]
VideoSource = Literal["youtube", "drive"]
FileType = Literal["pdf", "doc", "xls", "ppt", "zip", "img", "link", "object"]
IconType = Literal["file", "link", "object"]
CourseAccessReason = Literal[
    "admin",
    "purchased",
    "master_free",
    "free",
    "promo_code",
    "requires_promo_code",
    "requires_purchase",
    "no_access",
]


class CourseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    instructor: str
    duration: str
    level: CourseLevel
    category: str
    image_url: str | None = None
    price: Decimal | None = None
    requires_promo_code: bool
    is_hidden: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LessonOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    title: str
    description: str
    video_url: str | None = None
    video_source: VideoSource
    order: int


class MaterialOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    lesson_id: int | None = None
    title: str
    description: str
    file_url: str | None = None
    file_type: FileType
    icon_type: IconType
    downloadable: bool


class CourseAccessOut(BaseModel):
    has_access: bool
    reason: CourseAccessReason
    message: str
    requires_promo_code: bool = False
    has_purchased: bool = False


class CourseDetailOut(CourseOut):
    lessons: list[LessonOut] = Field(default_factory=list)
    materials: list[MaterialOut] = Field(default_factory=list)
    access: CourseAccessOut


class CourseCreateIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=10000)
    instructor: str = Field(..., min_length=1, max_length=120)
    duration: str = Field(..., min_length=1, max_length=60)
    level: CourseLevel = "beginner"
    category: str = Field(..., min_length=1, max_length=60)
    image_url: str | None = Field(default=None, max_length=2048)
    price: Decimal | None = Field(default=None, ge=0)
    requires_promo_code: bool = False
    is_hidden: bool = False


class CourseUpdateIn(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=10000)
    instructor: str | None = Field(default=None, min_length=1, max_length=120)
    duration: str | None = Field(default=None, min_length=1, max_length=60)
    level: CourseLevel | None = None
    category: str | None = Field(default=None, min_length=1, max_length=60)
    image_url: str | None = Field(default=None, max_length=2048)
    price: Decimal | None = Field(default=None, ge=0)
    requires_promo_code: bool | None = None
    is_hidden: bool | None = None


class LessonIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=10000)
    video_url: str = Field(..., min_length=1, max_length=2048)
    video_source: VideoSource = "youtube"
    order: int | None = Field(default=None, ge=0)


class LessonUpdateIn(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=10000)
    video_url: str | None = Field(default=None, min_length=1, max_length=2048)
    video_source: VideoSource | None = None
    order: int | None = Field(default=None, ge=0)


class MaterialIn(BaseModel):
    lesson_id: int | None = None
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=10000)
    file_url: str = Field(..., min_length=1, max_length=2048)
    file_type: FileType
    icon_type: IconType = "file"
    downloadable: bool = True


class MaterialUpdateIn(BaseModel):
    lesson_id: int | None = None
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=10000)
    file_url: str | None = Field(default=None, min_length=1, max_length=2048)
    file_type: FileType | None = None
    icon_type: IconType | None = None
    downloadable: bool | None = None


class CoursePurchaseOut(BaseModel):
    payment_intent_id: str
    client_secret: str | None = None
    amount_cents: int
    currency: str
