from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Session

from eprojects.core.security import now_utc
from eprojects.models.course import Course, CoursePurchase, Lesson, Material
from eprojects.models.promo import PromoCode, PromoUsage

VALID_LEVELS = {"beginner", "intermediate", "advanced"}
VALID_VIDEO_SOURCES = {"youtube", "drive"}
VALID_FILE_TYPES = {"pdf", "doc", "xls", "ppt", "zip", "img", "link", "object"}
VALID_ICON_TYPES = {"file", "link", "object"}

_COURSE_FIELDS = (
    "title",
    "description",
    "instructor",
    "duration",
    "level",
    "category",
    "image_url",
    "price",
    "requires_promo_code",
    "is_hidden",
)
_LESSON_FIELDS = ("title", "description", "video_url", "video_source", "order")
_MATERIAL_FIELDS = ("lesson_id", "title", "description", "file_url", "file_type", "icon_type", "downloadable")


def _apply(row, fields: tuple[str, ...], data: dict):
    for key in fields:
        if key in data:
            setattr(row, key, data[key])


def list_courses(db: Session, *, include_hidden: bool) -> list[Course]:
    stmt = sa.select(Course).order_by(Course.created_at.desc(), Course.id.desc())
    if not include_hidden:
        stmt = stmt.where(Course.is_hidden.is_(False))
    return list(db.execute(stmt).scalars())


def create_course(db: Session, *, actor_user_id: int, data: dict) -> Course:
    course = Course(created_by=actor_user_id)
    _apply(course, _COURSE_FIELDS, data)
    if course.level is None:
        course.level = "beginner"
    if course.level not in VALID_LEVELS:
        raise ValueError("Nível de curso inválido")
    db.add(course)
    db.flush()
    return course


def update_course(db: Session, *, course: Course, data: dict) -> Course:
    _apply(course, _COURSE_FIELDS, data)
    if course.level not in VALID_LEVELS:
        raise ValueError("Nível de curso inválido")
    course.updated_at = now_utc()
    db.flush()
    return course


def toggle_course_visibility(db: Session, *, course: Course) -> Course:
    course.is_hidden = not course.is_hidden
    course.updated_at = now_utc()
    db.flush()
    return course


def delete_course(db: Session, *, course: Course) -> None:
    promo_ids = sa.select(PromoCode.id).where(PromoCode.course_id == course.id)
    db.execute(sa.delete(PromoUsage).where(PromoUsage.promo_id.in_(promo_ids)))
    db.execute(sa.delete(PromoCode).where(PromoCode.course_id == course.id))
    db.execute(sa.delete(CoursePurchase).where(CoursePurchase.course_id == course.id))
    db.delete(course)


def add_lesson(db: Session, *, course: Course, data: dict) -> Lesson:
    lesson = Lesson(course_id=course.id)
    _apply(lesson, _LESSON_FIELDS, data)
    if lesson.video_source is None:
        lesson.video_source = "youtube"
    if lesson.video_source not in VALID_VIDEO_SOURCES:
        raise ValueError("Fonte de vídeo inválida")
    if lesson.order is None:
        current_max = db.execute(
            sa.select(sa.func.max(Lesson.order)).where(Lesson.course_id == course.id)
        ).scalar_one_or_none()
        lesson.order = int(current_max or 0) + 1
    db.add(lesson)
    db.flush()
    return lesson


def get_lesson(db: Session, *, course_id: int, lesson_id: int) -> Lesson | None:
    lesson = db.get(Lesson, lesson_id)
    if lesson is None or lesson.course_id != course_id:
        return None
    return lesson


def update_lesson(db: Session, *, lesson: Lesson, data: dict) -> Lesson:
    _apply(lesson, _LESSON_FIELDS, data)
    if lesson.video_source not in VALID_VIDEO_SOURCES:
        raise ValueError("Fonte de vídeo inválida")
    db.flush()
    return lesson


def delete_lesson(db: Session, *, lesson: Lesson) -> None:
    db.execute(sa.update(Material).where(Material.lesson_id == lesson.id).values(lesson_id=None))
    db.delete(lesson)


def _check_material(db: Session, material: Material) -> None:
    if material.file_type not in VALID_FILE_TYPES:
        raise ValueError("Tipo de arquivo inválido")
    if material.icon_type not in VALID_ICON_TYPES:
        raise ValueError("Tipo de ícone inválido")
    if material.lesson_id is not None and get_lesson(db, course_id=material.course_id, lesson_id=material.lesson_id) is None:
        raise ValueError("Aula não pertence a este curso")


def add_material(db: Session, *, course: Course, data: dict) -> Material:
    material = Material(course_id=course.id)
    _apply(material, _MATERIAL_FIELDS, data)
    if material.icon_type is None:
        material.icon_type = "file"
    if material.downloadable is None:
        material.downloadable = True
    _check_material(db, material)
    db.add(material)
    db.flush()
    return material


def get_material(db: Session, *, course_id: int, material_id: int) -> Material | None:
    material = db.get(Material, material_id)
    if material is None or material.course_id != course_id:
        return None
    return material


def update_material(db: Session, *, material: Material, data: dict) -> Material:
    _apply(material, _MATERIAL_FIELDS, data)
    _check_material(db, material)
    db.flush()
    return material


def delete_material(db: Session, *, material: Material) -> None:
    db.delete(material)
