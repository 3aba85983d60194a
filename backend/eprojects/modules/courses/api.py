from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from eprojects.api.deps import get_current_user, get_optional_user, require_admin
from eprojects.core.config import settings
from eprojects.db.session import get_db
from eprojects.models.course import Course, Lesson, Material
from eprojects.schemas.auth import SimpleOKOut
from eprojects.schemas.courses import (
    CourseAccessOut,
    CourseCreateIn,
    CourseDetailOut,
    CourseOut,
    CoursePurchaseOut,
    CourseUpdateIn,
    LessonIn,
    LessonOut,
    LessonUpdateIn,
    MaterialIn,
    MaterialOut,
    MaterialUpdateIn,
)
from eprojects.services.billing import create_course_payment_intent
from eprojects.services.courses import (
    add_lesson,
    add_material,
    create_course,
    delete_course,
    delete_lesson,
    delete_material,
    get_lesson,
    get_material,
    list_courses,
    toggle_course_visibility,
    update_course,
    update_lesson,
    update_material,
)
from eprojects.services.entitlements import CourseAccessDecision, check_course_access, is_admin

router = APIRouter()


def _visible_course_or_404(db: Session, course_id: int, viewer) -> Course:
    course = db.get(Course, course_id)
    if course is None or (course.is_hidden and not is_admin(viewer)):
        raise HTTPException(404, "Curso não encontrado")
    return course


def _admin_course_or_404(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise HTTPException(404, "Curso não encontrado")
    return course


def _access_for(db: Session, viewer, course: Course) -> CourseAccessDecision:
    if viewer is not None:
        return check_course_access(db, viewer, course)
    if course.requires_promo_code:
        return CourseAccessDecision(False, "requires_promo_code", requires_promo_code=True)
    if course.is_free:
        return CourseAccessDecision(True, "free")
    return CourseAccessDecision(False, "requires_purchase")


def _access_out(decision: CourseAccessDecision) -> CourseAccessOut:
    return CourseAccessOut(
        has_access=decision.has_access,
        reason=decision.reason,
        message=decision.message,
        requires_promo_code=decision.requires_promo_code,
        has_purchased=decision.has_purchased,
    )


def _lesson_out(lesson: Lesson, *, with_content: bool) -> LessonOut:
    out = LessonOut.model_validate(lesson)
    if not with_content:
        out.video_url = None
    return out


def _material_out(material: Material, *, with_content: bool) -> MaterialOut:
    out = MaterialOut.model_validate(material)
    if not with_content:
        out.file_url = None
    return out


@router.get("", response_model=list[CourseOut])
def get_courses(db: Session = Depends(get_db), viewer=Depends(get_optional_user)):
    return [CourseOut.model_validate(c) for c in list_courses(db, include_hidden=is_admin(viewer))]


@router.get("/{course_id}", response_model=CourseDetailOut)
def get_course(course_id: int, db: Session = Depends(get_db), viewer=Depends(get_optional_user)):
    course = _visible_course_or_404(db, course_id, viewer)
    decision = _access_for(db, viewer, course)
    base = CourseOut.model_validate(course).model_dump()
    return CourseDetailOut(
        **base,
        lessons=[_lesson_out(lesson, with_content=decision.has_access) for lesson in course.lessons],
        materials=[_material_out(m, with_content=decision.has_access) for m in course.materials],
        access=_access_out(decision),
    )


@router.get("/{course_id}/access", response_model=CourseAccessOut)
def get_course_access(course_id: int, db: Session = Depends(get_db), current=Depends(get_current_user)):
    course = _visible_course_or_404(db, course_id, current)
    return _access_out(check_course_access(db, current, course))


@router.post("/{course_id}/purchase", response_model=CoursePurchaseOut)
def purchase_course(course_id: int, db: Session = Depends(get_db), current=Depends(get_current_user)):
    course = _visible_course_or_404(db, course_id, current)
    try:
        intent = create_course_payment_intent(db, user=current, course=course)
    except NotImplementedError as exc:
        db.rollback()
        raise HTTPException(503, str(exc))
    except LookupError as exc:
        db.rollback()
        raise HTTPException(404, str(exc))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    return CoursePurchaseOut(
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        amount_cents=intent.amount_cents,
        currency=settings.STRIPE_CURRENCY,
    )


@router.post("", response_model=CourseOut, status_code=201)
def create_course_admin(payload: CourseCreateIn, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        course = create_course(db, actor_user_id=current.id, data=payload.model_dump())
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(course)
    return CourseOut.model_validate(course)


@router.patch("/{course_id}", response_model=CourseOut)
def update_course_admin(
    course_id: int,
    payload: CourseUpdateIn,
    db: Session = Depends(get_db),
    current=Depends(require_admin),
):
    course = _admin_course_or_404(db, course_id)
    try:
        update_course(db, course=course, data=payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(course)
    return CourseOut.model_validate(course)


@router.delete("/{course_id}", response_model=SimpleOKOut)
def delete_course_admin(course_id: int, db: Session = Depends(get_db), current=Depends(require_admin)):
    course = _admin_course_or_404(db, course_id)
    delete_course(db, course=course)
    db.commit()
    return SimpleOKOut(ok=True)


@router.patch("/{course_id}/toggle-visibility", response_model=CourseOut)
def toggle_visibility(course_id: int, db: Session = Depends(get_db), current=Depends(require_admin)):
    course = _admin_course_or_404(db, course_id)
    toggle_course_visibility(db, course=course)
    db.commit()
    db.refresh(course)
    return CourseOut.model_validate(course)


@router.get("/{course_id}/lessons", response_model=list[LessonOut])
def get_lessons(course_id: int, db: Session = Depends(get_db), viewer=Depends(get_optional_user)):
    course = _visible_course_or_404(db, course_id, viewer)
    decision = _access_for(db, viewer, course)
    return [_lesson_out(lesson, with_content=decision.has_access) for lesson in course.lessons]


@router.post("/{course_id}/lessons", response_model=LessonOut, status_code=201)
def create_lesson(course_id: int, payload: LessonIn, db: Session = Depends(get_db), current=Depends(require_admin)):
    course = _admin_course_or_404(db, course_id)
    try:
        lesson = add_lesson(db, course=course, data=payload.model_dump())
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(lesson)
    return LessonOut.model_validate(lesson)


@router.patch("/{course_id}/lessons/{lesson_id}", response_model=LessonOut)
def patch_lesson(
    course_id: int,
    lesson_id: int,
    payload: LessonUpdateIn,
    db: Session = Depends(get_db),
    current=Depends(require_admin),
):
    lesson = get_lesson(db, course_id=course_id, lesson_id=lesson_id)
    if lesson is None:
        raise HTTPException(404, "Aula não encontrada")
    try:
        update_lesson(db, lesson=lesson, data=payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(lesson)
    return LessonOut.model_validate(lesson)


@router.delete("/{course_id}/lessons/{lesson_id}", response_model=SimpleOKOut)
def remove_lesson(course_id: int, lesson_id: int, db: Session = Depends(get_db), current=Depends(require_admin)):
    lesson = get_lesson(db, course_id=course_id, lesson_id=lesson_id)
    if lesson is None:
        raise HTTPException(404, "Aula não encontrada")
    delete_lesson(db, lesson=lesson)
    db.commit()
    return SimpleOKOut(ok=True)


@router.get("/{course_id}/materials", response_model=list[MaterialOut])
def get_materials(course_id: int, db: Session = Depends(get_db), viewer=Depends(get_optional_user)):
    course = _visible_course_or_404(db, course_id, viewer)
    decision = _access_for(db, viewer, course)
    return [_material_out(m, with_content=decision.has_access) for m in course.materials]


@router.post("/{course_id}/materials", response_model=MaterialOut, status_code=201)
def create_material(course_id: int, payload: MaterialIn, db: Session = Depends(get_db), current=Depends(require_admin)):
    course = _admin_course_or_404(db, course_id)
    try:
        material = add_material(db, course=course, data=payload.model_dump())
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(material)
    return MaterialOut.model_validate(material)


@router.patch("/{course_id}/materials/{material_id}", response_model=MaterialOut)
def patch_material(
    course_id: int,
    material_id: int,
    payload: MaterialUpdateIn,
    db: Session = Depends(get_db),
    current=Depends(require_admin),
):
    material = get_material(db, course_id=course_id, material_id=material_id)
    if material is None:
        raise HTTPException(404, "Material não encontrado")
    try:
        update_material(db, material=material, data=payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(material)
    return MaterialOut.model_validate(material)


@router.delete("/{course_id}/materials/{material_id}", response_model=SimpleOKOut)
def remove_material(course_id: int, material_id: int, db: Session = Depends(get_db), current=Depends(require_admin)):
    material = get_material(db, course_id=course_id, material_id=material_id)
    if material is None:
        raise HTTPException(404, "Material não encontrado")
    delete_material(db, material=material)
    db.commit()
    return SimpleOKOut(ok=True)
