from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eprojects.core.security import as_utc, now_utc
from eprojects.models.course import Course
from eprojects.models.promo import PromoCode, PromoUsage
from eprojects.models.user import User
from eprojects.services.audit import audit
from eprojects.services.entitlements import PAID_ROLES
from eprojects.services.pro_status import extend_pro_status

logger = logging.getLogger(__name__)

MSG_INVALID = "Código promocional inválido ou inativo."
MSG_LIMIT_REACHED = "Este código promocional já atingiu o limite máximo de usos."
MSG_EXPIRED = "Este código promocional expirou."
MSG_NOT_ROLE = "Este código promocional não é para upgrade de papel."
MSG_NOT_COURSE = "Este código promocional não é para acesso a curso."
MSG_WRONG_COURSE = "Este código promocional não é válido para este curso."
MSG_ALREADY_USED = "Você já usou este código promocional."
MSG_COURSE_NOT_FOUND = "Curso não encontrado."

VALID_PROMO_TYPES = {"role", "course"}


@dataclass(frozen=True)
class PromoRedemptionResult:
    success: bool
    message: str
    reason: str
    days: int | None = None
    role: str | None = None
    role_expiry_date: datetime | None = None
    course_id: int | None = None


def _fail(reason: str, message: str) -> PromoRedemptionResult:
    return PromoRedemptionResult(success=False, message=message, reason=reason)


def get_promo_code_by_code(db: Session, code: str) -> PromoCode | None:
    raw = (code or "").strip()
    if not raw:
        return None
    return db.execute(sa.select(PromoCode).where(PromoCode.code == raw)).scalar_one_or_none()


def _already_used(db: Session, promo_id: int, user_id: int) -> bool:
    row = db.execute(
        sa.select(PromoUsage.id).where(PromoUsage.promo_id == promo_id, PromoUsage.user_id == user_id)
    ).first()
    return row is not None


def _validate_common(promo: PromoCode | None, at: datetime) -> PromoRedemptionResult | None:
    if promo is None or not promo.is_active:
        return _fail("invalid", MSG_INVALID)
    if promo.used_count >= promo.max_uses:
        return _fail("limit_reached", MSG_LIMIT_REACHED)
    expiry = as_utc(promo.expiry_date)
    if expiry is not None and expiry < at:
        return _fail("expired", MSG_EXPIRED)
    return None


def _record_usage(db: Session, promo: PromoCode, user: User, at: datetime) -> PromoRedemptionResult | None:
    """Insert the usage row and bump the counter.

    The (promo_id, user_id) unique constraint and the guarded counter update
    turn concurrent duplicates into deterministic failures. On failure the
    transaction is rolled back and the failing result is returned.
    """
    promo_id = promo.id
    user_id = user.id
    db.add(PromoUsage(promo_id=promo_id, user_id=user_id, used_at=at))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info("promo redemption conflict promo_id=%s user_id=%s", promo_id, user_id)
        return _fail("already_used", MSG_ALREADY_USED)

    updated = db.execute(
        sa.update(PromoCode)
        .where(PromoCode.id == promo_id, PromoCode.used_count < PromoCode.max_uses)
        .values(used_count=PromoCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if updated.rowcount != 1:
        db.rollback()
        logger.info("promo redemption over limit promo_id=%s user_id=%s", promo_id, user_id)
        return _fail("limit_reached", MSG_LIMIT_REACHED)
    db.expire(promo, ["used_count"])
    return None


def redeem_role_code(db: Session, user: User, code: str, now: datetime | None = None) -> PromoRedemptionResult:
    at = now or now_utc()
    promo = get_promo_code_by_code(db, code)
    failed = _validate_common(promo, at)
    if failed:
        return failed
    if promo.promo_type != "role":
        return _fail("wrong_type", MSG_NOT_ROLE)
    if _already_used(db, promo.id, user.id):
        return _fail("already_used", MSG_ALREADY_USED)

    days = int(promo.days)
    target_role = promo.target_role
    promo_id = promo.id
    failed = _record_usage(db, promo, user, at)
    if failed:
        return failed

    extend_pro_status(db, user, days, target_role=target_role, now=at)
    audit(db, user.id, "promo_code", promo_id, "redeemed", {"promo_type": "role", "days": days, "role": user.role})
    logger.info("role promo redeemed promo_id=%s user_id=%s role=%s", promo_id, user.id, user.role)
    return PromoRedemptionResult(
        success=True,
        message=f"Código promocional ativado! Seu plano foi atualizado para {user.role} por {days} dias.",
        reason="ok",
        days=days,
        role=user.role,
        role_expiry_date=user.role_expiry_date,
    )


def redeem_course_code(
    db: Session,
    user: User,
    code: str,
    course_id: int,
    now: datetime | None = None,
) -> PromoRedemptionResult:
    at = now or now_utc()
    promo = get_promo_code_by_code(db, code)
    failed = _validate_common(promo, at)
    if failed:
        return failed
    if promo.promo_type != "course":
        return _fail("wrong_type", MSG_NOT_COURSE)
    if promo.course_id != course_id:
        return _fail("wrong_course", MSG_WRONG_COURSE)
    course = db.get(Course, course_id)
    if course is None:
        return _fail("course_not_found", MSG_COURSE_NOT_FOUND)
    if _already_used(db, promo.id, user.id):
        return _fail("already_used", MSG_ALREADY_USED)

    days = int(promo.days)
    promo_id = promo.id
    course_title = course.title
    failed = _record_usage(db, promo, user, at)
    if failed:
        return failed

    audit(db, user.id, "promo_code", promo_id, "redeemed", {"promo_type": "course", "days": days, "course_id": course_id})
    logger.info("course promo redeemed promo_id=%s user_id=%s course_id=%s", promo_id, user.id, course_id)
    return PromoRedemptionResult(
        success=True,
        message=f'Código promocional ativado! Você ganhou acesso ao curso "{course_title}" por {days} dias.',
        reason="ok",
        days=days,
        course_id=course_id,
    )


def redeem_code(
    db: Session,
    user: User,
    code: str,
    course_id: int | None = None,
    now: datetime | None = None,
) -> PromoRedemptionResult:
    """Dispatch on the stored promo type; an explicit course id is checked against the code's course."""
    promo = get_promo_code_by_code(db, code)
    if promo is None:
        return _fail("invalid", MSG_INVALID)
    if promo.promo_type == "course":
        target_course = course_id if course_id is not None else promo.course_id
        if target_course is None:
            return _fail("invalid", MSG_INVALID)
        return redeem_course_code(db, user, code, target_course, now=now)
    return redeem_role_code(db, user, code, now=now)


def list_promo_codes(db: Session) -> list[PromoCode]:
    return list(db.execute(sa.select(PromoCode).order_by(PromoCode.created_at.desc(), PromoCode.id.desc())).scalars())


def create_promo_code(
    db: Session,
    *,
    actor_user_id: int,
    code: str,
    promo_type: str,
    days: int,
    max_uses: int,
    target_role: str | None = None,
    course_id: int | None = None,
    expiry_date: datetime | None = None,
    is_active: bool = True,
) -> PromoCode:
    raw_code = (code or "").strip()
    if not raw_code:
        raise ValueError("Código promocional é obrigatório")
    if promo_type not in VALID_PROMO_TYPES:
        raise ValueError("Tipo de código promocional inválido")
    if get_promo_code_by_code(db, raw_code) is not None:
        raise ValueError("Código promocional já existe")

    if promo_type == "role":
        if target_role not in PAID_ROLES:
            raise ValueError("Papel de destino inválido")
        course_id = None
    else:
        if course_id is None or db.get(Course, course_id) is None:
            raise ValueError(MSG_COURSE_NOT_FOUND)
        target_role = None

    promo = PromoCode(
        code=raw_code,
        promo_type=promo_type,
        target_role=target_role,
        course_id=course_id,
        days=days,
        max_uses=max_uses,
        used_count=0,
        is_active=is_active,
        expiry_date=expiry_date,
        created_by=actor_user_id,
    )
    db.add(promo)
    db.flush()
    audit(db, actor_user_id, "promo_code", promo.id, "created", {"code": raw_code, "promo_type": promo_type, "days": days})
    return promo


def toggle_promo_code(db: Session, *, actor_user_id: int, promo_id: int) -> PromoCode:
    promo = db.get(PromoCode, promo_id)
    if promo is None:
        raise LookupError("Código promocional não encontrado")
    promo.is_active = not promo.is_active
    db.flush()
    audit(db, actor_user_id, "promo_code", promo.id, "toggled", {"is_active": promo.is_active})
    return promo


def delete_promo_code(db: Session, *, actor_user_id: int, promo_id: int) -> None:
    promo = db.get(PromoCode, promo_id)
    if promo is None:
        raise LookupError("Código promocional não encontrado")
    db.execute(sa.delete(PromoUsage).where(PromoUsage.promo_id == promo_id))
    db.delete(promo)
    audit(db, actor_user_id, "promo_code", promo_id, "deleted", {"code": promo.code})
