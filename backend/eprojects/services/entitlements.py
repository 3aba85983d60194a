from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

import sqlalchemy as sa
from sqlalchemy.orm import Session

from eprojects.core.security import as_utc, now_utc
from eprojects.models.course import Course, CoursePurchase
from eprojects.models.promo import PromoCode, PromoUsage
from eprojects.models.tool import Tool
from eprojects.models.user import User

ADMIN_ROLE = "admin"
BASIC_ROLE = "E-BASIC"
TOOL_ROLE = "E-TOOL"
MASTER_ROLE = "E-MASTER"
PAID_ROLES = (TOOL_ROLE, MASTER_ROLE)

_ROLE_RANK = {BASIC_ROLE: 1, TOOL_ROLE: 2, MASTER_ROLE: 3}

TOOL_HIDDEN = "hidden"
TOOL_LOCKED = "locked"
TOOL_AVAILABLE = "available"

_COURSE_MESSAGES = {
    "admin": "Acesso de administrador.",
    "purchased": "Curso adquirido.",
    "master_free": "Acesso incluído no plano E-MASTER.",
    "free": "Curso gratuito.",
    "promo_code": "Acesso liberado por código promocional.",
    "requires_promo_code": "Este curso requer um código promocional.",
    "requires_purchase": "Este curso requer compra.",
    "no_access": "Você não tem acesso a este curso.",
}


@dataclass(frozen=True)
class CourseAccessDecision:
    has_access: bool
    reason: str
    requires_promo_code: bool = False
    has_purchased: bool = False

    @property
    def message(self) -> str:
        return _COURSE_MESSAGES[self.reason]


def normalize_cpf(value: str | None) -> str:
    return "".join(ch for ch in (value or "") if ch.isdigit())


def parse_cpf_list(raw: str | None) -> set[str]:
    out: set[str] = set()
    for part in (raw or "").split(","):
        cpf = normalize_cpf(part)
        if cpf:
            out.add(cpf)
    return out


def role_rank(role: str | None) -> int:
    return _ROLE_RANK.get((role or "").strip(), 0)


def is_admin(user: User | None) -> bool:
    return user is not None and user.role == ADMIN_ROLE


def is_tool_hidden(user: User | None, tool: Tool) -> bool:
    """A tool with a CPF allow-list is invisible to anyone outside the list; admins are exempt."""
    allowed = parse_cpf_list(tool.restricted_cpfs)
    if not allowed:
        return False
    if is_admin(user):
        return False
    user_cpf = normalize_cpf(user.cpf if user is not None else None)
    if not user_cpf:
        return True
    return user_cpf not in allowed


def has_access_to_tool(user: User | None, tool: Tool) -> bool:
    if is_admin(user):
        return True
    user_role = user.role if user is not None else BASIC_ROLE
    required = role_rank(tool.access_level) or _ROLE_RANK[BASIC_ROLE]
    return role_rank(user_role) >= required


def tool_view_state(user: User | None, tool: Tool) -> str:
    if is_tool_hidden(user, tool):
        return TOOL_HIDDEN
    if not has_access_to_tool(user, tool):
        return TOOL_LOCKED
    return TOOL_AVAILABLE


def visible_tools(user: User | None, tools: list[Tool]) -> list[tuple[Tool, bool]]:
    """Drop hidden tools and pair the rest with their locked flag."""
    out: list[tuple[Tool, bool]] = []
    for tool in tools:
        state = tool_view_state(user, tool)
        if state == TOOL_HIDDEN:
            continue
        out.append((tool, state == TOOL_LOCKED))
    return out


def promo_grant_expiry(usage: PromoUsage, code: PromoCode) -> datetime:
    return as_utc(usage.used_at) + timedelta(days=int(code.days))


def check_course_purchase_active(db: Session, user_id: int, course_id: int, now: datetime | None = None) -> bool:
    at = now or now_utc()
    row = db.execute(
        sa.select(CoursePurchase.id)
        .where(
            CoursePurchase.user_id == user_id,
            CoursePurchase.course_id == course_id,
            CoursePurchase.active.is_(True),
            CoursePurchase.expires_at >= at,
        )
        .limit(1)
    ).first()
    return row is not None


def has_active_course_promo(db: Session, user_id: int, course_id: int, now: datetime | None = None) -> bool:
    at = now or now_utc()
    rows = db.execute(
        sa.select(PromoUsage, PromoCode)
        .join(PromoCode, PromoCode.id == PromoUsage.promo_id)
        .where(
            PromoUsage.user_id == user_id,
            PromoCode.promo_type == "course",
            PromoCode.course_id == course_id,
            PromoCode.is_active.is_(True),
        )
    ).all()
    return any(promo_grant_expiry(usage, code) >= at for usage, code in rows)


def check_course_access(db: Session, user: User, course: Course, now: datetime | None = None) -> CourseAccessDecision:
    """Resolve course access; the first matching rule wins."""
    at = now or now_utc()
    if is_admin(user):
        return CourseAccessDecision(True, "admin", requires_promo_code=bool(course.requires_promo_code))

    if check_course_purchase_active(db, user.id, course.id, now=at):
        return CourseAccessDecision(True, "purchased", requires_promo_code=bool(course.requires_promo_code), has_purchased=True)

    if user.role == MASTER_ROLE and course.is_free and not course.is_hidden:
        return CourseAccessDecision(True, "master_free", requires_promo_code=bool(course.requires_promo_code))

    if not course.requires_promo_code and course.is_free and not course.is_hidden:
        return CourseAccessDecision(True, "free")

    if course.requires_promo_code:
        if has_active_course_promo(db, user.id, course.id, now=at):
            return CourseAccessDecision(True, "promo_code", requires_promo_code=True)
        return CourseAccessDecision(False, "requires_promo_code", requires_promo_code=True)

    if not course.is_free:
        return CourseAccessDecision(False, "requires_purchase")
    return CourseAccessDecision(False, "no_access")
