from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from eprojects.core.security import as_utc, now_utc
from eprojects.models.user import User
from eprojects.services.entitlements import (
    ADMIN_ROLE,
    BASIC_ROLE,
    MASTER_ROLE,
    PAID_ROLES,
    TOOL_ROLE,
    role_rank,
)

logger = logging.getLogger(__name__)

_ESCALATION = {BASIC_ROLE: TOOL_ROLE, TOOL_ROLE: MASTER_ROLE}


def _normalize_target_role(target_role: str | None) -> str | None:
    if target_role is None:
        return None
    raw = target_role.strip()
    if raw not in PAID_ROLES:
        raise ValueError("Papel de destino invalido")
    return raw


def compute_extension(
    current_role: str,
    current_expiry: datetime | None,
    days: int,
    *,
    target_role: str | None = None,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    """Return (role, expiry) after granting ``days``.

    The expiry stacks on whichever is later of ``now`` and the current expiry.
    An explicit ``target_role`` is adopted when it is not below the current role;
    without one the role climbs one step on the E-BASIC -> E-TOOL -> E-MASTER ladder.
    """
    if days <= 0:
        raise ValueError("Quantidade de dias deve ser positiva")
    at = now or now_utc()
    expiry = as_utc(current_expiry)
    baseline = expiry if expiry is not None and expiry > at else at
    new_expiry = baseline + timedelta(days=days)

    target = _normalize_target_role(target_role)
    if current_role == ADMIN_ROLE:
        new_role = ADMIN_ROLE
    elif target is not None:
        new_role = target if role_rank(target) >= role_rank(current_role) else current_role
    else:
        new_role = _ESCALATION.get(current_role, current_role)
    return new_role, new_expiry


def extend_pro_status(
    db: Session,
    user: User,
    days: int,
    *,
    target_role: str | None = None,
    now: datetime | None = None,
) -> User:
    new_role, new_expiry = compute_extension(
        user.role,
        user.role_expiry_date,
        days,
        target_role=target_role,
        now=now,
    )
    logger.info(
        "pro status extended user_id=%s role=%s->%s days=%s expiry=%s",
        user.id,
        user.role,
        new_role,
        days,
        new_expiry.isoformat(),
    )
    user.role = new_role
    user.role_expiry_date = new_expiry
    db.add(user)
    db.flush()
    return user
