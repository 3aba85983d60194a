from __future__ import annotations

import logging

import sqlalchemy as sa
from sqlalchemy.orm import Session

from eprojects.core.security import new_session_id, now_utc
from eprojects.models.user import ActiveSession

logger = logging.getLogger(__name__)


def register_session(
    db: Session,
    *,
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> str:
    """Make a fresh session the only active one for the user."""
    revoked = db.execute(sa.delete(ActiveSession).where(ActiveSession.user_id == user_id)).rowcount or 0
    if revoked:
        logger.info("previous sessions replaced user_id=%s revoked=%s", user_id, revoked)
    sid = new_session_id()
    db.add(
        ActiveSession(
            user_id=user_id,
            session_id=sid,
            user_agent=(user_agent or "")[:500] or None,
            ip_address=ip_address,
        )
    )
    db.flush()
    return sid


def get_active_session(db: Session, *, user_id: int, session_id: str | None) -> ActiveSession | None:
    if not session_id:
        return None
    return db.execute(
        sa.select(ActiveSession).where(
            ActiveSession.user_id == user_id,
            ActiveSession.session_id == session_id,
        )
    ).scalar_one_or_none()


def touch_session(db: Session, row: ActiveSession) -> None:
    row.last_activity = now_utc()
    db.flush()


def revoke_session(db: Session, *, session_id: str) -> int:
    return int(db.execute(sa.delete(ActiveSession).where(ActiveSession.session_id == session_id)).rowcount or 0)


def revoke_user_sessions(db: Session, *, user_id: int) -> int:
    return int(db.execute(sa.delete(ActiveSession).where(ActiveSession.user_id == user_id)).rowcount or 0)
