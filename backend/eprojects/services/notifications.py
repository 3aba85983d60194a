from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Session

from eprojects.core.security import now_utc
from eprojects.models.notification import Notification
from eprojects.models.user import User

VALID_TYPES = {"info", "warning", "success", "error", "chat"}
VALID_TARGETS = {"all", "E-BASIC", "E-TOOL", "E-MASTER", "admin", "individual"}


def notify_user(
    db: Session,
    *,
    user_id: int,
    title: str,
    message: str,
    type: str = "info",
    link: str | None = None,
    created_by: int | None = None,
) -> Notification:
    row = Notification(
        title=title,
        message=message,
        type=type,
        link=link,
        target_role="individual",
        user_id=user_id,
        is_read=False,
        created_by=created_by,
    )
    db.add(row)
    return row


def create_notification(
    db: Session,
    *,
    title: str,
    message: str,
    type: str = "info",
    target_role: str = "all",
    user_id: int | None = None,
    link: str | None = None,
    expires_at: datetime | None = None,
    created_by: int | None = None,
) -> Notification:
    if type not in VALID_TYPES:
        raise ValueError("Tipo de notificação inválido")
    if user_id is not None:
        if db.get(User, user_id) is None:
            raise LookupError("Usuário não encontrado")
        target_role = "individual"
    elif target_role == "individual":
        raise ValueError("Notificação individual requer um usuário")
    if target_role not in VALID_TARGETS:
        raise ValueError("Público da notificação inválido")

    row = Notification(
        title=title,
        message=message,
        type=type,
        link=link,
        target_role=target_role,
        user_id=user_id,
        is_read=False,
        expires_at=expires_at,
        created_by=created_by,
    )
    db.add(row)
    db.flush()
    return row


def create_bulk_notifications(
    db: Session,
    *,
    title: str,
    message: str,
    target_role: str,
    type: str = "info",
    link: str | None = None,
    created_by: int | None = None,
) -> int:
    """Fan out one individual notification per user holding ``target_role`` (every user for 'all')."""
    if type not in VALID_TYPES:
        raise ValueError("Tipo de notificação inválido")
    stmt = sa.select(User.id)
    if target_role != "all":
        if target_role not in VALID_TARGETS or target_role == "individual":
            raise ValueError("Público da notificação inválido")
        stmt = stmt.where(User.role == target_role)
    user_ids = list(db.execute(stmt).scalars())
    for uid in user_ids:
        notify_user(db, user_id=uid, title=title, message=message, type=type, link=link, created_by=created_by)
    db.flush()
    return len(user_ids)


def visible_notifications_filter(user: User, now: datetime | None = None):
    at = now or now_utc()
    return sa.and_(
        sa.or_(
            sa.and_(Notification.target_role == "individual", Notification.user_id == user.id),
            sa.and_(Notification.target_role == user.role, Notification.user_id.is_(None)),
            sa.and_(Notification.target_role == "all", Notification.user_id.is_(None)),
        ),
        sa.or_(Notification.expires_at.is_(None), Notification.expires_at >= at),
    )


def list_notifications_for_user(db: Session, user: User, now: datetime | None = None) -> list[Notification]:
    return list(
        db.execute(
            sa.select(Notification)
            .where(visible_notifications_filter(user, now=now))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        ).scalars()
    )


def mark_notification_read(db: Session, user: User, notification_id: int) -> Notification:
    row = db.execute(
        sa.select(Notification).where(Notification.id == notification_id, visible_notifications_filter(user))
    ).scalar_one_or_none()
    if row is None:
        raise LookupError("Notificação não encontrada")
    row.is_read = True
    db.flush()
    return row


def delete_notification(db: Session, notification_id: int) -> None:
    row = db.get(Notification, notification_id)
    if row is None:
        raise LookupError("Notificação não encontrada")
    db.delete(row)
