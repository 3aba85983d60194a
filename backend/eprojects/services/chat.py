from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Session

from eprojects.core.security import now_utc
from eprojects.models.chat import ChatMessage, ChatThread
from eprojects.models.user import User
from eprojects.services.notifications import notify_user


def _is_admin(user: User) -> bool:
    return user.role == "admin"


def get_thread_for(db: Session, *, thread_id: int, user: User) -> ChatThread:
    """Load a thread the user owns, or any thread for an admin."""
    thread = db.get(ChatThread, thread_id)
    if thread is None:
        raise LookupError("Conversa não encontrada")
    if thread.user_id != user.id and not _is_admin(user):
        raise PermissionError("Forbidden")
    return thread


def list_user_threads(db: Session, *, user_id: int) -> list[ChatThread]:
    return list(
        db.execute(
            sa.select(ChatThread)
            .where(ChatThread.user_id == user_id)
            .order_by(ChatThread.last_message_at.desc(), ChatThread.id.desc())
        ).scalars()
    )


def list_admin_threads(db: Session) -> list[tuple[ChatThread, str]]:
    rows = db.execute(
        sa.select(ChatThread, User.username)
        .join(User, User.id == ChatThread.user_id)
        .order_by(ChatThread.last_message_at.desc(), ChatThread.id.desc())
    ).all()
    return [(thread, username) for thread, username in rows]


def unread_count_for_user(db: Session, *, user_id: int) -> int:
    return int(
        db.execute(
            sa.select(sa.func.count(ChatThread.id)).where(
                ChatThread.user_id == user_id,
                ChatThread.is_user_unread.is_(True),
            )
        ).scalar_one()
    )


def unread_count_for_admin(db: Session) -> int:
    return int(
        db.execute(sa.select(sa.func.count(ChatThread.id)).where(ChatThread.is_admin_unread.is_(True))).scalar_one()
    )


def create_thread(db: Session, *, user: User, subject: str, message: str | None = None) -> ChatThread:
    subject_clean = (subject or "").strip()
    if not subject_clean:
        raise ValueError("Assunto é obrigatório")
    thread = ChatThread(
        user_id=user.id,
        subject=subject_clean,
        status="open",
        is_user_unread=False,
        is_admin_unread=True,
        last_message_at=now_utc(),
    )
    db.add(thread)
    db.flush()
    if message and message.strip():
        post_message(db, thread=thread, author=user, message=message)
    return thread


def mark_read_for_viewer(db: Session, *, thread: ChatThread, viewer: User) -> None:
    if thread.user_id == viewer.id:
        thread.is_user_unread = False
    elif _is_admin(viewer):
        thread.is_admin_unread = False
    db.flush()


def list_messages(db: Session, *, thread: ChatThread) -> list[ChatMessage]:
    return list(
        db.execute(
            sa.select(ChatMessage)
            .where(ChatMessage.thread_id == thread.id)
            .order_by(ChatMessage.created_at, ChatMessage.id)
        ).scalars()
    )


def post_message(db: Session, *, thread: ChatThread, author: User, message: str) -> ChatMessage:
    text = (message or "").strip()
    if not text:
        raise ValueError("Conteúdo da mensagem é obrigatório")
    is_admin_message = _is_admin(author)
    if thread.status == "closed":
        if not is_admin_message:
            raise ValueError("Esta conversa está fechada")
        thread.status = "open"

    if is_admin_message:
        thread.is_admin_unread = False
        thread.is_user_unread = True
    else:
        thread.is_user_unread = False
        thread.is_admin_unread = True

    at = now_utc()
    row = ChatMessage(
        thread_id=thread.id,
        user_id=author.id,
        message=text,
        is_admin_message=is_admin_message,
        created_at=at,
    )
    thread.last_message_at = at
    db.add(row)
    db.flush()
    return row


def close_thread(db: Session, *, thread: ChatThread, actor: User) -> ChatThread:
    thread.status = "closed"
    if _is_admin(actor) and thread.user_id != actor.id:
        notify_user(
            db,
            user_id=thread.user_id,
            title="Ticket fechado",
            message=f'Seu ticket "{thread.subject}" foi fechado pelo administrador',
            type="chat",
            link=f"/chat/{thread.id}",
            created_by=actor.id,
        )
    db.flush()
    return thread


def delete_thread(db: Session, *, thread: ChatThread) -> None:
    # Messages go with the thread through the relationship cascade.
    db.delete(thread)
