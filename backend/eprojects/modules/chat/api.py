from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from eprojects.api.deps import get_current_user, require_admin
from eprojects.db.session import get_db
from eprojects.models.chat import ChatThread
from eprojects.schemas.auth import SimpleOKOut
from eprojects.schemas.chat import (
    ChatMessageIn,
    ChatMessageOut,
    ChatThreadCreateIn,
    ChatThreadDetailOut,
    ChatThreadOut,
    UnreadCountOut,
)
from eprojects.services.chat import (
    close_thread,
    create_thread,
    delete_thread,
    get_thread_for,
    list_admin_threads,
    list_messages,
    list_user_threads,
    mark_read_for_viewer,
    post_message,
    unread_count_for_admin,
    unread_count_for_user,
)

router = APIRouter()


def _thread_or_error(db: Session, thread_id: int, user) -> ChatThread:
    try:
        return get_thread_for(db, thread_id=thread_id, user=user)
    except LookupError as exc:
        raise HTTPException(404, str(exc))
    except PermissionError:
        raise HTTPException(403, "Acesso negado")


@router.get("/threads", response_model=list[ChatThreadOut])
def my_threads(db: Session = Depends(get_db), current=Depends(get_current_user)):
    return [ChatThreadOut.model_validate(t) for t in list_user_threads(db, user_id=current.id)]


@router.post("/threads", response_model=ChatThreadOut, status_code=201)
def open_thread(payload: ChatThreadCreateIn, db: Session = Depends(get_db), current=Depends(get_current_user)):
    try:
        thread = create_thread(db, user=current, subject=payload.subject, message=payload.message)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(thread)
    return ChatThreadOut.model_validate(thread)


@router.get("/admin/threads", response_model=list[ChatThreadOut])
def admin_threads(db: Session = Depends(get_db), current=Depends(require_admin)):
    out = []
    for thread, username in list_admin_threads(db):
        item = ChatThreadOut.model_validate(thread)
        item.username = username
        out.append(item)
    return out


@router.get("/unread-count", response_model=UnreadCountOut)
def user_unread_count(db: Session = Depends(get_db), current=Depends(get_current_user)):
    return UnreadCountOut(count=unread_count_for_user(db, user_id=current.id))


@router.get("/admin/unread-count", response_model=UnreadCountOut)
def admin_unread_count(db: Session = Depends(get_db), current=Depends(require_admin)):
    return UnreadCountOut(count=unread_count_for_admin(db))


@router.get("/threads/{thread_id}", response_model=ChatThreadDetailOut)
def thread_detail(thread_id: int, db: Session = Depends(get_db), current=Depends(get_current_user)):
    thread = _thread_or_error(db, thread_id, current)
    mark_read_for_viewer(db, thread=thread, viewer=current)
    db.commit()
    db.refresh(thread)
    base = ChatThreadOut.model_validate(thread).model_dump()
    return ChatThreadDetailOut(
        **base,
        messages=[ChatMessageOut.model_validate(m) for m in list_messages(db, thread=thread)],
    )


@router.get("/threads/{thread_id}/messages", response_model=list[ChatMessageOut])
def thread_messages(thread_id: int, db: Session = Depends(get_db), current=Depends(get_current_user)):
    thread = _thread_or_error(db, thread_id, current)
    return [ChatMessageOut.model_validate(m) for m in list_messages(db, thread=thread)]


@router.post("/threads/{thread_id}/messages", response_model=ChatMessageOut, status_code=201)
def send_message(
    thread_id: int,
    payload: ChatMessageIn,
    db: Session = Depends(get_db),
    current=Depends(get_current_user),
):
    thread = _thread_or_error(db, thread_id, current)
    try:
        row = post_message(db, thread=thread, author=current, message=payload.message)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(row)
    return ChatMessageOut.model_validate(row)


@router.patch("/threads/{thread_id}/close", response_model=ChatThreadOut)
def close(thread_id: int, db: Session = Depends(get_db), current=Depends(get_current_user)):
    thread = _thread_or_error(db, thread_id, current)
    close_thread(db, thread=thread, actor=current)
    db.commit()
    db.refresh(thread)
    return ChatThreadOut.model_validate(thread)


@router.delete("/threads/{thread_id}", response_model=SimpleOKOut)
def remove_thread(thread_id: int, db: Session = Depends(get_db), current=Depends(require_admin)):
    thread = _thread_or_error(db, thread_id, current)
    delete_thread(db, thread=thread)
    db.commit()
    return SimpleOKOut(ok=True)
