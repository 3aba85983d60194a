from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from eprojects.api.deps import get_current_user, require_admin
from eprojects.db.session import get_db
from eprojects.schemas.auth import SimpleOKOut
from eprojects.schemas.notifications import (
    NotificationBulkIn,
    NotificationBulkOut,
    NotificationCreateIn,
    NotificationOut,
)
from eprojects.services.notifications import (
    create_bulk_notifications,
    create_notification,
    delete_notification,
    list_notifications_for_user,
    mark_notification_read,
)

router = APIRouter()


@router.get("", response_model=list[NotificationOut])
def get_notifications(db: Session = Depends(get_db), current=Depends(get_current_user)):
    return [NotificationOut.model_validate(n) for n in list_notifications_for_user(db, current)]


@router.post("", response_model=NotificationOut, status_code=201)
def post_notification(payload: NotificationCreateIn, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        row = create_notification(
            db,
            title=payload.title,
            message=payload.message,
            type=payload.type,
            target_role=payload.target_role,
            user_id=payload.user_id,
            link=payload.link,
            expires_at=payload.expires_at,
            created_by=current.id,
        )
    except LookupError as exc:
        db.rollback()
        raise HTTPException(404, str(exc))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(row)
    return NotificationOut.model_validate(row)


@router.post("/bulk", response_model=NotificationBulkOut, status_code=201)
def post_bulk(payload: NotificationBulkIn, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        count = create_bulk_notifications(
            db,
            title=payload.title,
            message=payload.message,
            target_role=payload.target_role,
            type=payload.type,
            link=payload.link,
            created_by=current.id,
        )
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    return NotificationBulkOut(count=count)


@router.patch("/{notification_id}/read", response_model=NotificationOut)
def read_notification(notification_id: int, db: Session = Depends(get_db), current=Depends(get_current_user)):
    try:
        row = mark_notification_read(db, current, notification_id)
    except LookupError as exc:
        raise HTTPException(404, str(exc))
    db.commit()
    db.refresh(row)
    return NotificationOut.model_validate(row)


@router.delete("/{notification_id}", response_model=SimpleOKOut)
def remove_notification(notification_id: int, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        delete_notification(db, notification_id)
    except LookupError as exc:
        raise HTTPException(404, str(exc))
    db.commit()
    return SimpleOKOut(ok=True)
