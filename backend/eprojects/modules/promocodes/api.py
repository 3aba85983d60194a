from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from eprojects.api.deps import get_current_user, require_admin
from eprojects.db.session import get_db
from eprojects.schemas.auth import SimpleOKOut
from eprojects.schemas.promos import PromoCodeCreateIn, PromoCodeOut, PromoUseIn, PromoUseOut
from eprojects.services.promos import (
    create_promo_code,
    delete_promo_code,
    list_promo_codes,
    redeem_code,
    toggle_promo_code,
)

router = APIRouter()


@router.get("", response_model=list[PromoCodeOut])
def get_promo_codes(db: Session = Depends(get_db), current=Depends(require_admin)):
    return [PromoCodeOut.model_validate(p) for p in list_promo_codes(db)]


@router.post("", response_model=PromoCodeOut, status_code=201)
def create_code(payload: PromoCodeCreateIn, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        promo = create_promo_code(
            db,
            actor_user_id=current.id,
            code=payload.code,
            promo_type=payload.promo_type,
            days=payload.days,
            max_uses=payload.max_uses,
            target_role=payload.target_role,
            course_id=payload.course_id,
            expiry_date=payload.expiry_date,
            is_active=payload.is_active,
        )
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(promo)
    return PromoCodeOut.model_validate(promo)


@router.post("/use", response_model=PromoUseOut)
def use_code(payload: PromoUseIn, db: Session = Depends(get_db), current=Depends(get_current_user)):
    result = redeem_code(db, current, payload.code, course_id=payload.course_id)
    if not result.success:
        db.rollback()
        status = 409 if result.reason == "already_used" else 400
        raise HTTPException(status, result.message)
    db.commit()
    return PromoUseOut(
        success=True,
        message=result.message,
        reason=result.reason,
        days=result.days,
        role=result.role,
        role_expiry_date=result.role_expiry_date,
        course_id=result.course_id,
    )


@router.patch("/{promo_id}/toggle", response_model=PromoCodeOut)
def toggle_code(promo_id: int, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        promo = toggle_promo_code(db, actor_user_id=current.id, promo_id=promo_id)
    except LookupError as exc:
        raise HTTPException(404, str(exc))
    db.commit()
    db.refresh(promo)
    return PromoCodeOut.model_validate(promo)


@router.delete("/{promo_id}", response_model=SimpleOKOut)
def delete_code(promo_id: int, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        delete_promo_code(db, actor_user_id=current.id, promo_id=promo_id)
    except LookupError as exc:
        raise HTTPException(404, str(exc))
    db.commit()
    return SimpleOKOut(ok=True)
