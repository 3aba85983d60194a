from fastapi import APIRouter, Depends, HTTPException
import sqlalchemy as sa
from sqlalchemy.orm import Session

from eprojects.api.deps import get_current_user, require_admin
from eprojects.db.session import get_db
from eprojects.models.user import User
from eprojects.schemas.auth import SimpleOKOut, UserOut
from eprojects.schemas.users import PasswordRecoveryToggleIn, UserCreateIn, UserPasswordResetIn, UserUpdateIn
from eprojects.services.audit import audit
from eprojects.services.pro_status import extend_pro_status
from eprojects.services.sessions import revoke_user_sessions
from eprojects.services.users import create_user, delete_user, set_password, update_user

router = APIRouter()


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(404, "Usuário não encontrado")
    return user


@router.get("", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db), current=Depends(require_admin)):
    rows = db.execute(sa.select(User).order_by(User.id)).scalars()
    return [UserOut.model_validate(u) for u in rows]


@router.post("", response_model=UserOut, status_code=201)
def create_user_admin(payload: UserCreateIn, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        user = create_user(
            db,
            username=payload.username,
            email=payload.email,
            password=payload.password,
            cpf=payload.cpf,
            role=payload.role,
        )
        if payload.pro_days:
            target = payload.role if payload.role in ("E-TOOL", "E-MASTER") else None
            extend_pro_status(db, user, payload.pro_days, target_role=target)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    audit(db, current.id, "user", user.id, "created", {"role": user.role, "pro_days": payload.pro_days})
    db.commit()
    db.refresh(user)
    return UserOut.model_validate(user)


@router.patch("/{user_id}", response_model=UserOut)
def update_user_admin(
    user_id: int,
    payload: UserUpdateIn,
    db: Session = Depends(get_db),
    current=Depends(require_admin),
):
    user = _get_user_or_404(db, user_id)
    try:
        update_user(
            db,
            actor_user_id=current.id,
            user=user,
            username=payload.username,
            email=payload.email,
            role=payload.role,
            cpf=payload.cpf,
            pro_days=payload.pro_days,
        )
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(user)
    return UserOut.model_validate(user)


@router.delete("/{user_id}", response_model=SimpleOKOut)
def delete_user_admin(user_id: int, db: Session = Depends(get_db), current=Depends(require_admin)):
    if user_id == current.id:
        raise HTTPException(400, "Você não pode excluir sua própria conta")
    user = _get_user_or_404(db, user_id)
    delete_user(db, actor_user_id=current.id, user=user)
    db.commit()
    return SimpleOKOut(ok=True, message="Usuário excluído com sucesso")


@router.patch("/{user_id}/reset-password", response_model=SimpleOKOut)
def reset_user_password(
    user_id: int,
    payload: UserPasswordResetIn,
    db: Session = Depends(get_db),
    current=Depends(require_admin),
):
    user = _get_user_or_404(db, user_id)
    try:
        set_password(db, user=user, password=payload.password)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    revoke_user_sessions(db, user_id=user.id)
    audit(db, current.id, "user", user.id, "password_reset_by_admin", {})
    db.commit()
    return SimpleOKOut(ok=True, message="Senha redefinida com sucesso")


@router.patch("/{user_id}/password-recovery", response_model=UserOut)
def toggle_password_recovery(
    user_id: int,
    payload: PasswordRecoveryToggleIn,
    db: Session = Depends(get_db),
    current=Depends(get_current_user),
):
    if current.id != user_id and current.role != "admin":
        raise HTTPException(403, "Acesso negado")
    user = _get_user_or_404(db, user_id)
    update_user(
        db,
        actor_user_id=current.id,
        user=user,
        disable_password_recovery=payload.disable_password_recovery,
    )
    db.commit()
    db.refresh(user)
    return UserOut.model_validate(user)
