import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from eprojects.api.deps import get_current_session, get_current_user, optional_bearer, resolve_access_token
from eprojects.core.config import settings
from eprojects.core.security import create_access_token_for_session, now_utc
from eprojects.db.session import get_db
from eprojects.models.user import User
from eprojects.schemas.auth import (
    LoginIn,
    PromoOutcomeOut,
    RecoverPasswordIn,
    RecoverPasswordOut,
    RegisterIn,
    ResetPasswordIn,
    SessionStatusOut,
    SimpleOKOut,
    TokenOut,
    UserOut,
    looks_like_email,
)
from eprojects.services.audit import audit
from eprojects.services.promos import redeem_code
from eprojects.services.sessions import register_session, revoke_user_sessions
from eprojects.services.users import (
    PasswordRecoveryDisabled,
    authenticate,
    create_user,
    request_password_reset,
    reset_password_with_token,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _client_info(request: Request) -> tuple[str | None, str | None]:
    user_agent = request.headers.get("user-agent")
    ip_address = request.client.host if request.client else None
    return user_agent, ip_address


def _issue_session(db: Session, user: User, request: Request) -> str:
    user_agent, ip_address = _client_info(request)
    sid = register_session(db, user_id=user.id, user_agent=user_agent, ip_address=ip_address)
    user.last_login_at = now_utc()
    return sid


@router.post("/register", response_model=TokenOut, status_code=201)
def register(payload: RegisterIn, request: Request, db: Session = Depends(get_db)):
    if not looks_like_email(payload.email):
        raise HTTPException(400, "Email inválido")
    try:
        user = create_user(
            db,
            username=payload.username,
            email=payload.email,
            password=payload.password,
            cpf=payload.cpf,
        )
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    audit(db, user.id, "auth", user.id, "registered", {})
    db.commit()
    logger.info("user registered user_id=%s username=%s", user.id, user.username)

    # The account exists even if the code is rejected.
    promo = None
    if payload.promo_code and payload.promo_code.strip():
        result = redeem_code(db, user, payload.promo_code)
        if result.success:
            db.commit()
        promo = PromoOutcomeOut(success=result.success, message=result.message)

    sid = _issue_session(db, user, request)
    db.commit()
    db.refresh(user)
    return TokenOut(
        access_token=create_access_token_for_session(str(user.id), sid=sid),
        user=UserOut.model_validate(user),
        promo=promo,
    )


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    user = authenticate(db, email=payload.email, password=payload.password)
    if user is None:
        raise HTTPException(400, "Email ou senha incorretos")
    sid = _issue_session(db, user, request)
    audit(db, user.id, "auth", user.id, "login", {})
    db.commit()
    db.refresh(user)
    logger.info("login user_id=%s username=%s", user.id, user.username)
    return TokenOut(
        access_token=create_access_token_for_session(str(user.id), sid=sid),
        user=UserOut.model_validate(user),
    )


@router.post("/logout", response_model=SimpleOKOut)
def logout(session=Depends(get_current_session), db: Session = Depends(get_db)):
    user, _sid = session
    revoke_user_sessions(db, user_id=user.id)
    audit(db, user.id, "auth", user.id, "logout", {})
    db.commit()
    return SimpleOKOut(ok=True)


@router.get("/user", response_model=UserOut)
def current_user(current: User = Depends(get_current_user)):
    return UserOut.model_validate(current)


@router.get("/session-status", response_model=SessionStatusOut)
def session_status(
    creds: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
    db: Session = Depends(get_db),
):
    if creds is None:
        return SessionStatusOut(authenticated=False)
    try:
        user, sid = resolve_access_token(creds.credentials, db)
    except HTTPException:
        return SessionStatusOut(authenticated=False)
    return SessionStatusOut(authenticated=True, user_id=user.id, session_id=sid)


@router.post("/recover-password", response_model=RecoverPasswordOut)
def recover_password(payload: RecoverPasswordIn, db: Session = Depends(get_db)):
    try:
        token = request_password_reset(db, identifier=payload.identifier, cpf=payload.cpf)
    except LookupError as exc:
        raise HTTPException(404, str(exc))
    except PasswordRecoveryDisabled as exc:
        raise HTTPException(403, str(exc))
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    db.commit()
    return RecoverPasswordOut(
        reset_token=token,
        expires_in_minutes=settings.PASSWORD_RESET_TOKEN_MINUTES,
    )


@router.post("/reset-password", response_model=SimpleOKOut)
def reset_password(payload: ResetPasswordIn, db: Session = Depends(get_db)):
    try:
        user = reset_password_with_token(db, token=payload.token, password=payload.password)
    except LookupError as exc:
        raise HTTPException(400, str(exc))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    revoke_user_sessions(db, user_id=user.id)
    audit(db, user.id, "auth", user.id, "password_reset", {})
    db.commit()
    return SimpleOKOut(ok=True, message="Senha redefinida com sucesso")
