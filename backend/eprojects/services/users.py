from __future__ import annotations

import logging
from datetime import datetime, timedelta

import sqlalchemy as sa
from sqlalchemy.orm import Session

from eprojects.core.config import settings
from eprojects.core.security import as_utc, hash_password, now_utc, random_reset_token, verify_password
from eprojects.models.chat import ChatMessage, ChatThread
from eprojects.models.course import CoursePurchase
from eprojects.models.notification import Notification
from eprojects.models.promo import PromoUsage
from eprojects.models.tool import ToolRating
from eprojects.models.user import ROLES, ActiveSession, User
from eprojects.services.audit import audit
from eprojects.services.entitlements import normalize_cpf
from eprojects.services.pro_status import extend_pro_status

logger = logging.getLogger(__name__)

MSG_EMAIL_TAKEN = "Email já está em uso"
MSG_USERNAME_TAKEN = "Nome de usuário já está em uso"
MSG_CPF_TAKEN = "CPF já cadastrado no sistema. Se você já possui uma conta, faça login ou entre em contato com o suporte."
MSG_RECOVERY_DISABLED = (
    "Recuperação de senha desativada. Entre em contato com o administrador via {email} para obter assistência."
)


class PasswordRecoveryDisabled(Exception):
    pass


def _normalize_email(email: str | None) -> str:
    raw = (email or "").strip().lower()
    if not raw or "@" not in raw or "." not in raw.split("@")[-1]:
        raise ValueError("Email inválido")
    return raw


def _normalize_username(username: str | None) -> str:
    raw = (username or "").strip()
    if len(raw) < 3:
        raise ValueError("Nome de usuário deve ter pelo menos 3 caracteres")
    return raw


def _normalize_cpf_field(cpf: str | None) -> str | None:
    if cpf is None or not str(cpf).strip():
        return None
    digits = normalize_cpf(cpf)
    if len(digits) != 11:
        raise ValueError("CPF deve conter 11 dígitos")
    return digits


def _normalize_role(role: str | None) -> str:
    raw = (role or "E-BASIC").strip()
    if raw not in ROLES:
        raise ValueError("Papel inválido")
    return raw


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(sa.select(User).where(sa.func.lower(User.email) == (email or "").strip().lower())).scalar_one_or_none()


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.execute(sa.select(User).where(User.username == (username or "").strip())).scalar_one_or_none()


def get_user_by_cpf(db: Session, cpf: str) -> User | None:
    digits = normalize_cpf(cpf)
    if not digits:
        return None
    return db.execute(sa.select(User).where(User.cpf == digits)).scalar_one_or_none()


def _ensure_unique(db: Session, *, email: str | None, username: str | None, cpf: str | None, exclude_id: int | None = None):
    checks = []
    if email is not None:
        checks.append((get_user_by_email(db, email), MSG_EMAIL_TAKEN))
    if username is not None:
        checks.append((get_user_by_username(db, username), MSG_USERNAME_TAKEN))
    if cpf is not None:
        checks.append((get_user_by_cpf(db, cpf), MSG_CPF_TAKEN))
    for existing, message in checks:
        if existing is not None and existing.id != exclude_id:
            raise ValueError(message)


def create_user(
    db: Session,
    *,
    username: str,
    email: str,
    password: str,
    cpf: str | None = None,
    role: str = "E-BASIC",
) -> User:
    email_norm = _normalize_email(email)
    username_norm = _normalize_username(username)
    cpf_norm = _normalize_cpf_field(cpf)
    role_norm = _normalize_role(role)
    if len(password or "") < 6:
        raise ValueError("Senha deve ter pelo menos 6 caracteres")
    _ensure_unique(db, email=email_norm, username=username_norm, cpf=cpf_norm)

    user = User(
        username=username_norm,
        email=email_norm,
        password_hash=hash_password(password),
        cpf=cpf_norm,
        role=role_norm,
        disable_password_recovery=False,
    )
    db.add(user)
    db.flush()
    return user


def authenticate(db: Session, *, email: str, password: str) -> User | None:
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def update_user(
    db: Session,
    *,
    actor_user_id: int,
    user: User,
    username: str | None = None,
    email: str | None = None,
    role: str | None = None,
    cpf: str | None = None,
    disable_password_recovery: bool | None = None,
    pro_days: int | None = None,
    now: datetime | None = None,
) -> User:
    changes: dict[str, object] = {}
    if username is not None:
        username_norm = _normalize_username(username)
        _ensure_unique(db, email=None, username=username_norm, cpf=None, exclude_id=user.id)
        user.username = username_norm
        changes["username"] = username_norm
    if email is not None:
        email_norm = _normalize_email(email)
        _ensure_unique(db, email=email_norm, username=None, cpf=None, exclude_id=user.id)
        user.email = email_norm
        changes["email"] = email_norm
    if cpf is not None:
        cpf_norm = _normalize_cpf_field(cpf)
        if cpf_norm is not None:
            _ensure_unique(db, email=None, username=None, cpf=cpf_norm, exclude_id=user.id)
        user.cpf = cpf_norm
        changes["cpf_changed"] = True
    if disable_password_recovery is not None:
        user.disable_password_recovery = disable_password_recovery
        changes["disable_password_recovery"] = disable_password_recovery

    role_norm = _normalize_role(role) if role is not None else None
    if pro_days:
        # Granting days with an explicit role makes that role the extension target.
        target = role_norm if role_norm in ("E-TOOL", "E-MASTER") else None
        if role_norm is not None and target is None:
            user.role = role_norm
        extend_pro_status(db, user, pro_days, target_role=target, now=now)
        changes["pro_days"] = pro_days
        changes["role"] = user.role
    elif role_norm is not None:
        user.role = role_norm
        if role_norm in ("E-BASIC", "admin"):
            user.role_expiry_date = None
        changes["role"] = role_norm

    db.flush()
    audit(db, actor_user_id, "user", user.id, "updated", changes)
    return user


def set_password(db: Session, *, user: User, password: str) -> None:
    if len(password or "") < 6:
        raise ValueError("Senha deve ter pelo menos 6 caracteres")
    user.password_hash = hash_password(password)
    user.reset_token = None
    user.reset_token_expiry = None
    db.flush()


def request_password_reset(db: Session, *, identifier: str, cpf: str, now: datetime | None = None) -> str:
    """Issue a reset token after matching the account's CPF."""
    at = now or now_utc()
    ident = (identifier or "").strip()
    user = get_user_by_email(db, ident) if "@" in ident else get_user_by_username(db, ident)
    if user is None:
        raise LookupError("Usuário não encontrado")
    if user.disable_password_recovery:
        raise PasswordRecoveryDisabled(MSG_RECOVERY_DISABLED.format(email=settings.SUPPORT_CONTACT_EMAIL))
    if not user.cpf or user.cpf != normalize_cpf(cpf):
        raise ValueError("CPF inválido")

    token = random_reset_token()
    user.reset_token = token
    user.reset_token_expiry = at + timedelta(minutes=settings.PASSWORD_RESET_TOKEN_MINUTES)
    db.flush()
    logger.info("password reset token issued user_id=%s", user.id)
    return token


def reset_password_with_token(db: Session, *, token: str, password: str, now: datetime | None = None) -> User:
    at = now or now_utc()
    if not token:
        raise LookupError("Token inválido ou expirado")
    user = db.execute(sa.select(User).where(User.reset_token == token)).scalar_one_or_none()
    if user is None:
        raise LookupError("Token inválido ou expirado")
    expiry = as_utc(user.reset_token_expiry)
    if expiry is None or expiry < at:
        raise ValueError("Token expirado. Inicie o processo de recuperação novamente.")
    set_password(db, user=user, password=password)
    return user


def delete_user(db: Session, *, actor_user_id: int, user: User) -> None:
    """Delete a user together with every row that references them."""
    user_id = user.id
    thread_ids = sa.select(ChatThread.id).where(ChatThread.user_id == user_id)
    db.execute(sa.delete(ChatMessage).where(ChatMessage.thread_id.in_(thread_ids)))
    db.execute(sa.delete(ChatMessage).where(ChatMessage.user_id == user_id))
    db.execute(sa.delete(ChatThread).where(ChatThread.user_id == user_id))
    db.execute(sa.delete(Notification).where(Notification.user_id == user_id))
    db.execute(sa.delete(PromoUsage).where(PromoUsage.user_id == user_id))
    db.execute(sa.delete(CoursePurchase).where(CoursePurchase.user_id == user_id))
    db.execute(sa.delete(ToolRating).where(ToolRating.user_id == user_id))
    db.execute(sa.delete(ActiveSession).where(ActiveSession.user_id == user_id))
    db.delete(user)
    db.flush()
    audit(db, actor_user_id, "user", user_id, "deleted", {})
    logger.info("user deleted user_id=%s by=%s", user_id, actor_user_id)
