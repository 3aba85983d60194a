from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from eprojects.core.security import decode_token
from eprojects.db.session import get_db
from eprojects.models.user import User
from eprojects.services.sessions import get_active_session, touch_session

bearer = HTTPBearer()
optional_bearer = HTTPBearer(auto_error=False)

MSG_SESSION_REPLACED = "Sua conta foi acessada em outro dispositivo. Por favor, faça login novamente."


def resolve_access_token(token: str, db: Session) -> tuple[User, str]:
    """Return the user and session id behind an access token, or raise 401."""
    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Token inválido")
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Tipo de token inválido")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Token inválido")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Usuário não encontrado")
    sid = payload.get("sid")
    session_row = get_active_session(db, user_id=user.id, session_id=sid)
    if session_row is None:
        raise HTTPException(status_code=401, detail=MSG_SESSION_REPLACED)
    touch_session(db, session_row)
    db.commit()
    return user, sid


def get_current_session(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> tuple[User, str]:
    return resolve_access_token(creds.credentials, db)


def get_current_user(session=Depends(get_current_session)) -> User:
    user, _sid = session
    return user


def get_optional_user(
    creds: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
    db: Session = Depends(get_db),
) -> User | None:
    if creds is None:
        return None
    user, _sid = resolve_access_token(creds.credentials, db)
    return user


def require_admin(current: User = Depends(get_current_user)) -> User:
    if current.role != "admin":
        raise HTTPException(status_code=403, detail="Acesso negado")
    return current
