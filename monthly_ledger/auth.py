import hmac
import logging
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header, Request
from passlib.context import CryptContext
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import config
from .db import get_db, store_call
from .errors import AuthorizationError, ValidationError
from .models import User, UserSession, as_utc, utcnow

logger = logging.getLogger(__name__)

# pure-python scheme, no bcrypt backend needed
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # malformed hash in the table
        return False


def register_user(db: Session, username: str, password: str) -> User:
    username = (username or "").strip()
    if not username or len(username) > 50:
        raise ValidationError("username must be 1-50 characters")
    if len(password or "") < 8:
        raise ValidationError("password must be at least 8 characters")

    with store_call(db, "register user"):
        if db.execute(select(User).where(User.username == username)).scalar_one_or_none():
            raise ValidationError("username already taken")
        user = User(username=username, password_hash=hash_password(password))
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # a concurrent registration won the unique index
            db.rollback()
            raise ValidationError("username already taken")
        db.refresh(user)
    logger.info("registered user %s", user.id)
    return user


def authenticate(db: Session, username: str, password: str) -> User:
    with store_call(db, "look up user"):
        user = db.execute(
            select(User).where(User.username == (username or "").strip())
        ).scalar_one_or_none()
    if user is None or not verify_password(password or "", user.password_hash):
        raise AuthorizationError("invalid credentials")
    return user


def open_session(db: Session, user: User) -> str:
    token = secrets.token_urlsafe(32)
    with store_call(db, "open session"):
        db.add(UserSession(
            token=token,
            user_id=user.id,
            expires_at=utcnow() + timedelta(days=config.SESSION_TTL_DAYS),
        ))
        db.commit()
    return token


def close_session(db: Session, token: Optional[str]) -> None:
    if not token:
        return
    with store_call(db, "close session"):
        db.execute(delete(UserSession).where(UserSession.token == token))
        db.commit()


def get_current_user_id(request: Request, db: Session) -> Optional[int]:
    token = request.cookies.get(config.SESSION_COOKIE)
    if not token:
        return None
    with store_call(db, "load session"):
        s = db.get(UserSession, token)
        if s is None:
            return None
        if as_utc(s.expires_at) <= utcnow():
            db.delete(s)
            db.commit()
            return None
        return s.user_id


def require_client_key(apikey: Optional[str] = Header(None)) -> None:
    if config.CLIENT_KEY is None:
        return
    if not apikey or not hmac.compare_digest(apikey.encode(), config.CLIENT_KEY.encode()):
        raise AuthorizationError("missing or invalid client key")


def require_owner(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(require_client_key),
) -> int:
    """FastAPI dependency: the id of the logged-in user, or 401."""
    uid = get_current_user_id(request, db)
    if uid is None:
        raise AuthorizationError("not logged in")
    return uid


def require_service_key(authorization: Optional[str] = Header(None)) -> None:
    # an unset service key disables the trigger entirely
    if config.SERVICE_KEY is None:
        raise AuthorizationError("service key not configured")
    scheme, _, key = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(key.strip().encode(), config.SERVICE_KEY.encode()):
        raise AuthorizationError("missing or invalid service key")
