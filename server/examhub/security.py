"""
Password hashing, JWT access tokens and the FastAPI auth dependencies.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from examhub.config import settings
from examhub.database import get_db
from examhub.errors import NotAuthenticated, PermissionDenied
from examhub.models import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user: User, expires_minutes: Optional[int] = None) -> str:
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    payload = {
        "sub": str(user.id),
        "role": user.role.value if isinstance(user.role, UserRole) else user.role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def user_from_token(db: Session, token: Optional[str]) -> User:
    """Resolve a bearer token to an active user or raise NotAuthenticated"""
    if not token:
        raise NotAuthenticated("Not authorized to access this route")
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        user_id = int(payload["sub"])
    except jwt.ExpiredSignatureError:
        raise NotAuthenticated("Token has expired")
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise NotAuthenticated("Not authorized to access this route")

    user = db.get(User, user_id)
    if user is None:
        raise NotAuthenticated("No user found with this token")
    if not user.is_active:
        raise NotAuthenticated("User account is deactivated")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    return user_from_token(db, credentials.credentials if credentials else None)


def require_teacher(user: User = Depends(get_current_user)) -> User:
    if not user.is_teacher:
        raise PermissionDenied("Access denied. Teacher or admin role required.")
    return user


def require_student(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.STUDENT:
        raise PermissionDenied("Access denied. Student role required.")
    return user
