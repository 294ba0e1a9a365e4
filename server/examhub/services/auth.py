"""
Teacher registration and login.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from examhub.errors import Conflict, NotAuthenticated
from examhub.models import User, UserRole
from examhub.schemas import LoginRequest, RegisterRequest
from examhub.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


def register_teacher(db: Session, payload: RegisterRequest) -> User:
    if db.query(User.id).filter(User.email == payload.email).first() is not None:
        raise Conflict("User already exists with this email")

    teacher = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=UserRole.TEACHER,
    )
    db.add(teacher)
    db.commit()
    db.refresh(teacher)
    logger.info("Teacher %s registered", teacher.id)
    return teacher


def login(db: Session, payload: LoginRequest) -> dict:
    user = db.query(User).filter(User.email == payload.email).first()
    if user is None or not verify_password(payload.password, user.password_hash):
        raise NotAuthenticated("Invalid credentials")
    if not user.is_active:
        raise NotAuthenticated("User account is deactivated")

    user.last_login = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)
    return {"token": create_access_token(user), "user": user}
