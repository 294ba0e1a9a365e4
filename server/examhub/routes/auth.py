from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from examhub.database import get_db
from examhub.models import User
from examhub.responses import ok
from examhub.schemas import LoginRequest, RegisterRequest, TokenOut, UserOut
from examhub.security import create_access_token, get_current_user
from examhub.services import auth as auth_service

router = APIRouter(tags=["Auth"])


@router.post("/register", status_code=201)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new teacher account and return its token"""
    teacher = auth_service.register_teacher(db, request)
    token = TokenOut(token=create_access_token(teacher), user=UserOut.model_validate(teacher))
    return ok(token)


@router.post("/login")
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login with email and password"""
    result = auth_service.login(db, request)
    return ok(TokenOut(token=result["token"], user=UserOut.model_validate(result["user"])))


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return ok(UserOut.model_validate(user))


@router.post("/logout")
def logout(user: User = Depends(get_current_user)):
    # Tokens are stateless, the client drops its copy
    return ok(message="User logged out successfully")
