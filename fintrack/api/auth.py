from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from fintrack.core.auth import SessionUser, create_session_token, get_current_user, hash_password, verify_password
from fintrack.core.config import settings
from fintrack.core.errors import AuthError, ValidationError
from fintrack.db.session import get_db
from fintrack.models.user import User

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=256)
    password: str = Field(min_length=6, max_length=128)
    name: str = Field(min_length=1, max_length=128)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=256)
    password: str = Field(min_length=1, max_length=128)


def _user_body(user: User) -> dict:
    return {"id": str(user.id), "email": user.email, "name": user.name, "avatar": user.avatar or ""}


def _set_session(response: Response, user: User) -> None:
    token = create_session_token(user_id=str(user.id), email=user.email, name=user.name)
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.app_env.lower() == "prod",
        max_age=int(settings.auth_session_hours * 3600),
        path="/",
    )


@router.post("/register", status_code=201)
def register(payload: RegisterRequest, response: Response, db: Session = Depends(get_db)) -> dict:
    email = payload.email.strip().lower()
    if "@" not in email:
        raise ValidationError("Invalid email address")
    if db.execute(select(User).where(User.email == email)).scalars().first():
        raise ValidationError("Email already registered")
    h, s = hash_password(payload.password)
    user = User(email=email, name=payload.name.strip(), password_hash=h, password_salt=s)
    db.add(user)
    db.commit()
    db.refresh(user)
    _set_session(response, user)
    return {"ok": True, "user": _user_body(user)}


@router.post("/login")
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)) -> dict:
    email = payload.email.strip().lower()
    user = db.execute(select(User).where(User.email == email)).scalars().first()
    if not user or not verify_password(payload.password, user.password_hash, user.password_salt):
        raise AuthError("Invalid email or password")
    _set_session(response, user)
    return {"ok": True, "user": _user_body(user)}


@router.post("/logout")
def logout(response: Response) -> dict:
    response.delete_cookie(key=settings.auth_cookie_name, path="/")
    return {"ok": True}


@router.get("/me")
def me(current: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)) -> dict:
    user = db.get(User, current.id)
    if not user:
        raise AuthError("Session user no longer exists")
    return {"authenticated": True, "user": _user_body(user)}
