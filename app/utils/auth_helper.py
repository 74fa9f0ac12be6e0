import os
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from app.db.db import get_session
from app.errors import Unauthorized
from app.models.user import User

ALGORITHM = "HS256"

ROLES = ("student", "staff", "admin")
ELEVATED_ROLES = ("staff", "admin")

bearer_scheme = HTTPBearer(auto_error=False)


class Actor(BaseModel):
    """Caller identity, resolved once at the boundary and passed into every service call."""

    model_config = ConfigDict(frozen=True)

    id: int
    role: str

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, os.getenv("JWT_SECRET"), algorithms=[ALGORITHM])
    except JWTError:
        raise Unauthorized("Invalid or expired token")

    if "sub" not in payload:
        raise Unauthorized("Token without subject")

    return payload


def get_db_user(session: Session, payload: dict) -> User:
    user = session.exec(
        select(User).where(User.public_id == payload["sub"])
    ).first()

    if not user:
        raise Unauthorized("User not found")

    return user


def resolve_actor(session: Session, token: str) -> Actor:
    user = get_db_user(session, decode_token(token))
    role = user.role if user.role in ROLES else "student"
    return Actor(id=user.id, role=role)


def get_current_actor(
    token: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> Actor:
    if not token:
        raise Unauthorized("Missing bearer token")

    return resolve_actor(session, token.credentials)
