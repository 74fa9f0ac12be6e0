from typing import Dict, Iterable, Optional
from pydantic import BaseModel
from sqlmodel import Session, select

from app.models.user import User


class Profile(BaseModel):
    id: int
    public_id: str
    display_name: str
    role: str


def to_profile(user: User) -> Profile:
    return Profile(
        id=user.id,
        public_id=user.public_id,
        display_name=user.name,
        role=user.role,
    )


def resolve_profile(session: Session, user_id: Optional[int]) -> Optional[Profile]:
    # A missing profile is a normal outcome, callers omit the expansion
    if user_id is None:
        return None

    user = session.get(User, user_id)
    return to_profile(user) if user else None


def resolve_profiles(session: Session, user_ids: Iterable[Optional[int]]) -> Dict[int, Profile]:
    ids = {user_id for user_id in user_ids if user_id is not None}
    if not ids:
        return {}

    users = session.exec(select(User).where(User.id.in_(ids))).all()
    return {user.id: to_profile(user) for user in users}
