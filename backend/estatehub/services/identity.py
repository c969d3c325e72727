from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from estatehub.models.user import User


def find_active_user_by_phone(db: Session, phone: str) -> User | None:
    statement = select(User).where(User.phone == phone, User.is_active.is_(True))
    return db.execute(statement).scalar_one_or_none()


def get_active_user(db: Session, user_id: int) -> User | None:
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user
