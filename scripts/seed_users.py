"""Seed demo users so the phone OTP login can be exercised locally.

Run:
  PYTHONPATH=backend python scripts/seed_users.py

Outside production the issued code is always the configured test code (1234 by default).
"""

from __future__ import annotations

import os
from typing import Iterable

from sqlalchemy import select

from estatehub.core.config import get_settings
from estatehub.db.bootstrap import ensure_runtime_schema_compatibility
from estatehub.db.session import SessionLocal
from estatehub.models.user import User


def _env_phone(key: str, default: str) -> str:
    value = os.getenv(key, "").strip()
    return value or default


DEMO_USERS = [
    {
        "name": "Demo Property Manager",
        "email": "manager.demo@example.com",
        "phone": _env_phone("DEMO_MANAGER_PHONE", "9198248449609"),
    },
    {
        "name": "Demo Owner",
        "email": "owner.demo@example.com",
        "phone": _env_phone("DEMO_OWNER_PHONE", "+919876543210"),
    },
]


def _upsert_user(*, name: str, email: str, phone: str) -> User:
    with SessionLocal() as session:
        existing = session.execute(select(User).where(User.phone == phone)).scalar_one_or_none()
        if existing is None:
            existing = User(name=name, email=email, phone=phone, is_active=True)
            session.add(existing)
        else:
            existing.name = name
            existing.email = email
            existing.is_active = True
        session.commit()
        session.refresh(existing)
        return existing


def _print_users(users: Iterable[User]) -> None:
    settings = get_settings()
    print("\nDemo users ready:")
    for user in users:
        print(f"  - {user.name}: phone={user.phone} | email={user.email}")
    if not settings.is_production:
        print(f"\nOTP for every login while ENVIRONMENT={settings.environment}: {settings.otp_test_code}")


def main() -> None:
    ensure_runtime_schema_compatibility()
    users = [_upsert_user(**item) for item in DEMO_USERS]
    _print_users(users)


if __name__ == "__main__":
    main()
