from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskpulse.db.models import User


def get_user(session: Session, telegram_id: int) -> User | None:
    return session.scalar(select(User).where(User.telegram_id == telegram_id))


def list_users(session: Session, *, roles: Iterable[str] | None = None) -> list[User]:
    stmt = select(User)
    if roles is not None:
        stmt = stmt.where(User.role.in_(list(roles)))
    return list(session.scalars(stmt.order_by(User.telegram_id.asc())).all())


def display_name(user: User | None) -> str:
    if user is None:
        return "Пользователь"
    return user.full_name or (f"@{user.username}" if user.username else str(user.telegram_id))
