from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskpulse.db.models import UserSettings

DEFAULT_DIGEST_HOUR = 9


@dataclass(frozen=True, slots=True)
class DigestSettings:
    user_id: int
    digest_enabled: bool = True
    digest_hour: int = DEFAULT_DIGEST_HOUR
    notifications_enabled: bool = True


def get_settings(session: Session, user_id: int) -> UserSettings | None:
    return session.scalar(select(UserSettings).where(UserSettings.user_id == user_id))


def get_or_default(session: Session, user_id: int) -> DigestSettings:
    row = get_settings(session, user_id)
    if row is None:
        return DigestSettings(user_id=user_id)
    return DigestSettings(
        user_id=user_id,
        digest_enabled=bool(row.digest_enabled),
        digest_hour=int(row.digest_hour),
        notifications_enabled=bool(row.notifications_enabled),
    )


def upsert_settings(
    session: Session,
    user_id: int,
    *,
    digest_enabled: bool | None = None,
    digest_hour: int | None = None,
    notifications_enabled: bool | None = None,
) -> UserSettings:
    if digest_hour is not None and not 0 <= digest_hour <= 23:
        raise ValueError("digest_hour must be within 0..23")
    row = get_settings(session, user_id)
    if row is None:
        row = UserSettings(
            user_id=user_id,
            digest_hour=DEFAULT_DIGEST_HOUR,
            digest_enabled=True,
            notifications_enabled=True,
        )
        session.add(row)
    if digest_enabled is not None:
        row.digest_enabled = digest_enabled
    if digest_hour is not None:
        row.digest_hour = digest_hour
    if notifications_enabled is not None:
        row.notifications_enabled = notifications_enabled
    session.flush()
    return row
