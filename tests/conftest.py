from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from taskpulse.board.lists import BoardList
from taskpulse.db.models import Base, User
from taskpulse.db.repositories import tasks_repo
from taskpulse.db.session import make_engine, make_sessionmaker, session_scope


class FakeBoard:
    def __init__(self, lists: list[BoardList] | None = None) -> None:
        self.lists = lists if lists is not None else [
            BoardList("l-todo", "Backlog", 1),
            BoardList("l-progress", "In Progress", 2),
            BoardList("l-review", "Review", 3),
            BoardList("l-done", "Done", 4),
        ]
        self.calls: list[tuple[Any, ...]] = []
        self.comments: list[tuple[str, str]] = []
        self.members: list[tuple[str, str]] = []
        self.update_error: Exception | None = None
        self.comment_error: Exception | None = None

    def get_board_lists(self, board_id: str | None = None) -> list[BoardList]:
        self.calls.append(("get_board_lists", board_id))
        return list(self.lists)

    def update_card(self, card_id: str, *, list_id: str, position: float | None = None) -> dict:
        self.calls.append(("update_card", card_id, list_id))
        if self.update_error is not None:
            raise self.update_error
        return {"id": card_id, "listId": list_id}

    def add_comment(self, card_id: str, text: str) -> None:
        if self.comment_error is not None:
            raise self.comment_error
        self.comments.append((card_id, text))

    def add_card_member(self, card_id: str, user_id: str) -> None:
        self.members.append((card_id, user_id))

    @property
    def update_calls(self) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == "update_card"]


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[int, str, list]] = []
        self.failures: dict[int, Exception] = {}

    async def send(self, recipient_id: int, text: str, actions=None) -> None:
        error = self.failures.get(recipient_id)
        if error is not None:
            raise error
        self.sent.append((recipient_id, text, list(actions or [])))

    def recipients(self) -> list[int]:
        return [s[0] for s in self.sent]


@pytest.fixture()
def engine(tmp_path: Path):
    eng = make_engine(f"sqlite+pysqlite:///{(tmp_path / 'taskpulse_test.db').as_posix()}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    factory = make_sessionmaker(engine)

    def _scope():
        return session_scope(factory)

    return _scope


@pytest.fixture()
def board() -> FakeBoard:
    return FakeBoard()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def add_task(session_factory):
    counter = {"n": 0}

    def _add(
        *,
        status: str = "todo",
        created_by: int = 200,
        assigned_to: int | None = None,
        due_date: datetime | None = None,
        title: str | None = None,
        card_id: str | None = None,
        priority: str = "medium",
    ):
        counter["n"] += 1
        with session_factory() as session:
            return tasks_repo.create_task(
                session,
                card_id=card_id or f"card-{counter['n']}",
                title=title or f"Task {counter['n']}",
                created_by=created_by,
                chat_id=created_by,
                status=status,
                assigned_to=assigned_to,
                due_date=due_date,
                priority=priority,
            )

    return _add


@pytest.fixture()
def add_user(session_factory):
    def _add(telegram_id: int, *, role: str = "employee", full_name: str | None = None, planka_user_id: str | None = None):
        with session_factory() as session:
            user = User(telegram_id=telegram_id, role=role, full_name=full_name, planka_user_id=planka_user_id)
            session.add(user)
            session.flush()
            return user

    return _add
