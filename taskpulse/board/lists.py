"""Mapping between task statuses and the lists of the Planka board.

Board lists are named by whoever administers the board, so there is no hard
binding between a status and a list. Each status has a ranked tuple of name
fragments; the first fragment found (case-insensitive substring) in any list
name wins. When nothing matches, the list is picked by position: todo is the
first list, in_progress the second, in_review the third, done the last one.

Renaming lists can silently route a status to the wrong list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from taskpulse.db.models import STATUS_DONE, STATUS_IN_PROGRESS, STATUS_IN_REVIEW, STATUS_TODO
from taskpulse.errors import BoardError

STATUS_LIST_CANDIDATES: dict[str, tuple[str, ...]] = {
    STATUS_TODO: ("todo", "to do", "backlog", "новые", "новая", "к выполнению"),
    STATUS_IN_PROGRESS: ("in progress", "doing", "в работе", "выполняется"),
    STATUS_IN_REVIEW: ("review", "testing", "проверка", "на проверке"),
    STATUS_DONE: ("done", "completed", "finished", "готово", "выполнено"),
}

_STATUS_POSITION = {
    STATUS_TODO: 0,
    STATUS_IN_PROGRESS: 1,
    STATUS_IN_REVIEW: 2,
}


@dataclass(frozen=True, slots=True)
class BoardList:
    id: str
    name: str
    position: float = 0.0

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "BoardList":
        return cls(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            position=float(payload.get("position") or 0),
        )


def resolve_list_for_status(lists: Sequence[BoardList], status: str) -> BoardList:
    if status not in STATUS_LIST_CANDIDATES:
        raise ValueError(f"Unknown task status: {status}")
    if not lists:
        raise BoardError("Board has no lists", status=status)

    for fragment in STATUS_LIST_CANDIDATES[status]:
        for board_list in lists:
            if fragment in board_list.name.lower():
                return board_list

    index = len(lists) - 1 if status == STATUS_DONE else _STATUS_POSITION[status]
    if index >= len(lists):
        raise BoardError("Target list not found for status", status=status, lists=len(lists))
    return lists[index]
