# src/mr_later/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..core.wire import format_ts, parse_ts, parse_ts_or_none
from ..errors import ValidationError

TASKS_TABLE = "tasks"


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Transitions are never rejected client-side:
    pending -> later | done, later -> pending | done, done -> pending.
    """

    PENDING = "pending"
    LATER = "later"
    DONE = "done"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskActionResult(StrEnum):
    """Outcome of derived actions (do_later, toggle_complete) that soft-fail."""

    UPDATED = "updated"
    NOT_FOUND = "not_found"


# Columns a client may send on create/update. id/user_id/created_at are server-owned.
EDITABLE_FIELDS = frozenset({"title", "description", "due_date", "status", "priority", "category"})


@dataclass(slots=True)
class Task:
    id: str
    user_id: str
    title: str
    description: str | None
    due_date: datetime
    status: TaskStatus
    priority: TaskPriority
    category: str | None
    created_at: datetime | None = None

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Task:
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=str(row.get("title") or ""),
            description=row.get("description"),
            due_date=parse_ts(row["due_date"]),
            status=TaskStatus(row.get("status") or TaskStatus.PENDING),
            priority=TaskPriority(row.get("priority") or TaskPriority.MEDIUM),
            category=row.get("category"),
            created_at=parse_ts_or_none(row.get("created_at")),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "due_date": format_ts(self.due_date),
            "status": self.status.value,
            "priority": self.priority.value,
            "category": self.category,
            "created_at": format_ts(self.created_at) if self.created_at else None,
        }

    def merged(self, changes: dict[str, Any]) -> Task:
        """Shallow-merge wire-format changes into a copy of this task."""
        return Task.from_row({**self.to_row(), **changes})


def task_changes_to_row(changes: dict[str, Any], *, creating: bool = False) -> dict[str, Any]:
    """
    Validate and serialize a partial task payload.

    Raises ValidationError for unknown columns, a blank title, or bad enum values.
    On create the title is mandatory.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown task fields: {', '.join(sorted(unknown))}")

    if creating and "title" not in changes:
        raise ValidationError("Task title is required")

    row: dict[str, Any] = {}
    for key, value in changes.items():
        if key == "title":
            if not isinstance(value, str) or not value.strip():
                raise ValidationError("Task title is required")
            row[key] = value.strip()
        elif key == "status":
            try:
                row[key] = TaskStatus(value).value
            except ValueError as e:
                raise ValidationError(f"Invalid task status: {value!r}") from e
        elif key == "priority":
            try:
                row[key] = TaskPriority(value).value
            except ValueError as e:
                raise ValidationError(f"Invalid task priority: {value!r}") from e
        elif key == "due_date":
            if value is None:
                raise ValidationError("Task due date is required")
            try:
                row[key] = format_ts(parse_ts(value))
            except ValueError as e:
                raise ValidationError(f"Invalid due date: {value!r}") from e
        elif key == "category":
            # Empty category means "none".
            row[key] = value or None
        else:
            row[key] = value
    return row
