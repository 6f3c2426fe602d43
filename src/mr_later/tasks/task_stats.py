# src/mr_later/tasks/task_stats.py

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta, tzinfo

from .task_models import Task, TaskStatus

UPCOMING_DAYS = 3


@dataclass(slots=True)
class TaskStats:
    total: int
    completed: int
    completion_rate: int  # percent, rounded
    today: list[Task] = field(default_factory=list)
    upcoming: list[Task] = field(default_factory=list)
    overdue: list[Task] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return self.total - self.completed


def motivational_message(completion_rate: int) -> str:
    if completion_rate >= 80:
        return "You're crushing it! Keep up the amazing work!"
    if completion_rate >= 50:
        return "You're making great progress! Stay focused!"
    if completion_rate >= 30:
        return "You're on your way! Keep pushing forward!"
    return "Every small step counts. You've got this!"


def summarize_tasks(tasks: Sequence[Task], *, now: datetime, tz: tzinfo = UTC) -> TaskStats:
    """
    Dashboard numbers for a task list.

    "Today" is the local calendar day in tz. Upcoming covers open tasks due after
    the start of today up to the end of the day UPCOMING_DAYS ahead, soonest first.
    """
    total = len(tasks)
    completed = sum(1 for t in tasks if t.status == TaskStatus.DONE)
    # Half rounds up (12.5 -> 13), unlike round().
    rate = int(completed * 100 / total + 0.5) if total else 0

    local_now = now.astimezone(tz)
    today = local_now.date()
    start_of_today = datetime.combine(today, time.min, tzinfo=tz)
    horizon = datetime.combine(today + timedelta(days=UPCOMING_DAYS), time.max, tzinfo=tz)

    todays = [t for t in tasks if t.due_date.astimezone(tz).date() == today]
    upcoming = sorted(
        (t for t in tasks if not t.is_done and start_of_today < t.due_date <= horizon),
        key=lambda t: t.due_date,
    )
    overdue = [t for t in tasks if not t.is_done and t.due_date < now]

    return TaskStats(
        total=total,
        completed=completed,
        completion_rate=rate,
        today=todays,
        upcoming=upcoming,
        overdue=overdue,
    )
