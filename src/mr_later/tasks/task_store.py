# src/mr_later/tasks/task_store.py

from __future__ import annotations

import logging
from datetime import UTC, timedelta, tzinfo
from typing import Any

from ..core.ports import ChangeEvent, ChangeFeed, DataGateway, Filter, Order, Unsubscribe
from ..core.wire import format_ts, now_utc
from ..errors import error_message
from .task_models import (
    TASKS_TABLE,
    Task,
    TaskActionResult,
    TaskPriority,
    TaskStatus,
    task_changes_to_row,
)

logger = logging.getLogger(__name__)


async def _noop_unsubscribe() -> None:
    return None


class TaskStore:
    """
    In-memory mirror of the signed-in user's tasks.

    - mutations go to the gateway first, then patch the local list (no refetch)
    - a change-feed subscription triggers a full resync on any event
    - there is no ordering token: a slow fetch can overwrite a newer local patch

    Every operation takes the current user id explicitly; None means "signed out".
    """

    def __init__(self, gateway: DataGateway, feed: ChangeFeed, *, tz: tzinfo = UTC) -> None:
        self._gateway = gateway
        self._feed = feed
        # Wall-clock zone used for calendar-day arithmetic (do_later).
        self._tz = tz

        self.tasks: list[Task] = []
        self.is_loading = False
        self.error: str | None = None

    def reset(self) -> None:
        self.tasks = []
        self.is_loading = False
        self.error = None

    def get(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def _record(self, exc: BaseException, op: str) -> None:
        self.error = error_message(exc)
        logger.warning("TaskStore.%s failed: %s", op, self.error)

    # ---- reads ----

    async def fetch_tasks(self, user_id: str | None) -> None:
        if not user_id:
            return

        try:
            self.is_loading = True
            self.error = None

            rows = await self._gateway.select(
                TASKS_TABLE,
                filters=[Filter.eq("user_id", user_id)],
                order=Order("due_date", ascending=True),
            )
            self.tasks = [Task.from_row(r) for r in rows]
            logger.debug("Fetched %d tasks user=%s", len(self.tasks), user_id)
        except Exception as e:
            self._record(e, "fetch_tasks")
        finally:
            self.is_loading = False

    # ---- mutations ----

    async def create_task(self, user_id: str | None, fields: dict[str, Any]) -> Task | None:
        """
        Insert a task owned by user_id and append the server row.

        The list is not re-sorted after the append; the next fetch restores due-date order.
        """
        payload = {"status": TaskStatus.PENDING, "priority": TaskPriority.MEDIUM, **fields}
        if payload.get("due_date") is None:
            payload["due_date"] = now_utc()
        row = task_changes_to_row(payload, creating=True)

        if not user_id:
            return None

        try:
            self.is_loading = True
            self.error = None

            created = await self._gateway.insert(TASKS_TABLE, {**row, "user_id": user_id})
            task = Task.from_row(created)
            self.tasks = [*self.tasks, task]
            logger.info("Task created id=%s due=%s", task.id, format_ts(task.due_date))
            return task
        except Exception as e:
            self._record(e, "create_task")
            raise
        finally:
            self.is_loading = False

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> None:
        # Ownership is enforced by the gateway's row policies, not here.
        row = task_changes_to_row(changes)
        if not row:
            return

        try:
            self.is_loading = True
            self.error = None

            await self._gateway.update(TASKS_TABLE, task_id, row)
            self.tasks = [t.merged(row) if t.id == task_id else t for t in self.tasks]
            logger.debug("Task updated id=%s fields=%s", task_id, sorted(row))
        except Exception as e:
            self._record(e, "update_task")
            raise
        finally:
            self.is_loading = False

    async def delete_task(self, task_id: str) -> None:
        try:
            self.is_loading = True
            self.error = None

            await self._gateway.delete(TASKS_TABLE, task_id)
            self.tasks = [t for t in self.tasks if t.id != task_id]
            logger.info("Task deleted id=%s", task_id)
        except Exception as e:
            self._record(e, "delete_task")
            raise
        finally:
            self.is_loading = False

    # ---- derived actions ----

    async def do_later(self, task_id: str) -> TaskActionResult:
        """
        Push the due date one calendar day forward and mark the task 'later'.

        The day is added on the wall clock of the store's timezone, so a DST switch
        yields 23h or 25h rather than a fixed 24h.
        """
        task = self.get(task_id)
        if task is None:
            logger.debug("do_later: task %s not in local list", task_id)
            return TaskActionResult.NOT_FOUND

        local_due = task.due_date.astimezone(self._tz)
        next_due = (local_due + timedelta(days=1)).astimezone(UTC)

        await self.update_task(task_id, {"due_date": next_due, "status": TaskStatus.LATER})
        return TaskActionResult.UPDATED

    async def toggle_complete(self, task_id: str) -> TaskActionResult:
        task = self.get(task_id)
        if task is None:
            return TaskActionResult.NOT_FOUND

        new_status = TaskStatus.PENDING if task.is_done else TaskStatus.DONE
        await self.update_task(task_id, {"status": new_status})
        return TaskActionResult.UPDATED

    # ---- live reconciliation ----

    async def subscribe_to_tasks(self, user_id: str | None) -> Unsubscribe:
        """
        Resync on any change to user_id's rows.

        Each call opens an independent channel; the returned coroutine function
        closes it and must be awaited once by the caller.
        """
        if not user_id:
            return _noop_unsubscribe

        active = True

        async def _on_event(event: ChangeEvent) -> None:
            if not active:
                return
            logger.debug("Task change (%s) -> resync user=%s", event.kind, user_id)
            await self.fetch_tasks(user_id)

        handle = await self._feed.subscribe(
            TASKS_TABLE,
            filter=Filter.eq("user_id", user_id),
            on_event=_on_event,
        )

        async def _unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            await self._feed.unsubscribe(handle)

        return _unsubscribe

