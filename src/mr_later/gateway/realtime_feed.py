# src/mr_later/gateway/realtime_feed.py

"""
Change-feed adapter over the backend's realtime websocket (Postgres changes).

Each subscribe() opens its own channel; nothing is deduplicated. The realtime
client calls back synchronously, so events are re-dispatched onto the loop as
tasks; a strong reference is kept until each task finishes.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any

from realtime import AsyncRealtimeChannel, AsyncRealtimeClient

from ..core.ports import ChangeEvent, ChangeHandler, Filter

logger = logging.getLogger(__name__)

_channel_ids = itertools.count(1)


def _filter_expr(flt: Filter | None) -> str | None:
    if flt is None:
        return None
    if flt.op != "eq":
        raise ValueError(f"Realtime filters support only 'eq', got {flt.op!r}")
    return f"{flt.column}=eq.{flt.value}"


@dataclass(slots=True)
class RealtimeSubscription:
    topic: str
    channel: AsyncRealtimeChannel


class RealtimeChangeFeed:
    def __init__(self, supabase_url: str, anon_key: str, *, schema: str = "public") -> None:
        self._url = f"{supabase_url.rstrip('/')}/realtime/v1"
        self._key = anon_key
        self._schema = schema
        self._client: AsyncRealtimeClient | None = None
        # User JWT to apply once connected; None means the anon key.
        self._token: str | None = None
        self._pending: set[asyncio.Task[None]] = set()

    async def _ensure_connected(self) -> AsyncRealtimeClient:
        if self._client is None:
            client = AsyncRealtimeClient(self._url, self._key)
            await client.connect()
            if self._token:
                await client.set_auth(self._token)
            self._client = client
            logger.info("Realtime connected url=%s", self._url)
        return self._client

    async def set_access_token(self, token: str | None) -> None:
        """Row-level policies apply to realtime too: send the user's JWT once signed in."""
        self._token = token
        if self._client is not None:
            await self._client.set_auth(token or self._key)

    def _dispatch(self, table: str, on_event: ChangeHandler, payload: Any) -> None:
        data = payload if isinstance(payload, dict) else {}
        kind = str(data.get("eventType") or data.get("type") or "*")
        event = ChangeEvent(table=table, kind=kind, payload=data)

        task = asyncio.get_running_loop().create_task(on_event(event))
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Change handler failed", exc_info=task.exception())

    async def subscribe(self, table: str, *, filter: Filter | None, on_event: ChangeHandler) -> RealtimeSubscription:
        client = await self._ensure_connected()
        topic = f"{table}_changes_{next(_channel_ids)}"

        channel = client.channel(topic)
        channel.on_postgres_changes(
            "*",
            callback=lambda payload: self._dispatch(table, on_event, payload),
            table=table,
            schema=self._schema,
            filter=_filter_expr(filter),
        )
        await channel.subscribe()
        logger.debug("Realtime subscribed topic=%s", topic)
        return RealtimeSubscription(topic=topic, channel=channel)

    async def unsubscribe(self, handle: RealtimeSubscription) -> None:
        await handle.channel.unsubscribe()
        logger.debug("Realtime unsubscribed topic=%s", handle.topic)

    async def close(self) -> None:
        for task in list(self._pending):
            task.cancel()
        if self._client is not None:
            await self._client.close()
            self._client = None
