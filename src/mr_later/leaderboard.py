# src/mr_later/leaderboard.py

from __future__ import annotations

from dataclasses import dataclass

from .core.ports import DataGateway

LEADERBOARD_VIEW = "user_task_leaderboard"


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    user_id: str
    completed_tasks: int


async def fetch_leaderboard(gateway: DataGateway, *, limit: int = 50) -> list[LeaderboardEntry]:
    """Top users by completed tasks, in the order the server view returns them."""
    rows = await gateway.select(LEADERBOARD_VIEW, limit=limit)
    return [
        LeaderboardEntry(user_id=str(r["user_id"]), completed_tasks=int(r.get("completed_tasks") or 0))
        for r in rows
    ]
