# src/mr_later/challenges/challenge_models.py

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..core.wire import parse_ts, parse_ts_or_none

CHALLENGES_TABLE = "challenges"


class ChallengePhase(StrEnum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    ENDED = "ended"


class MembershipResult(StrEnum):
    """Outcome of join/leave. Soft-fail cases are explicit so callers can tell them apart."""

    NO_USER = "no_user"
    JOINED = "joined"
    ALREADY_MEMBER = "already_member"
    LEFT = "left"
    NOT_MEMBER = "not_member"
    FAILED = "failed"


@dataclass(slots=True)
class Challenge:
    """
    Shared challenge row.

    participants has set semantics; the list order carries no meaning.
    Concurrent writers are resolved last-write-wins by the gateway.
    """

    id: str
    name: str
    description: str
    start_date: datetime
    end_date: datetime
    participants: list[str] = field(default_factory=list)
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Challenge:
        return cls(
            id=str(row["id"]),
            name=str(row.get("name") or ""),
            description=str(row.get("description") or ""),
            start_date=parse_ts(row["start_date"]),
            end_date=parse_ts(row["end_date"]),
            participants=[str(p) for p in (row.get("participants") or [])],
            created_at=parse_ts_or_none(row.get("created_at")),
        )

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def with_participants(self, participants: list[str]) -> Challenge:
        return replace(self, participants=list(participants))

    def phase(self, now: datetime) -> ChallengePhase:
        if self.start_date > now:
            return ChallengePhase.UPCOMING
        if self.end_date >= now:
            return ChallengePhase.ACTIVE
        return ChallengePhase.ENDED
