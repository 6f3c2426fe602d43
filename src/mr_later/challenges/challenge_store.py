# src/mr_later/challenges/challenge_store.py

from __future__ import annotations

import logging

from ..core.ports import ChangeEvent, ChangeFeed, DataGateway, Filter, Order, Unsubscribe
from ..errors import error_message
from .challenge_models import CHALLENGES_TABLE, Challenge, MembershipResult

logger = logging.getLogger(__name__)


class ChallengeStore:
    """
    Global challenge catalog plus the signed-in user's joined subset.

    Join/leave are fetch-check-write sequences and are not atomic: two devices
    racing on the same challenge resolve last-write-wins at the gateway.
    Errors are recorded in `error`; nothing here re-raises.
    """

    def __init__(self, gateway: DataGateway, feed: ChangeFeed) -> None:
        self._gateway = gateway
        self._feed = feed

        self.challenges: list[Challenge] = []
        self.user_challenges: list[Challenge] = []
        self.is_loading = False
        self.error: str | None = None

    def reset(self) -> None:
        self.challenges = []
        self.user_challenges = []
        self.is_loading = False
        self.error = None

    def _record(self, exc: BaseException, op: str) -> None:
        self.error = error_message(exc)
        logger.warning("ChallengeStore.%s failed: %s", op, self.error)

    async def fetch_challenges(self) -> None:
        try:
            self.is_loading = True
            self.error = None

            rows = await self._gateway.select(
                CHALLENGES_TABLE,
                order=Order("start_date", ascending=False),
            )
            self.challenges = [Challenge.from_row(r) for r in rows]
        except Exception as e:
            self._record(e, "fetch_challenges")
        finally:
            self.is_loading = False

    async def fetch_user_challenges(self, user_id: str | None) -> None:
        if not user_id:
            return

        try:
            self.is_loading = True
            self.error = None

            rows = await self._gateway.select(
                CHALLENGES_TABLE,
                filters=[Filter.contains("participants", [user_id])],
            )
            self.user_challenges = [Challenge.from_row(r) for r in rows]
        except Exception as e:
            self._record(e, "fetch_user_challenges")
        finally:
            self.is_loading = False

    async def _fetch_fresh(self, challenge_id: str) -> Challenge:
        # Always re-read: the cached participant list may be stale.
        row = await self._gateway.select_one(
            CHALLENGES_TABLE,
            filters=[Filter.eq("id", challenge_id)],
        )
        return Challenge.from_row(row)

    async def _persist_participants(self, challenge_id: str, participants: list[str]) -> None:
        await self._gateway.update(CHALLENGES_TABLE, challenge_id, {"participants": participants})

    def _patch_catalog(self, challenge_id: str, participants: list[str]) -> None:
        self.challenges = [
            c.with_participants(participants) if c.id == challenge_id else c
            for c in self.challenges
        ]

    async def join_challenge(self, user_id: str | None, challenge_id: str) -> MembershipResult:
        if not user_id:
            return MembershipResult.NO_USER

        try:
            self.is_loading = True
            self.error = None

            challenge = await self._fetch_fresh(challenge_id)
            if challenge.has_participant(user_id):
                logger.debug("join_challenge: user=%s already in %s", user_id, challenge_id)
                return MembershipResult.ALREADY_MEMBER

            updated = [*challenge.participants, user_id]
            await self._persist_participants(challenge_id, updated)

            self._patch_catalog(challenge_id, updated)
            joined = challenge.with_participants(updated)
            self.user_challenges = [
                *(c for c in self.user_challenges if c.id != challenge_id),
                joined,
            ]
            logger.info("Joined challenge id=%s user=%s", challenge_id, user_id)
            return MembershipResult.JOINED
        except Exception as e:
            self._record(e, "join_challenge")
            return MembershipResult.FAILED
        finally:
            self.is_loading = False

    async def leave_challenge(self, user_id: str | None, challenge_id: str) -> MembershipResult:
        if not user_id:
            return MembershipResult.NO_USER

        try:
            self.is_loading = True
            self.error = None

            challenge = await self._fetch_fresh(challenge_id)
            if not challenge.has_participant(user_id):
                # Set difference is a no-op; only drop any stale local entry.
                self.user_challenges = [c for c in self.user_challenges if c.id != challenge_id]
                return MembershipResult.NOT_MEMBER

            updated = [p for p in challenge.participants if p != user_id]
            await self._persist_participants(challenge_id, updated)

            self._patch_catalog(challenge_id, updated)
            self.user_challenges = [c for c in self.user_challenges if c.id != challenge_id]
            logger.info("Left challenge id=%s user=%s", challenge_id, user_id)
            return MembershipResult.LEFT
        except Exception as e:
            self._record(e, "leave_challenge")
            return MembershipResult.FAILED
        finally:
            self.is_loading = False

    async def subscribe_to_changes(self, user_id: str | None) -> Unsubscribe:
        """
        Resync both lists on any change to any challenge (unfiltered channel).

        user_id is captured for the joined-list refetch; None skips that half.
        """
        active = True

        async def _on_event(event: ChangeEvent) -> None:
            if not active:
                return
            logger.debug("Challenge change (%s) -> resync", event.kind)
            await self.fetch_challenges()
            if active:
                await self.fetch_user_challenges(user_id)

        handle = await self._feed.subscribe(CHALLENGES_TABLE, filter=None, on_event=_on_event)

        async def _unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            await self._feed.unsubscribe(handle)

        return _unsubscribe
