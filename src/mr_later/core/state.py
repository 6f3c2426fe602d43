# src/mr_later/core/state.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any

from ..auth.auth_store import AuthStore
from ..auth.secure_login import SecureLogin
from ..billing.payments import PaymentClient
from ..challenges.challenge_store import ChallengeStore
from ..tasks.task_store import TaskStore
from .ports import ChangeFeed, DataGateway, Unsubscribe

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """
    Service objects shared by every front-end component.

    Built once by the composition root (cli/bootstrap.py) and passed by reference.
    """

    settings: Any
    gateway: DataGateway
    feed: ChangeFeed
    auth: AuthStore
    tasks: TaskStore
    challenges: ChallengeStore
    secure_login: SecureLogin
    payments: PaymentClient | None
    tz: tzinfo

    # Shared HTTP client (closed on shutdown).
    http: Any = None

    # Live change-feed channels for the signed-in user.
    subscriptions: list[Unsubscribe] = field(default_factory=list)

    @property
    def user_id(self) -> str | None:
        return self.auth.user_id

    def wire(self) -> None:
        """Keep the data stores in step with the signed-in identity."""
        self.auth.add_identity_listener(self.handle_identity_change)

    async def handle_identity_change(self, user_id: str | None) -> None:
        """
        Drop everything cached for the previous identity, then (if signed in)
        load and subscribe for the new one.
        """
        await self.close_subscriptions()
        self.tasks.reset()
        self.challenges.reset()

        set_token = getattr(self.feed, "set_access_token", None)
        if set_token is not None:
            session = self.auth.session
            await set_token(session.access_token if session else None)

        if not user_id:
            return

        await self.tasks.fetch_tasks(user_id)
        await self.challenges.fetch_challenges()
        await self.challenges.fetch_user_challenges(user_id)

        self.subscriptions.append(await self.tasks.subscribe_to_tasks(user_id))
        self.subscriptions.append(await self.challenges.subscribe_to_changes(user_id))
        logger.info("Synced data for user=%s (%d tasks)", user_id, len(self.tasks.tasks))

    async def close_subscriptions(self) -> None:
        subs, self.subscriptions = self.subscriptions, []
        for unsubscribe in subs:
            try:
                await unsubscribe()
            except Exception:
                logger.warning("Failed to close a change-feed channel", exc_info=True)
