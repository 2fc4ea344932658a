"""
Delegated views - read-only secondary Stores over another user's schedule.

Each view owns its Store and its own push subscription, so closing it stops
delivery immediately instead of letting events pile up somewhere.
"""
import logging
from typing import Callable, Optional

from state import ChangeEvent, ViewScope
from sync.channel import EventChannel
from sync.loader import SnapshotLoader
from sync.reconciler import Reconciler
from sync.store import InterviewStore

logger = logging.getLogger(__name__)


class DelegatedView:
    def __init__(
        self,
        target_user_id: int,
        viewer_id: int,
        channel: EventChannel,
        loader: SnapshotLoader,
        reconciler: Reconciler,
        backlog_limit: int = 500,
    ):
        self.target_user_id = target_user_id
        self.viewer_id = viewer_id
        self.channel = channel
        self.loader = loader
        self.reconciler = reconciler
        self.store = InterviewStore(ViewScope.delegated(target_user_id), backlog_limit=backlog_limit)
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def pair(self):
        """(grantor, grantee) of the grant this view depends on."""
        return (self.target_user_id, self.viewer_id)

    @property
    def is_open(self) -> bool:
        return self._unsubscribe is not None and not self.store.closed

    async def open(self) -> "DelegatedView":
        """Subscribe, then pull the target's calendar. A failed pull closes the view.

        Events arriving during the pull are queued and superseded by it.
        """
        if self.store.closed:
            raise RuntimeError("A closed DelegatedView cannot be reopened")
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self._on_event)
        try:
            await self.loader.refresh(self.store)
        except Exception:
            self.close()
            raise
        logger.info("Opened delegated view of user %s for %s", self.target_user_id, self.viewer_id)
        return self

    async def refresh(self) -> None:
        await self.loader.refresh(self.store)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if not self.store.closed:
            self.store.close()
            logger.info("Closed delegated view of user %s for %s", self.target_user_id, self.viewer_id)

    def _on_event(self, event: ChangeEvent) -> None:
        self.reconciler.process(event, self.store)
