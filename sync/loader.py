"""
Snapshot Loader - pulls a full interview list for a scope and seeds a Store.
"""
import asyncio
import logging
from typing import List

from errors import TrackerError
from state import Interview, Role, ViewScope
from sync.store import InterviewStore
from tracker_client import TrackerClient

logger = logging.getLogger(__name__)


class SnapshotLoader:
    def __init__(self, client: TrackerClient, role: Role = Role.GRADUATE):
        self.client = client
        self.role = role

    def load(self, scope: ViewScope) -> List[Interview]:
        """Pull the full list for ``scope``. Raises FetchError; no retry."""
        if scope.is_delegated:
            return self.client.delegated_calendar(scope.target_user_id)
        return self.client.list_interviews(self.role)

    def seed(self, store: InterviewStore) -> List[Interview]:
        """Pull and replace ``store`` wholesale.

        On FetchError the Store keeps its rows and backlog.
        """
        interviews = self.load(store.scope)
        self._replace(store, interviews)
        return interviews

    async def refresh(self, store: InterviewStore) -> List[Interview]:
        """Pull off the event loop; events arriving meanwhile are queued."""
        store.begin_snapshot()
        try:
            interviews = await asyncio.to_thread(self.load, store.scope)
        except TrackerError:
            logger.warning("Snapshot for %s failed; keeping %d buffered events", store.scope, len(store.backlog))
            raise
        self._replace(store, interviews)
        return interviews

    def _replace(self, store: InterviewStore, interviews: List[Interview]) -> None:
        if store.closed:
            logger.debug("Store for %s closed while loading, discarding snapshot", store.scope)
            return
        discarded = len(store.backlog)
        store.replace_all(interviews)
        logger.info(
            "Loaded %d interviews for %s (discarded %d buffered events)",
            len(store), store.scope, discarded,
        )
