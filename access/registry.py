"""
Access Grant Registry - who may read whose interview schedule.

Everything here can be rebuilt from ``GET /interview-tracker/access``. The
one thing the registry adds is enforcement: when a grant disappears, any open
delegated view that depended on it is torn down before the call returns.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from access.views import DelegatedView
from errors import DuplicateGrant, InvalidTarget, NotFound, NotGrantor
from state import AccessChangeEvent, AccessChangeKind, AccessGrant
from tracker_client import TrackerClient

logger = logging.getLogger(__name__)

Pair = Tuple[int, int]


def _ordered(grants: Dict[int, AccessGrant]) -> List[AccessGrant]:
    return sorted(grants.values(), key=lambda g: (g.created_at is None, g.created_at, g.id))


class AccessGrantRegistry:
    def __init__(self, client: TrackerClient, self_user_id: int):
        self.client = client
        self.self_user_id = self_user_id
        self._granted_by_me: Dict[int, AccessGrant] = {}
        self._granted_to_me: Dict[int, AccessGrant] = {}
        self._views: Dict[Pair, DelegatedView] = {}

    # =========================================================================
    # QUERIES
    # =========================================================================

    def list_granted_by_me(self) -> List[AccessGrant]:
        return _ordered(self._granted_by_me)

    def list_granted_to_me(self) -> List[AccessGrant]:
        return _ordered(self._granted_to_me)

    def grant_from(self, grantor_id: int) -> Optional[AccessGrant]:
        """The grant letting this user read ``grantor_id``'s schedule, if any."""
        for grant in self._granted_to_me.values():
            if grant.grantor_id == grantor_id:
                return grant
        return None

    def grant_to(self, grantee_id: int) -> Optional[AccessGrant]:
        for grant in self._granted_by_me.values():
            if grant.grantee_id == grantee_id:
                return grant
        return None

    def refresh(self) -> None:
        """Re-derive both lists from the server. Raises FetchError."""
        self.replace(*self.client.list_access())

    async def resync(self) -> None:
        """Like refresh(), with the pull on a worker thread."""
        self.replace(*await asyncio.to_thread(self.client.list_access))

    def replace(self, by_me: List[AccessGrant], to_me: List[AccessGrant]) -> None:
        """Install fresh lists and close every view whose grant is gone."""
        self._granted_by_me = {g.id: g for g in by_me}
        self._granted_to_me = {g.id: g for g in to_me}
        live = {g.pair for g in by_me} | {g.pair for g in to_me}
        for pair in [p for p in self._views if p not in live]:
            logger.info("Grant %s -> %s no longer exists", *pair)
            self.teardown(pair)

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def grant(self, grantee_id: int) -> AccessGrant:
        if grantee_id is None or grantee_id <= 0 or grantee_id == self.self_user_id:
            raise InvalidTarget(f"Cannot grant access to user {grantee_id}", target=grantee_id)
        if self.grant_to(grantee_id) is not None:
            raise DuplicateGrant(f"User {grantee_id} already has access", target=grantee_id)

        grant = await asyncio.to_thread(self.client.grant_access, grantee_id)
        self._granted_by_me[grant.id] = grant
        logger.info("Granted calendar access to user %s (grant %s)", grantee_id, grant.id)
        return grant

    async def revoke(self, grant_id: int) -> None:
        grant = self._granted_by_me.get(grant_id)
        if grant is None:
            if grant_id in self._granted_to_me:
                raise NotGrantor(f"Grant {grant_id} was issued by someone else", grant=grant_id)
            raise NotFound(f"Unknown grant {grant_id}; refresh the access list", grant=grant_id)

        try:
            await asyncio.to_thread(self.client.revoke_access, grant_id)
        except NotFound:
            # Already gone on the server; still close anything built on it
            self._forget(self._granted_by_me, grant)
            raise
        self._forget(self._granted_by_me, grant)
        logger.info("Revoked grant %s (user %s)", grant_id, grant.grantee_id)

    # =========================================================================
    # DELEGATED VIEWS
    # =========================================================================

    def register_view(self, view: DelegatedView) -> None:
        existing = self._views.get(view.pair)
        if existing is not None and existing is not view:
            existing.close()
        self._views[view.pair] = view

    def unregister_view(self, view: DelegatedView) -> None:
        if self._views.get(view.pair) is view:
            del self._views[view.pair]

    def view_for(self, pair: Pair) -> Optional[DelegatedView]:
        return self._views.get(pair)

    @property
    def open_views(self) -> List[DelegatedView]:
        return list(self._views.values())

    def teardown(self, pair: Pair) -> bool:
        """Close the view keyed to (grantor, grantee), if one is open."""
        view = self._views.pop(pair, None)
        if view is None:
            return False
        view.close()
        logger.info("Tore down delegated view for revoked grant %s -> %s", *pair)
        return True

    # =========================================================================
    # PUSH EVENTS
    # =========================================================================

    def apply_event(self, event: AccessChangeEvent) -> None:
        grant = event.access
        if grant.grantor_id == self.self_user_id:
            bucket = self._granted_by_me
        elif grant.grantee_id == self.self_user_id:
            bucket = self._granted_to_me
        else:
            logger.debug("Ignoring access event for grant %s not involving this user", grant.id)
            return

        if event.kind == AccessChangeKind.DELETED:
            self._forget(bucket, grant)
        else:
            bucket[grant.id] = grant

    def _forget(self, bucket: Dict[int, AccessGrant], grant: AccessGrant) -> None:
        bucket.pop(grant.id, None)
        self.teardown(grant.pair)

    def close(self) -> None:
        for pair in list(self._views):
            self.teardown(pair)
