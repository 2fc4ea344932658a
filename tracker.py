"""
Session orchestration for the Interview Tracker.

Flow:
1. Snapshot Loader seeds the primary (Self) Store
2. Push channel delivers ChangeEvents; the Reconciler applies them per Store
3. User actions go out as commands and come back as ChangeEvents
4. Delegated views get their own Store, subscription and lifecycle
"""
import asyncio
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from access.registry import AccessGrantRegistry
from access.search import filter_grant_targets
from access.views import DelegatedView
from calendar_projector import project
from config import TrackerSettings
from errors import InvalidTarget, InvalidTransition, NotFound, TrackerError
from invitations import InvitationAction, InvitationStateMachine
from state import (
    AccessChangeEvent,
    AccessGrant,
    ChangeEvent,
    ChangeKind,
    DayBucket,
    Interview,
    InterviewResult,
    InterviewStatus,
    Role,
    TrackerStats,
    UserSummary,
    ViewScope,
    YearMonth,
)
from summary import filter_by_status, stats, upcoming
from sync.channel import EventChannel
from sync.loader import SnapshotLoader
from sync.reconciler import ApplyOutcome, Reconciler
from sync.store import InterviewStore
from tracker_client import TrackerClient

logger = logging.getLogger(__name__)


class TrackerSession:
    """
    High-level interface for one signed-in user.

    All Store mutation happens on the event loop thread, either from the
    push channel or from a snapshot pull.
    """

    def __init__(
        self,
        client: TrackerClient,
        channel: EventChannel,
        self_user_id: int,
        role: Role = Role.GRADUATE,
        backlog_limit: int = 500,
    ):
        self.client = client
        self.channel = channel
        self.self_user_id = self_user_id
        self.role = role
        self.backlog_limit = backlog_limit

        self.store = InterviewStore(ViewScope.own(), backlog_limit=backlog_limit)
        self.loader = SnapshotLoader(client, role)
        self.reconciler = Reconciler(self_user_id)
        self.registry = AccessGrantRegistry(client, self_user_id)
        self.invitations = InvitationStateMachine(client, self_user_id)
        self._unsubscribes: List[Callable[[], None]] = []
        self._tasks: set = set()

    @classmethod
    def from_settings(cls, settings: TrackerSettings) -> "TrackerSession":
        client = TrackerClient(settings.api_url, settings.token, timeout=settings.http_timeout)
        channel = EventChannel(
            settings.resolved_socket_url,
            token=settings.token,
            reconnect_delay=settings.reconnect_delay,
        )
        return cls(
            client,
            channel,
            settings.user_id,
            role=settings.role,
            backlog_limit=settings.backlog_limit,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Subscribe to the channel and pull the initial state. Raises FetchError."""
        if not self._unsubscribes:
            self._unsubscribes = [
                self.channel.subscribe(self._on_event),
                self.channel.subscribe_access(self._on_access_event),
                self.channel.on_reconnect(self._on_reconnect),
            ]
        self.loader.seed(self.store)
        self.registry.refresh()

    async def run(self) -> None:
        """Keep the push channel connected until close()."""
        await self.channel.run()

    async def resync(self) -> None:
        """Re-pull the access lists, then every live Store, e.g. after a reconnect.

        Grants go first so views over vanished grants are closed before
        anything is pulled for them. A delegated pull the server refuses
        closes its view; any other failure leaves the Store buffering.
        """
        try:
            await self.registry.resync()
        except TrackerError as exc:
            logger.error("Access list refresh failed: %s", exc)

        try:
            await self.loader.refresh(self.store)
        except TrackerError as exc:
            logger.error("Resync of %s failed: %s", self.store.scope, exc)

        for view in self.registry.open_views:
            if not view.is_open:
                continue
            try:
                await view.refresh()
            except (InvalidTarget, NotFound) as exc:
                logger.warning("Lost access to user %s: %s", view.target_user_id, exc)
                self.registry.teardown(view.pair)
            except TrackerError as exc:
                logger.error("Resync of %s failed: %s", view.store.scope, exc)

    async def close(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes = []
        self.registry.close()
        await self.channel.stop()

    # =========================================================================
    # PUSH HANDLERS
    # =========================================================================

    def _on_event(self, event: ChangeEvent) -> None:
        outcome = self.reconciler.process(event, self.store)
        if outcome != ApplyOutcome.APPLIED:
            return
        if event.kind == ChangeKind.DELETED:
            self.invitations.forget(event.interview_id)
        else:
            self.invitations.acknowledge(event.interview)

    def _on_access_event(self, event: AccessChangeEvent) -> None:
        self.registry.apply_event(event)

    def _on_reconnect(self) -> None:
        logger.info("Push channel reconnected, re-pulling snapshots")
        task = asyncio.get_running_loop().create_task(self.resync())
        self._tasks.add(task)
        task.add_done_callback(self._resync_done)

    def _resync_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Resync after reconnect failed", exc_info=task.exception())

    # =========================================================================
    # INTERVIEW COMMANDS
    # =========================================================================

    def _require(self, interview_id: int) -> Interview:
        interview = self.store.get(interview_id)
        if interview is None:
            raise NotFound(
                f"Interview {interview_id} is not on your schedule; reload it",
                interview=interview_id,
            )
        return interview

    async def create_interview(self, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self.client.create_interview, fields)

    async def update_interview(self, interview_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self._require(interview_id)
        return await asyncio.to_thread(self.client.update_interview, interview_id, fields)

    async def set_status(self, interview_id: int, status: InterviewStatus) -> None:
        interview = self._require(interview_id)
        status = InterviewStatus(status)
        if interview.status == InterviewStatus.CANCELLED and status != InterviewStatus.CANCELLED:
            raise InvalidTransition(f"Interview {interview_id} is cancelled")
        await asyncio.to_thread(self.client.update_status, interview_id, status.value)

    async def set_result(self, interview_id: int, result: Optional[InterviewResult]) -> None:
        interview = self._require(interview_id)
        if interview.status != InterviewStatus.COMPLETED:
            raise InvalidTransition(f"Interview {interview_id} is not completed yet")
        value = InterviewResult(result).value if result is not None else None
        await asyncio.to_thread(self.client.update_result, interview_id, value)

    async def delete_interview(self, interview_id: int) -> None:
        self._require(interview_id)
        await asyncio.to_thread(self.client.delete_interview, interview_id)

    async def respond_invitation(self, interview_id: int, action: InvitationAction):
        return await self.invitations.respond(self._require(interview_id), action)

    async def accept_invitation(self, interview_id: int):
        return await self.respond_invitation(interview_id, InvitationAction.ACCEPT)

    async def decline_invitation(self, interview_id: int):
        return await self.respond_invitation(interview_id, InvitationAction.DECLINE)

    # =========================================================================
    # ACCESS
    # =========================================================================

    async def grant_access(self, grantee_id: int) -> AccessGrant:
        return await self.registry.grant(grantee_id)

    async def revoke_access(self, grant_id: int) -> None:
        await self.registry.revoke(grant_id)

    async def grant_targets(self, query: str = "") -> List[UserSummary]:
        users = await asyncio.to_thread(self.client.list_users, self.role)
        return filter_grant_targets(users, self.registry.list_granted_by_me(), query, self.role)

    async def open_delegated_view(self, target_user_id: int) -> DelegatedView:
        """Open (or return the open) read-only view of ``target_user_id``."""
        if self.registry.grant_from(target_user_id) is None:
            raise InvalidTarget(
                f"User {target_user_id} has not shared their calendar with you",
                target=target_user_id,
            )
        existing = self.delegated_view(target_user_id)
        if existing is not None:
            return existing

        view = DelegatedView(
            target_user_id,
            self.self_user_id,
            self.channel,
            self.loader,
            self.reconciler,
            backlog_limit=self.backlog_limit,
        )
        self.registry.register_view(view)
        try:
            await view.open()
        except Exception:
            self.registry.unregister_view(view)
            raise
        return view

    def delegated_view(self, target_user_id: int) -> Optional[DelegatedView]:
        view = self.registry.view_for((target_user_id, self.self_user_id))
        if view is None or not view.is_open:
            return None
        return view

    def close_delegated_view(self, target_user_id: int) -> bool:
        return self.registry.teardown((target_user_id, self.self_user_id))

    # =========================================================================
    # READS
    # =========================================================================

    def interviews(self, status: str = "all") -> List[Interview]:
        return filter_by_status(self.store.all(), status)

    def upcoming(self, today: Optional[date] = None) -> List[Interview]:
        return upcoming(self.store.all(), today)

    def stats(self) -> TrackerStats:
        return stats(self.store.all())

    def calendar(self, month: YearMonth, today: Optional[date] = None) -> List[DayBucket]:
        return project(self.store.all(), month, today or date.today())

    def delegated_calendar(self, target_user_id: int, month: YearMonth) -> List[DayBucket]:
        view = self.delegated_view(target_user_id)
        if view is None:
            raise NotFound(f"No open view of user {target_user_id}", target=target_user_id)
        return project(view.store.all(), month, date.today())
