"""
Event Channel Client - one websocket subscription per signed-in session.

Frames are JSON objects ``{"event": name, "data": payload}``. Interview
payloads look like ``{"type": "status-updated", "interview": {...}}`` and
are normalized into ChangeEvents before any subscriber sees them.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

import websockets
from pydantic import ValidationError

from errors import UnknownEventKind
from state import AccessChangeEvent, AccessChangeKind, ChangeEvent, ChangeKind, Interview

logger = logging.getLogger(__name__)

INTERVIEW_EVENT = "interview-tracker:update"
ACCESS_EVENT = "interview-tracker-access:update"

Unsubscribe = Callable[[], None]


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize(payload: Any) -> Optional[ChangeEvent]:
    """Turn a raw ``interview-tracker:update`` payload into a ChangeEvent.

    Returns None (after logging) when the payload has no ``interview.id``
    or the row is malformed. Raises UnknownEventKind for an unknown ``type``.
    """
    if not isinstance(payload, dict):
        logger.warning("Dropping non-object interview payload: %r", payload)
        return None

    raw_kind = payload.get("type")
    try:
        kind = ChangeKind(raw_kind)
    except ValueError:
        raise UnknownEventKind(f"Unknown interview event type {raw_kind!r}", kind=raw_kind)

    raw = payload.get("interview")
    if not isinstance(raw, dict) or raw.get("id") is None:
        logger.warning("Dropping %s event without interview.id", kind.value)
        return None

    try:
        interview = Interview.model_validate(raw)
    except ValidationError as exc:
        if kind != ChangeKind.DELETED:
            logger.warning("Dropping malformed %s event for interview %s: %s", kind.value, raw.get("id"), exc)
            return None
        interview = None

    try:
        if interview is not None:
            return ChangeEvent.of(kind, interview)
        return ChangeEvent(
            kind=kind,
            interview_id=raw["id"],
            owner_user_id=raw.get("ownerUserId", raw.get("owner_user_id")),
        )
    except ValidationError as exc:
        logger.warning("Dropping %s event with bad ids: %s", kind.value, exc)
        return None


def normalize_access(payload: Any) -> Optional[AccessChangeEvent]:
    if not isinstance(payload, dict):
        logger.warning("Dropping non-object access payload: %r", payload)
        return None

    raw_kind = payload.get("type")
    try:
        kind = AccessChangeKind(raw_kind)
    except ValueError:
        raise UnknownEventKind(f"Unknown access event type {raw_kind!r}", kind=raw_kind)

    try:
        return AccessChangeEvent(kind=kind, access=payload.get("access"))
    except ValidationError as exc:
        logger.warning("Dropping malformed access %s event: %s", kind.value, exc)
        return None


def parse_frame(frame: Any):
    """Split a wire frame into (event name, payload)."""
    if isinstance(frame, (bytes, bytearray)):
        frame = frame.decode("utf-8")
    if isinstance(frame, str):
        frame = json.loads(frame)
    if isinstance(frame, list) and len(frame) == 2:
        return frame[0], frame[1]
    if isinstance(frame, dict):
        return frame.get("event"), frame.get("data")
    raise ValueError(f"Unrecognized frame shape: {type(frame).__name__}")


# =============================================================================
# CHANNEL
# =============================================================================

class EventChannel:
    """Push subscription shared by every Store of one session.

    Handlers are registered once and survive reconnects; registering the
    same handler twice keeps a single delivery.
    """

    def __init__(
        self,
        url: str,
        token: str = "",
        reconnect_delay: float = 2.0,
        connect: Optional[Callable] = None,
    ):
        self.url = url
        self.token = token
        self.reconnect_delay = reconnect_delay
        self._connect = connect or websockets.connect
        self._handlers: Dict[Callable, None] = {}
        self._access_handlers: Dict[Callable, None] = {}
        self._reconnect_handlers: Dict[Callable, None] = {}
        self._ws = None
        self._running = False
        self._stopping = False
        self.connections = 0

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, on_event: Callable[[ChangeEvent], None]) -> Unsubscribe:
        return _register(self._handlers, on_event)

    def subscribe_access(self, on_event: Callable[[AccessChangeEvent], None]) -> Unsubscribe:
        return _register(self._access_handlers, on_event)

    def on_reconnect(self, callback: Callable[[], None]) -> Unsubscribe:
        """Called after every reconnect; callers re-pull snapshots there."""
        return _register(self._reconnect_handlers, callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    @property
    def connected(self) -> bool:
        return self._ws is not None

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def dispatch(self, frame: Any) -> None:
        """Route one wire frame to subscribers. Never raises."""
        try:
            name, payload = parse_frame(frame)
        except ValueError as exc:
            logger.warning("Dropping unparseable frame: %s", exc)
            return

        try:
            if name == INTERVIEW_EVENT:
                event = normalize(payload)
                handlers = self._handlers
            elif name == ACCESS_EVENT:
                event = normalize_access(payload)
                handlers = self._access_handlers
            else:
                logger.debug("Ignoring push event %r", name)
                return
        except UnknownEventKind as exc:
            logger.warning("Dropping push event: %s", exc)
            return

        if event is None:
            return
        for handler in list(handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Subscriber %r failed on %s event", handler, event.kind.value)

    # -------------------------------------------------------------------------
    # Connection loop
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Stay connected until stop(); reconnect after drops."""
        if self._running:
            raise RuntimeError("EventChannel is already running")
        self._running = True
        self._stopping = False
        try:
            while not self._stopping:
                await self._run_once()
                if self._stopping:
                    break
                await asyncio.sleep(self.reconnect_delay)
        finally:
            self._running = False

    async def _run_once(self) -> None:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            async with self._connect(self.url, additional_headers=headers) as ws:
                self._ws = ws
                self.connections += 1
                logger.info("Push channel connected to %s", self.url)
                if self.connections > 1:
                    self._fire_reconnect()
                async for frame in ws:
                    self.dispatch(frame)
            logger.info("Push channel closed")
        except websockets.ConnectionClosed as exc:
            logger.warning("Push channel dropped: %s", exc)
        except OSError as exc:
            logger.warning("Push channel connect to %s failed: %s", self.url, exc)
        finally:
            self._ws = None

    def _fire_reconnect(self) -> None:
        for callback in list(self._reconnect_handlers):
            try:
                callback()
            except Exception:
                logger.exception("Reconnect handler %r failed", callback)

    async def stop(self) -> None:
        self._stopping = True
        if self._ws is not None:
            await self._ws.close()


def _register(registry: Dict[Callable, None], handler: Callable) -> Unsubscribe:
    registry[handler] = None

    def unsubscribe():
        registry.pop(handler, None)

    return unsubscribe
