"""
Error taxonomy for the Interview Tracker engine.

Each error carries the HTTP status the local API facade answers with.
"""


class TrackerError(Exception):
    """Base class for every engine error."""
    status_code = 500

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.context = context


class FetchError(TrackerError):
    """A snapshot or listing pull failed; the target Store is left unchanged."""
    status_code = 502


class CommandError(TrackerError):
    """A command could not be delivered or the server rejected it."""
    status_code = 502


class NotFound(TrackerError):
    """The command targets an entity that no longer exists. Re-pull the snapshot."""
    status_code = 404


class DuplicateGrant(TrackerError):
    status_code = 409


class InvalidTarget(TrackerError):
    status_code = 400


class NotGrantor(TrackerError):
    status_code = 403


class UnknownEventKind(TrackerError):
    """Malformed or future push payload. Logged and dropped by consumers."""
    status_code = 422


class InvalidTransition(TrackerError):
    status_code = 409


class NotInvitee(TrackerError):
    status_code = 403
