"""
Interview synchronization: Store, Snapshot Loader, push channel and Reconciler.
"""
from .store import InterviewStore
from .loader import SnapshotLoader
from .channel import EventChannel, normalize, normalize_access
from .reconciler import ApplyOutcome, Reconciler, apply
from .meetings import Meeting, ParticipantView, join_meetings, meeting_key
