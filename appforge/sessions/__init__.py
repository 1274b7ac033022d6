"""Session storage and progress streaming."""

from appforge.sessions.broadcaster import ProgressBroadcaster, Subscription
from appforge.sessions.store import BuildSession, SessionStore, validate_session_id

__all__ = [
    "BuildSession",
    "ProgressBroadcaster",
    "SessionStore",
    "Subscription",
    "validate_session_id",
]
