"""Process-wide keyed storage of build sessions.

One orchestrator writes a session; any number of readers poll it. Progress is
append-only and file sets are replaced wholesale, so a single lock around
short critical sections is enough.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
import re
import threading
import time
from typing import Callable, Iterator, Sequence

from appforge.errors import SessionNotFound, ValidationError
from appforge.models.files import FileChange
from appforge.models.progress import EventKind, ProgressEvent

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_session_id(session_id: object) -> str:
    if not isinstance(session_id, str) or not SESSION_ID_PATTERN.match(session_id):
        raise ValidationError("Invalid sessionId format")
    return session_id


@dataclass
class BuildSession:
    session_id: str
    created_at: float
    events: list[ProgressEvent] = field(default_factory=list)
    files: tuple[FileChange, ...] | None = None
    sandbox_id: str | None = None
    sealed_at: float | None = None
    next_index: int = 0
    deploying: bool = False

    @property
    def sealed(self) -> bool:
        return self.sealed_at is not None


class SessionStore:
    def __init__(
        self,
        grace_s: float = 5.0,
        max_age_s: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._grace_s = grace_s
        self._max_age_s = max_age_s
        self._clock = clock
        self._sessions: dict[str, BuildSession] = {}
        self._lock = threading.RLock()

    def open(self, session_id: str) -> BuildSession:
        """Start a fresh session, discarding any previous one with the same id."""
        validate_session_id(session_id)
        with self._lock:
            session = BuildSession(session_id=session_id, created_at=self._clock())
            self._sessions[session_id] = session
            return session

    def _get_or_open(self, session_id: str) -> BuildSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = BuildSession(session_id=session_id, created_at=self._clock())
            self._sessions[session_id] = session
        return session

    def get(self, session_id: str) -> BuildSession | None:
        validate_session_id(session_id)
        with self._lock:
            return self._sessions.get(session_id)

    def append(
        self, session_id: str, text: str, kind: EventKind = EventKind.PROGRESS
    ) -> ProgressEvent:
        validate_session_id(session_id)
        with self._lock:
            session = self._get_or_open(session_id)
            if session.sealed:
                raise ValidationError(f"Session {session_id} is already complete")
            event = ProgressEvent(index=session.next_index, text=text, kind=kind)
            session.next_index += 1
            session.events.append(event)
            if event.is_terminal:
                session.sealed_at = self._clock()
            return event

    def seal(self, session_id: str) -> None:
        validate_session_id(session_id)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and not session.sealed:
                session.sealed_at = self._clock()

    def events(self, session_id: str, start: int = 0) -> list[ProgressEvent]:
        validate_session_id(session_id)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return []
            return [event for event in session.events if event.index >= start]

    def ensure_writable(self, session_id: str) -> None:
        """Raise ``ValidationError`` while the session's files are being deployed."""
        validate_session_id(session_id)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.deploying:
                raise ValidationError(f"Session {session_id} is being deployed")

    def put_files(self, session_id: str, files: Sequence[FileChange]) -> None:
        validate_session_id(session_id)
        with self._lock:
            session = self._get_or_open(session_id)
            if session.deploying:
                raise ValidationError(f"Session {session_id} is being deployed")
            session.files = tuple(files)

    def get_files(self, session_id: str) -> tuple[FileChange, ...] | None:
        validate_session_id(session_id)
        with self._lock:
            session = self._sessions.get(session_id)
            return session.files if session is not None else None

    def attach_sandbox(self, session_id: str, sandbox_id: str) -> None:
        validate_session_id(session_id)
        with self._lock:
            self._get_or_open(session_id).sandbox_id = sandbox_id

    @contextmanager
    def deploying(self, session_id: str) -> Iterator[tuple[FileChange, ...]]:
        """Hold the session's file set fixed for the duration of a deployment."""
        validate_session_id(session_id)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.files:
                raise SessionNotFound(session_id)
            if session.deploying:
                raise ValidationError(f"Session {session_id} is already being deployed")
            session.deploying = True
            files = session.files
        try:
            yield files
        finally:
            with self._lock:
                session.deploying = False

    def evict(self, session_id: str) -> None:
        validate_session_id(session_id)
        with self._lock:
            self._sessions.pop(session_id, None)

    def evict_expired(self, now: float | None = None) -> list[str]:
        """Prune sealed progress logs past grace and drop sessions past max age."""
        now = self._clock() if now is None else now
        evicted: list[str] = []
        with self._lock:
            for session_id, session in list(self._sessions.items()):
                if session.deploying:
                    continue
                if now - session.created_at > self._max_age_s:
                    del self._sessions[session_id]
                    evicted.append(session_id)
                elif session.sealed and now - session.sealed_at > self._grace_s:
                    session.events.clear()
        if evicted:
            logger.info(f"Evicted {len(evicted)} expired session(s)")
        return evicted

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
