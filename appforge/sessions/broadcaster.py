"""Fan a session's progress log out to live subscribers.

Subscribers receive the backlog from index 0 followed by live events, in
append order. A terminal event closes every stream for the session.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from appforge.models.progress import EventKind, ProgressEvent
from appforge.sessions.store import SessionStore, validate_session_id

logger = logging.getLogger(__name__)


class Subscription:
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        self.closed = False

    def deliver(self, event: ProgressEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    async def get(self) -> ProgressEvent:
        return await self._queue.get()

    @property
    def pending(self) -> int:
        return self._queue.qsize()


class ProgressBroadcaster:
    def __init__(self, store: SessionStore, stream_timeout_s: float = 300.0) -> None:
        self._store = store
        self._stream_timeout_s = stream_timeout_s
        self._subscribers: dict[str, set[Subscription]] = {}

    @property
    def store(self) -> SessionStore:
        return self._store

    def publish(
        self, session_id: str, text: str, kind: EventKind = EventKind.PROGRESS
    ) -> ProgressEvent:
        event = self._store.append(session_id, text, kind)
        logger.info(f"Progress [{session_id}]: {event.message}")
        for subscription in list(self._subscribers.get(session_id, ())):
            subscription.deliver(event)
        return event

    def complete(self, session_id: str, url: str) -> ProgressEvent:
        return self.publish(session_id, url, EventKind.COMPLETE)

    def fail(self, session_id: str, reason: str) -> ProgressEvent:
        return self.publish(session_id, reason, EventKind.ERROR)

    def subscribe(self, session_id: str) -> Subscription:
        validate_session_id(session_id)
        subscription = Subscription(session_id)
        for event in self._store.events(session_id, 0):
            subscription.deliver(event)
        self._subscribers.setdefault(session_id, set()).add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        subscribers = self._subscribers.get(subscription.session_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.session_id]

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    async def stream(
        self, session_id: str, timeout_s: float | None = None
    ) -> AsyncIterator[str]:
        """Yield SSE frames until a terminal event, the timeout, or disconnect."""
        timeout_s = self._stream_timeout_s if timeout_s is None else timeout_s
        subscription = self.subscribe(session_id)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        logger.info(f"Client connected to stream: {session_id}")
        try:
            session = self._store.get(session_id)
            if session is not None and session.sealed and subscription.pending == 0:
                return
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.info(f"Stream timed out: {session_id}")
                    return
                try:
                    event = await asyncio.wait_for(subscription.get(), remaining)
                except asyncio.TimeoutError:
                    logger.info(f"Stream timed out: {session_id}")
                    return
                yield event.to_frame()
                if event.is_terminal:
                    return
        finally:
            self.unsubscribe(subscription)
            logger.info(f"Client disconnected: {session_id}")
