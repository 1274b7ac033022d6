"""Tests for the session store and the progress broadcaster."""

import asyncio
import json

import pytest

from appforge.errors import SessionNotFound, ValidationError
from appforge.models.files import FileChange
from appforge.models.progress import EventKind
from appforge.sessions.broadcaster import ProgressBroadcaster
from appforge.sessions.store import SessionStore, validate_session_id


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def frames_to_messages(frames):
    return [json.loads(frame[len("data: ") :].strip())["message"] for frame in frames]


class TestValidateSessionId:
    @pytest.mark.parametrize("session_id", ["abc", "A-b_9", "x" * 64])
    def test_accepts(self, session_id):
        assert validate_session_id(session_id) == session_id

    @pytest.mark.parametrize("session_id", ["", "x" * 65, "a b", "../etc", "a/b", None, 42])
    def test_rejects(self, session_id):
        with pytest.raises(ValidationError):
            validate_session_id(session_id)


class TestSessionStore:
    def test_append_assigns_monotonic_indices(self, store):
        first = store.append("s1", "a")
        second = store.append("s1", "b")

        assert (first.index, second.index) == (0, 1)
        assert [event.text for event in store.events("s1")] == ["a", "b"]
        assert [event.text for event in store.events("s1", start=1)] == ["b"]

    def test_terminal_event_seals_session(self, store):
        store.append("s1", "a")
        store.append("s1", "http://x", EventKind.COMPLETE)

        assert store.get("s1").sealed
        with pytest.raises(ValidationError):
            store.append("s1", "late")

    def test_invalid_id_rejected_before_touching_store(self, store):
        with pytest.raises(ValidationError):
            store.put_files("bad id!", [FileChange("a.ts", "x")])
        assert len(store) == 0

    def test_files_replaced_wholesale(self, store):
        store.put_files("s1", [FileChange("a.ts", "1"), FileChange("b.ts", "2")])
        store.put_files("s1", [FileChange("c.ts", "3")])

        assert [item.path for item in store.get_files("s1")] == ["c.ts"]

    def test_file_inventory_is_stable(self, store):
        store.put_files("s1", [FileChange("a.ts", "1")])

        assert store.get_files("s1") == store.get_files("s1")

    def test_deploying_locks_file_set(self, store):
        store.put_files("s1", [FileChange("a.ts", "1")])
        with store.deploying("s1") as files:
            assert [item.path for item in files] == ["a.ts"]
            with pytest.raises(ValidationError):
                store.put_files("s1", [])
            with pytest.raises(ValidationError):
                store.ensure_writable("s1")
            with pytest.raises(ValidationError):
                with store.deploying("s1"):
                    pass
        store.put_files("s1", [FileChange("b.ts", "2")])
        store.ensure_writable("s1")
        store.ensure_writable("unknown")

    def test_deploying_unknown_session(self, store):
        with pytest.raises(SessionNotFound):
            with store.deploying("missing"):
                pass

    def test_eviction_prunes_sealed_logs_then_drops_old_sessions(self):
        clock = FakeClock()
        store = SessionStore(grace_s=5, max_age_s=60, clock=clock)
        store.append("done", "a")
        store.append("done", "boom", EventKind.ERROR)
        store.put_files("done", [FileChange("a.ts", "1")])
        store.append("running", "a")

        clock.now += 6
        assert store.evict_expired() == []
        assert store.events("done") == []
        assert store.get_files("done") is not None
        assert len(store.events("running")) == 1

        clock.now += 60
        assert sorted(store.evict_expired()) == ["done", "running"]
        assert len(store) == 0

    def test_open_resets_session(self, store):
        store.append("s1", "old")
        store.open("s1")

        assert store.events("s1") == []


class TestProgressBroadcaster:
    @pytest.mark.asyncio
    async def test_backlog_delivered_in_order_and_stream_closes(self, broadcaster):
        broadcaster.publish("s1", "a")
        broadcaster.publish("s1", "b")
        broadcaster.complete("s1", "http://x")

        frames = [frame async for frame in broadcaster.stream("s1")]

        assert frames_to_messages(frames) == ["a", "b", "COMPLETE:http://x"]
        assert frames[0] == 'data: {"message": "a"}\n\n'
        assert broadcaster.subscriber_count("s1") == 0

    @pytest.mark.asyncio
    async def test_live_events_reach_multiple_subscribers(self, broadcaster):
        broadcaster.publish("s1", "first")

        async def collect():
            return [frame async for frame in broadcaster.stream("s1")]

        readers = [asyncio.create_task(collect()) for _ in range(2)]
        await asyncio.sleep(0)
        broadcaster.publish("s1", "second")
        broadcaster.fail("s1", "sandbox exploded")
        results = await asyncio.gather(*readers)

        for frames in results:
            assert frames_to_messages(frames) == ["first", "second", "ERROR:sandbox exploded"]

    @pytest.mark.asyncio
    async def test_timeout_ends_stream_without_event(self, broadcaster):
        broadcaster.publish("s1", "a")

        frames = [frame async for frame in broadcaster.stream("s1", timeout_s=0.05)]

        assert frames_to_messages(frames) == ["a"]
        assert broadcaster.subscriber_count("s1") == 0

    @pytest.mark.asyncio
    async def test_disconnect_unsubscribes(self, broadcaster):
        broadcaster.publish("s1", "a")
        stream = broadcaster.stream("s1")

        assert await stream.__anext__() == 'data: {"message": "a"}\n\n'
        assert broadcaster.subscriber_count("s1") == 1
        await stream.aclose()

        assert broadcaster.subscriber_count("s1") == 0

    @pytest.mark.asyncio
    async def test_sealed_and_pruned_session_closes_immediately(self, store):
        broadcaster = ProgressBroadcaster(store, stream_timeout_s=30)
        broadcaster.complete("s1", "http://x")
        store.get("s1").events.clear()

        frames = [frame async for frame in broadcaster.stream("s1")]

        assert frames == []
