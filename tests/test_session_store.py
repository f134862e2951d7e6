"""Tests for the in-memory session store."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from serviceswarm.conversation.session_store import InMemorySessionStore, run_sweeper
from serviceswarm.conversation.state_machine import DialogueState
from serviceswarm.schemas.session_schema import Session


class TestBasicOperations:
    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self):
        assert await InMemorySessionStore().get("CA1") is None

    @pytest.mark.asyncio
    async def test_put_then_get(self):
        store = InMemorySessionStore()
        session = Session(call_id="CA1")
        await store.put(session)
        assert await store.get("CA1") is session
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_delete(self):
        store = InMemorySessionStore()
        await store.put(Session(call_id="CA1"))
        await store.delete("CA1")
        assert await store.get("CA1") is None

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self):
        await InMemorySessionStore().delete("nope")


class TestSweep:
    @pytest.mark.asyncio
    async def test_sweeps_idle_sessions(self):
        store = InMemorySessionStore(ttl_seconds=60)
        now = datetime.now(timezone.utc)
        stale = Session(call_id="old", updated_at=now - timedelta(seconds=120))
        fresh = Session(call_id="new", updated_at=now)
        await store.put(stale)
        await store.put(fresh)

        assert await store.sweep_expired(now) == 1
        assert await store.get("old") is None
        assert await store.get("new") is fresh

    @pytest.mark.asyncio
    async def test_skips_sessions_with_turn_in_flight(self):
        store = InMemorySessionStore(ttl_seconds=60)
        now = datetime.now(timezone.utc)
        await store.put(Session(call_id="busy", updated_at=now - timedelta(seconds=120)))

        async with store.locked("busy"):
            assert await store.sweep_expired(now) == 0
        assert await store.sweep_expired(now) == 1

    @pytest.mark.asyncio
    async def test_nothing_to_sweep(self):
        assert await InMemorySessionStore().sweep_expired() == 0


class TestLocking:
    @pytest.mark.asyncio
    async def test_same_call_is_serialized(self):
        store = InMemorySessionStore()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with store.locked("CA1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    @pytest.mark.asyncio
    async def test_different_calls_run_concurrently(self):
        store = InMemorySessionStore()
        inside = asyncio.Event()
        released = asyncio.Event()

        async def holder() -> None:
            async with store.locked("CA1"):
                inside.set()
                await released.wait()

        task = asyncio.create_task(holder())
        await inside.wait()
        async with store.locked("CA2"):
            released.set()
        await task


class TestEndedCalls:
    @pytest.mark.asyncio
    async def test_delete_marks_call_ended(self):
        store = InMemorySessionStore()
        await store.put(Session(call_id="CA1"))
        assert not await store.has_ended("CA1")
        await store.delete("CA1")
        assert await store.has_ended("CA1")
        assert not await store.has_ended("CA2")

    @pytest.mark.asyncio
    async def test_expired_session_counts_as_ended(self):
        store = InMemorySessionStore(ttl_seconds=60)
        now = datetime.now(timezone.utc)
        await store.put(Session(call_id="old", updated_at=now - timedelta(seconds=120)))
        await store.sweep_expired(now)
        assert await store.has_ended("old")

    @pytest.mark.asyncio
    async def test_ended_marker_forgotten_after_ttl(self):
        store = InMemorySessionStore(ttl_seconds=60)
        await store.delete("CA1")
        await store.sweep_expired(datetime.now(timezone.utc) + timedelta(seconds=120))
        assert not await store.has_ended("CA1")


class TestLockCleanup:
    @pytest.mark.asyncio
    async def test_lock_dropped_once_session_gone(self):
        store = InMemorySessionStore()
        async with store.locked("CA1"):
            await store.put(Session(call_id="CA1"))
        await store.delete("CA1")

        await store.sweep_expired()

        assert "CA1" not in store._locks

    @pytest.mark.asyncio
    async def test_lock_kept_for_live_session(self):
        store = InMemorySessionStore()
        async with store.locked("CA1"):
            await store.put(Session(call_id="CA1"))
        await store.sweep_expired()
        assert "CA1" in store._locks

    @pytest.mark.asyncio
    async def test_lock_kept_while_a_turn_is_waiting(self):
        store = InMemorySessionStore()
        entered: list[str] = []

        async def waiter() -> None:
            async with store.locked("CA1"):
                entered.append("waiter")

        async with store.locked("CA1"):
            task = asyncio.create_task(waiter())
            await asyncio.sleep(0)
        # released, but the waiter has not resumed yet
        lock = store._locks["CA1"]
        await store.sweep_expired()
        assert store._locks.get("CA1") is lock

        await task
        assert entered == ["waiter"]
        await store.sweep_expired()
        assert "CA1" not in store._locks


class TestSweeper:
    @pytest.mark.asyncio
    async def test_sweeper_reclaims_idle_sessions(self):
        store = InMemorySessionStore(ttl_seconds=60)
        stale = datetime.now(timezone.utc) - timedelta(seconds=120)
        await store.put(Session(call_id="old", updated_at=stale))

        task = asyncio.create_task(run_sweeper(store, interval_seconds=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await store.get("old") is None

    @pytest.mark.asyncio
    async def test_sweeper_survives_failed_sweep(self):
        class FlakyStore(InMemorySessionStore):
            def __init__(self) -> None:
                super().__init__()
                self.sweeps = 0

            async def sweep_expired(self, now=None) -> int:
                self.sweeps += 1
                if self.sweeps == 1:
                    raise RuntimeError("backend unavailable")
                return await super().sweep_expired(now)

        store = FlakyStore()
        task = asyncio.create_task(run_sweeper(store, interval_seconds=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert store.sweeps >= 2


class TestSession:
    def test_new_session_starts_in_welcome(self):
        session = Session(call_id="CA1")
        assert session.state == DialogueState.WELCOME
        assert session.get_state_trace() == ["welcome"]

    def test_enter_records_history_once_per_change(self):
        session = Session(call_id="CA1")
        session.enter(DialogueState.AWAITING_INTENT)
        session.enter(DialogueState.AWAITING_INTENT)
        assert session.get_state_trace() == ["welcome", "awaiting_intent"]

    def test_reprompts_are_per_state(self):
        session = Session(call_id="CA1", state=DialogueState.AWAITING_DATE)
        session.record_reprompt()
        session.record_reprompt()
        assert session.reprompts_in() == 2
        assert session.reprompts_in(DialogueState.AWAITING_TIME) == 0
