"""
Session storage for in-progress calls.

``SessionStore`` is the capability the turn orchestrator depends on; the
in-process implementation below keeps sessions in a dict and serializes
work on each call with its own ``asyncio.Lock``. A durable backend only
needs to provide the same six operations.

Deleting a session ends its call: the call id is remembered for one TTL so
late or retried callbacks for it can be told apart from a brand-new call.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncContextManager, AsyncIterator, Optional, Protocol

from serviceswarm.config import settings
from serviceswarm.schemas.session_schema import Session

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    async def get(self, call_id: str) -> Optional[Session]: ...

    async def put(self, session: Session) -> None: ...

    async def delete(self, call_id: str) -> None: ...

    async def has_ended(self, call_id: str) -> bool: ...

    async def sweep_expired(self, now: Optional[datetime] = None) -> int: ...

    def locked(self, call_id: str) -> AsyncContextManager[None]: ...


class InMemorySessionStore:
    """Process-local session store with per-call locking and inactivity expiry."""

    def __init__(self, ttl_seconds: Optional[int] = None) -> None:
        self._ttl = timedelta(
            seconds=ttl_seconds if ttl_seconds is not None else settings.dialogue.session_ttl_seconds
        )
        self._sessions: dict[str, Session] = {}
        self._ended: dict[str, datetime] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # holders plus waiters per call; a lock is only dropped at zero
        self._lock_users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def get(self, call_id: str) -> Optional[Session]:
        return self._sessions.get(call_id)

    async def put(self, session: Session) -> None:
        self._sessions[session.call_id] = session

    async def delete(self, call_id: str) -> None:
        """Remove the session and mark the call as ended."""
        self._ended[call_id] = datetime.now(timezone.utc)
        if self._sessions.pop(call_id, None) is not None:
            logger.debug("Session %s removed", call_id)

    async def has_ended(self, call_id: str) -> bool:
        return call_id in self._ended

    @asynccontextmanager
    async def locked(self, call_id: str) -> AsyncIterator[None]:
        """Hold the lock for ``call_id`` for the duration of the block."""
        lock = self._locks.setdefault(call_id, asyncio.Lock())
        self._lock_users[call_id] = self._lock_users.get(call_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[call_id] -= 1
            if not self._lock_users[call_id]:
                del self._lock_users[call_id]

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Drop sessions idle longer than the TTL. Returns how many were removed.

        Sessions with a turn holding or waiting on their lock are skipped.
        Ended-call markers older than the TTL are forgotten as well.
        """
        now = now or datetime.now(timezone.utc)
        expired = [
            call_id
            for call_id, session in self._sessions.items()
            if now - session.updated_at > self._ttl and not self._is_busy(call_id)
        ]
        for call_id in expired:
            del self._sessions[call_id]
            self._ended[call_id] = now

        forgotten = [call_id for call_id, ended_at in self._ended.items() if now - ended_at > self._ttl]
        for call_id in forgotten:
            del self._ended[call_id]

        orphaned = [
            call_id
            for call_id in self._locks
            if call_id not in self._sessions and not self._is_busy(call_id)
        ]
        for call_id in orphaned:
            del self._locks[call_id]

        if expired:
            logger.info("Swept %d expired session(s)", len(expired))
        return len(expired)

    def _is_busy(self, call_id: str) -> bool:
        return call_id in self._lock_users


async def run_sweeper(store: SessionStore, interval_seconds: Optional[float] = None) -> None:
    """Periodically reclaim sessions of abandoned calls. Runs until cancelled."""
    interval = interval_seconds or settings.dialogue.sweep_interval_seconds
    while True:
        await asyncio.sleep(interval)
        try:
            await store.sweep_expired()
        except Exception:
            logger.exception("Session sweep failed")
