# ============================================================================
# Per-Session Mutual Exclusion
# ============================================================================
"""
Serializes operations on a single quiz session.

Calls on different sessions never contend; calls on the same session
(double-submits, a retrying client racing its own request) run one at a
time. Two backends:

- InProcessSessionLocks: asyncio locks, enough for a single worker process
- RedisSessionLocks: distributed locks shared by every worker
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Dict
from uuid import UUID

from redis.exceptions import LockError

from quiz_engine.config import get_settings
from quiz_engine.core.exceptions import SessionBusy

logger = logging.getLogger(__name__)


class InProcessSessionLocks:
    """Reference-counted asyncio locks keyed by session id"""

    def __init__(self, wait_seconds: float = 10.0):
        self.wait_seconds = wait_seconds
        self._locks: Dict[UUID, asyncio.Lock] = {}
        self._holders: Dict[UUID, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.wait_seconds)
            except asyncio.TimeoutError:
                raise SessionBusy(session_id)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._holders[session_id] -= 1
            if self._holders[session_id] == 0:
                del self._holders[session_id]
                self._locks.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._locks)


class RedisSessionLocks:
    """Redis-backed locks for deployments with several API workers"""

    KEY_PREFIX = "quiz:session-lock"

    def __init__(self, client, timeout_seconds: int = 30, wait_seconds: float = 10.0):
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.wait_seconds = wait_seconds

    @asynccontextmanager
    async def hold(self, session_id: UUID) -> AsyncIterator[None]:
        lock = self.client.lock(
            f"{self.KEY_PREFIX}:{session_id}",
            timeout=self.timeout_seconds,
            blocking_timeout=self.wait_seconds,
        )
        if not await lock.acquire():
            raise SessionBusy(session_id)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lock expired while held; the transaction already finished
                logger.warning(f"Session lock for {session_id} expired before release")


@lru_cache()
def get_session_locks():
    """Process-wide lock registry chosen by SESSION_LOCK_BACKEND"""
    settings = get_settings()
    if settings.SESSION_LOCK_BACKEND == "redis":
        from quiz_engine.core.redis import redis_client
        return RedisSessionLocks(
            redis_client,
            timeout_seconds=settings.SESSION_LOCK_TIMEOUT_SECONDS,
            wait_seconds=settings.SESSION_LOCK_WAIT_SECONDS,
        )
    return InProcessSessionLocks(wait_seconds=settings.SESSION_LOCK_WAIT_SECONDS)
