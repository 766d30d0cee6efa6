# ============================================================================
# Session Lock Tests
# ============================================================================
import asyncio
import pytest
from uuid import uuid4
from unittest.mock import AsyncMock, MagicMock
from redis.exceptions import LockError

from quiz_engine.core.exceptions import SessionBusy
from quiz_engine.core.locks import InProcessSessionLocks, RedisSessionLocks


class TestInProcessLocks:
    """Tests for asyncio-backed session locks"""

    @pytest.mark.asyncio
    async def test_same_session_serializes(self):
        locks = InProcessSessionLocks(wait_seconds=5)
        session_id = uuid4()
        events = []

        async def worker(name):
            async with locks.hold(session_id):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_busy_after_wait(self):
        locks = InProcessSessionLocks(wait_seconds=0.05)
        session_id = uuid4()

        async with locks.hold(session_id):
            with pytest.raises(SessionBusy):
                async with locks.hold(session_id):
                    pass

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_sessions_do_not_contend(self):
        locks = InProcessSessionLocks(wait_seconds=0.05)

        async with locks.hold(uuid4()):
            async with locks.hold(uuid4()):
                assert len(locks) == 2


class TestRedisLocks:
    """Tests for the redis-backed registry"""

    @pytest.fixture
    def redis_lock(self):
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=True)
        lock.release = AsyncMock()
        return lock

    @pytest.fixture
    def client(self, redis_lock):
        client = MagicMock()
        client.lock.return_value = redis_lock
        return client

    @pytest.mark.asyncio
    async def test_acquires_and_releases(self, client, redis_lock):
        locks = RedisSessionLocks(client, timeout_seconds=30, wait_seconds=2)
        session_id = uuid4()

        async with locks.hold(session_id):
            pass

        client.lock.assert_called_once_with(
            f"quiz:session-lock:{session_id}", timeout=30, blocking_timeout=2
        )
        redis_lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_acquire_is_busy(self, client, redis_lock):
        redis_lock.acquire.return_value = False
        locks = RedisSessionLocks(client)

        with pytest.raises(SessionBusy):
            async with locks.hold(uuid4()):
                pass

        redis_lock.release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_lock_on_release_is_tolerated(self, client, redis_lock):
        redis_lock.release.side_effect = LockError("expired")
        locks = RedisSessionLocks(client)

        async with locks.hold(uuid4()):
            pass
