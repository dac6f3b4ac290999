"""
Named job locks.

Mutating calls on the fee ledger and on a participant's allocation must be
serialized. With REDIS_URL set the lock is shared across processes (scheduled
job, manual script, API workers); without it an asyncio.Lock per name covers
the single-process case.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import LockError

from app.core.config import settings
from app.core.errors import JobLockedError

logger = logging.getLogger(__name__)

LOCK_PREFIX = "myxn:lock:"

_local_locks: Dict[str, asyncio.Lock] = {}
_redis: Optional[redis.Redis] = None


async def _get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis


async def close() -> None:
    global _redis
    if _redis:
        await _redis.close()
        _redis = None


@asynccontextmanager
async def job_lock(name: str) -> AsyncIterator[None]:
    """Hold the named lock for the duration of the block or raise JobLockedError."""
    wait = settings.lock_wait_seconds

    if settings.redis_url:
        r = await _get_redis()
        lock = r.lock(
            f"{LOCK_PREFIX}{name}",
            timeout=settings.lock_timeout_seconds,
            blocking_timeout=wait,
        )
        try:
            acquired = await lock.acquire()
        except LockError as e:
            raise JobLockedError(f"could not acquire lock {name}: {e}") from e
        if not acquired:
            raise JobLockedError(f"lock {name} is held by another job")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning(f"locks: {name} expired before release")
        return

    lock = _local_locks.setdefault(name, asyncio.Lock())
    try:
        await asyncio.wait_for(lock.acquire(), timeout=wait)
    except asyncio.TimeoutError as e:
        raise JobLockedError(f"lock {name} is held by another job") from e
    try:
        yield
    finally:
        lock.release()
