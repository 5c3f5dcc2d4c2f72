from redis import Redis
from typing import Optional
from redis.lock import Lock
from redis.exceptions import RedisError

from app.src import exceptions
from app.src.constants import (
    REDIS_HOST,
    REDIS_PORT,
    REDIS_PASSWORD,
    MUTEX_LOCK_TIMEOUT,
    MUTEX_LOCK_MAX_WAIT_TIME,
)

# Redis client (single connection)
redisClient = Redis(
    host=REDIS_HOST,
    port=REDIS_PORT,
    password=REDIS_PASSWORD,
    decode_responses=True,
)


def acquireLock(
    tableName: str,
    key: Optional[str] = None,
    timeOut: int = MUTEX_LOCK_TIMEOUT,
    blockingTimeOut: int = MUTEX_LOCK_MAX_WAIT_TIME,
) -> Lock:
    """
    Acquire a Redis-based mutex lock for a table or a single record.

    Route deletion and bus route-assignment both take the lock of the route
    number involved, so a bus cannot be attached to a route being deleted.

    Args:
        tableName (str): Name of the table/resource to lock.
        key (Optional[str]): Business key of the record for row-level locking.
        timeOut (int): Lock expiration in seconds (auto-released after this).
        blockingTimeOut (int): Maximum time (in seconds) to wait for lock acquisition.

    Returns:
        Lock: A Redis lock object if successfully acquired.

    Raises:
        exceptions.LockAcquireTimeout: If the lock could not be acquired within blockingTimeOut.
    """
    try:
        lockName = f"lock:{tableName}" if key is None else f"lock:{tableName}:{key}"
        lock = redisClient.lock(lockName, timeout=timeOut)
        if lock.acquire(blocking=True, blocking_timeout=blockingTimeOut):
            return lock
        raise exceptions.LockAcquireTimeout()
    except Exception as e:
        exceptions.handle(e)


def releaseLock(lock: Optional[Lock]) -> None:
    """
    Release a previously acquired Redis lock.

    Does nothing if the lock is None, expired, or owned by someone else.
    A Redis failure here is only logged, the lock then expires on its own.
    """
    try:
        if lock and lock.locked() and lock.owned():
            lock.release()
    except RedisError as e:
        exceptions.logException(e)
