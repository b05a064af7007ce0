"""
Slot mutexes for check-then-create.

A slot is ``(venue, room, station type, booking date)``. Creating or
confirming a reservation holds the lock of every slot it touches for the
duration of the availability check and insert. A process-local lock is
always taken; a Redis lock is layered on top so separate API workers
serialize too. When Redis is unreachable the Redis layer fails open and
the service's post-flush capacity re-validation is the remaining guard.
"""

from __future__ import annotations

from contextlib import ExitStack, contextmanager
from datetime import date
import logging
import threading
import time
from typing import Iterable, Iterator, Optional
import weakref

from redis import Redis
from redis.exceptions import LockError, RedisError

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings
from .exceptions import SlotBusyException

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

# Entries vanish once no caller holds or waits on the lock
_LOCAL_LOCKS: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
_LOCAL_LOCKS_GUARD = threading.Lock()


def slot_lock_key(venue_id: str, room_id: str, station_type: str, booking_date: date) -> str:
    return f"slot:{venue_id}:{room_id}:{station_type}:{booking_date.isoformat()}:mutex"


def _namespaced_key(key: str) -> str:
    return f"{settings.lock_namespace}:lock:{key}"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if not settings.slot_lock_enabled:
        return None
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=1,
            )
            client.ping()
        except Exception as exc:
            logger.warning("slot_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def _local_lock(key: str) -> threading.Lock:
    with _LOCAL_LOCKS_GUARD:
        lock = _LOCAL_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LOCAL_LOCKS[key] = lock
        return lock


@contextmanager
def slot_lock(key: str, ttl_s: Optional[int] = None, wait_s: Optional[float] = None) -> Iterator[str]:
    """
    Hold the mutex for one slot.

    Raises:
        SlotBusyException: If the lock is still held by someone else after ``wait_s``
    """
    ttl = ttl_s if ttl_s is not None else settings.slot_lock_ttl_seconds
    wait = wait_s if wait_s is not None else settings.slot_lock_wait_seconds
    started = time.monotonic()

    local = _local_lock(key)
    got_local = local.acquire(timeout=wait) if wait > 0 else local.acquire(blocking=False)
    if not got_local:
        prometheus_metrics.record_slot_lock("acquire", "blocked")
        raise SlotBusyException(key)

    redis_lock = None
    try:
        client = _get_sync_redis()
        if client is None:
            prometheus_metrics.record_slot_lock("acquire", "local_only")
        else:
            remaining = max(wait - (time.monotonic() - started), 0.0)
            try:
                candidate = client.lock(
                    _namespaced_key(key), timeout=ttl, blocking_timeout=remaining
                )
                if candidate.acquire():
                    redis_lock = candidate
                    prometheus_metrics.record_slot_lock("acquire", "success")
                else:
                    prometheus_metrics.record_slot_lock("acquire", "blocked")
                    raise SlotBusyException(key)
            except RedisError as exc:
                prometheus_metrics.record_slot_lock("acquire", "error")
                logger.warning(
                    "slot_lock_redis_acquire_failed",
                    extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
                )
        yield key
    finally:
        if redis_lock is not None:
            try:
                redis_lock.release()
                prometheus_metrics.record_slot_lock("release", "success")
            except (LockError, RedisError) as exc:
                prometheus_metrics.record_slot_lock("release", "error")
                logger.warning(
                    "slot_lock_redis_release_failed",
                    extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
                )
        local.release()


@contextmanager
def slot_locks(keys: Iterable[str]) -> Iterator[list[str]]:
    """Hold several slot locks, acquired in sorted order to avoid lock-order deadlocks."""
    ordered = sorted(set(keys))
    with ExitStack() as stack:
        for key in ordered:
            stack.enter_context(slot_lock(key))
        yield ordered
