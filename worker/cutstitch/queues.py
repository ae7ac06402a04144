"""
CutStitch Queue Definitions

A single queue:
- cutstitch:render - base cut and transition renders
"""

from typing import Optional

from redis import Redis
from rq import Queue

from .config import get_settings

RENDER_QUEUE_NAME = "cutstitch:render"

# Redis connection singleton
_redis_connection: Optional[Redis] = None


def get_redis_connection() -> Redis:
    """
    Get or create a Redis connection from the REDIS_URL setting.

    Returns:
        Redis: A Redis connection instance
    """
    global _redis_connection

    if _redis_connection is None:
        _redis_connection = Redis.from_url(get_settings().redis_url, decode_responses=False)

    return _redis_connection


class _LazyQueue:
    """Lazy queue wrapper that initializes on first access."""

    def __init__(self, name: str):
        self._name = name
        self._queue: Optional[Queue] = None

    def _get_queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue(self._name, connection=get_redis_connection())
        return self._queue

    def __getattr__(self, name):
        return getattr(self._get_queue(), name)

    def enqueue(self, *args, **kwargs):
        return self._get_queue().enqueue(*args, **kwargs)


render_queue = _LazyQueue(RENDER_QUEUE_NAME)

ALL_QUEUES = [RENDER_QUEUE_NAME]
