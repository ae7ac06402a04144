"""
CutStitch Worker Package

RQ-based worker that renders cut plans into edited videos:
- Hard-cut base render of every keep segment
- Optional crossfaded render
- Duration and A/V sync validation of every output
"""

# Tasks first: config depends on the composition schemas
from .tasks import (
    render_job,
    enqueue_render,
)

from .queues import (
    get_redis_connection,
    render_queue,
    ALL_QUEUES,
)

__all__ = [
    # Queues
    "get_redis_connection",
    "render_queue",
    "ALL_QUEUES",
    # Tasks
    "render_job",
    "enqueue_render",
]
