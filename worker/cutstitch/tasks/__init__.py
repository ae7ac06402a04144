"""
CutStitch Worker Tasks

Tasks:
- render_job: Render base cuts (and optionally crossfaded output) for a job

Enqueue helpers (use these for proper timeout handling):
- enqueue_render: Enqueue render with the configured render timeout
"""

from .render import (
    render_job,
    enqueue_render,
)

__all__ = [
    "render_job",
    "enqueue_render",
]
