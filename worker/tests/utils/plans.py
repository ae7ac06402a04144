"""Cut plan and keep segment builders for tests."""

from typing import Dict, List, Optional, Tuple

from cutstitch.tasks.composition import KeepSegment


def make_segments(*ranges: Tuple[float, float]) -> Tuple[KeepSegment, ...]:
    """Build keep segments from (start_sec, end_sec) pairs."""
    return tuple(KeepSegment.from_seconds(start, end) for start, end in ranges)


def make_cut_plan(cuts: List[Dict], source_media: Optional[str] = "source.mp4") -> Dict:
    """Build a cut plan dict in the planner's wire format."""
    return {"schemaVersion": "1.0.0", "sourceMedia": source_media, "cuts": cuts}


def keep(start: str, end: str, reason: str = "content") -> Dict:
    return {"start": start, "end": end, "type": "keep", "reason": reason, "confidence": 0.9}


def cut(start: str, end: str, reason: str = "silence") -> Dict:
    return {"start": start, "end": end, "type": "cut", "reason": reason, "confidence": 0.9}
