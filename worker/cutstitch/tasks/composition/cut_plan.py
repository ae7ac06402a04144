"""
Cut Plan Schema and Segment Extractor

The cut plan arrives from the planner already schema-checked. This module
parses it into pydantic models and derives the ordered keep segments the
graph compilers consume, re-checking the keep invariants on the way:

- at least one keep entry
- every keep has end > start and non-negative timestamps
- keeps are in non-decreasing start order and do not overlap

The first violation raises InvalidPlan. Nothing is reordered or repaired.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidPlan, InvalidPlanDetails, format_validation_errors
from .timecode import format_ms, ms_to_seconds, parse_seconds_to_ms

logger = logging.getLogger(__name__)


# =============================================================================
# Schema
# =============================================================================


class Cut(BaseModel):
    """One planner decision over a source time range."""

    model_config = ConfigDict(populate_by_name=True)

    start: str = Field(..., description="Range start in decimal seconds")
    end: str = Field(..., description="Range end in decimal seconds")
    type: Literal["keep", "cut"]
    reason: str = ""
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)

    @field_validator("start", "end", mode="before")
    @classmethod
    def _coerce_number(cls, value: Union[str, int, float]) -> str:
        # Planners occasionally emit bare JSON numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return repr(value) if isinstance(value, float) else str(value)
        return value


class CutPlan(BaseModel):
    """Schema-versioned list of keep/cut decisions for one source."""

    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("1.0.0", alias="schemaVersion")
    source_media: Optional[str] = Field(None, alias="sourceMedia")
    cuts: List[Cut] = Field(default_factory=list)


@dataclass(frozen=True)
class KeepSegment:
    """A source range that must appear in the output, in milliseconds."""

    start_ms: int
    end_ms: int

    @classmethod
    def from_seconds(cls, start: Union[str, float], end: Union[str, float]) -> "KeepSegment":
        return cls(parse_seconds_to_ms(start), parse_seconds_to_ms(end))

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    @property
    def start(self) -> float:
        return ms_to_seconds(self.start_ms)

    @property
    def end(self) -> float:
        return ms_to_seconds(self.end_ms)

    @property
    def duration(self) -> float:
        return ms_to_seconds(self.duration_ms)


# =============================================================================
# Loading
# =============================================================================


def parse_cut_plan(raw: Union[str, bytes, dict]) -> CutPlan:
    """
    Parse cut plan JSON (text or already-decoded dict).

    Raises:
        InvalidPlan: If the JSON is malformed or does not match the schema
    """
    try:
        if isinstance(raw, dict):
            return CutPlan.model_validate(raw)
        return CutPlan.model_validate_json(raw)
    except ValidationError as e:
        errors = format_validation_errors(e.errors())
        raise InvalidPlan(
            f"Cut plan validation failed: {', '.join(errors)}",
            InvalidPlanDetails(reason="schema", validation_errors=errors),
        )


# =============================================================================
# Extraction
# =============================================================================


def extract_keep_segments(plan: CutPlan) -> Tuple[KeepSegment, ...]:
    """
    Derive the ordered keep segments from a cut plan.

    Args:
        plan: Parsed CutPlan

    Returns:
        Tuple of KeepSegment in plan order

    Raises:
        InvalidPlan: On an empty keep list, unparsable or negative
            timestamps, end <= start, or out-of-order/overlapping keeps

    Timestamps are rounded half up to the millisecond before any check, so
    a keep narrower than 1ms in the plan (e.g. "10.0001" to "10.0004") can
    collapse to end == start and is rejected as non_positive_duration; the
    error details carry the plan's own strings next to the rounded ones.
    """
    keeps = [cut for cut in plan.cuts if cut.type == "keep"]

    if not keeps:
        raise InvalidPlan(
            "No keep segments found in cut plan",
            InvalidPlanDetails(reason="empty", total_cuts=len(plan.cuts), keep_count=0),
        )

    segments = []
    for index, cut in enumerate(keeps):
        try:
            start_ms = parse_seconds_to_ms(cut.start)
            end_ms = parse_seconds_to_ms(cut.end)
        except ValueError as e:
            raise InvalidPlan(
                f"Keep segment {index}: {e}",
                InvalidPlanDetails(
                    reason="timestamp",
                    segment_index=index,
                    start=cut.start,
                    end=cut.end,
                ),
            )
        segments.append(_checked_segment(index, start_ms, end_ms, cut.start, cut.end))

    result = tuple(segments)
    _check_ordering(result)

    logger.info(
        f"Extracted {len(result)} keep segments from {len(plan.cuts)} cuts "
        f"({format_ms(sum(s.duration_ms for s in result))}s kept)"
    )
    return result


def validate_keep_segments(segments: Iterable[KeepSegment]) -> Tuple[KeepSegment, ...]:
    """
    Re-check keep invariants on segments handed in directly.

    Returns:
        The segments as an immutable tuple

    Raises:
        InvalidPlan: Same conditions as extract_keep_segments
    """
    result = tuple(segments)
    if not result:
        raise InvalidPlan(
            "No keep segments to render",
            InvalidPlanDetails(reason="empty", keep_count=0),
        )
    for index, segment in enumerate(result):
        _checked_segment(index, segment.start_ms, segment.end_ms)
    _check_ordering(result)
    return result


def _checked_segment(
    index: int,
    start_ms: int,
    end_ms: int,
    plan_start: Optional[str] = None,
    plan_end: Optional[str] = None,
) -> KeepSegment:
    if start_ms < 0:
        raise InvalidPlan(
            f"Keep segment {index} starts before 0 ({format_ms(start_ms)}s)",
            InvalidPlanDetails(
                reason="negative_start",
                segment_index=index,
                start=format_ms(start_ms),
                end=format_ms(end_ms),
            ),
        )
    if end_ms <= start_ms:
        raise InvalidPlan(
            f"Keep segment {index} has end <= start "
            f"({format_ms(start_ms)}s - {format_ms(end_ms)}s)",
            InvalidPlanDetails(
                reason="non_positive_duration",
                segment_index=index,
                start=format_ms(start_ms),
                end=format_ms(end_ms),
                plan_start=plan_start,
                plan_end=plan_end,
            ),
        )
    return KeepSegment(start_ms, end_ms)


def _check_ordering(segments: Sequence[KeepSegment]) -> None:
    for index in range(1, len(segments)):
        prev = segments[index - 1]
        cur = segments[index]
        if cur.start_ms < prev.start_ms:
            reason = "out_of_order"
            message = (
                f"Keep segment {index} starts at {format_ms(cur.start_ms)}s, "
                f"before segment {index - 1} ({format_ms(prev.start_ms)}s)"
            )
        elif cur.start_ms < prev.end_ms:
            reason = "overlap"
            message = (
                f"Keep segment {index} ({format_ms(cur.start_ms)}s) overlaps "
                f"segment {index - 1} ending at {format_ms(prev.end_ms)}s"
            )
        else:
            continue
        raise InvalidPlan(
            message,
            InvalidPlanDetails(
                reason=reason,
                segment_index=index,
                start=format_ms(cur.start_ms),
                end=format_ms(cur.end_ms),
            ),
        )
