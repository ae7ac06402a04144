"""
Composition Engine Errors

Every failure the engine can report is one of the exceptions below. Each
carries a fixed error_type tag, a category telling the caller what kind of
follow-up makes sense, and a typed details payload:

- configuration: fix the cut plan or render config (InvalidPlan,
  InputNotFound, InvalidDuration)
- execution: retry or escalate (CodecExecutionFailed, ProbeFailed)
- quality_gate: the output rendered but is not acceptable (DurationMismatch,
  SyncDriftExceeded)

None of these are retried inside the engine.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

CATEGORY_CONFIGURATION = "configuration"
CATEGORY_EXECUTION = "execution"
CATEGORY_QUALITY_GATE = "quality_gate"


# =============================================================================
# Payloads
# =============================================================================


@dataclass(frozen=True)
class InvalidPlanDetails:
    reason: str
    total_cuts: Optional[int] = None
    keep_count: Optional[int] = None
    segment_index: Optional[int] = None
    start: Optional[str] = None
    end: Optional[str] = None
    plan_start: Optional[str] = None
    plan_end: Optional[str] = None
    validation_errors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class InputNotFoundDetails:
    key: str
    path: str


@dataclass(frozen=True)
class InvalidDurationDetails:
    duration_ms: int
    audio_fade_ms: Optional[int] = None
    segment_index: Optional[int] = None
    segment_duration_ms: Optional[int] = None


@dataclass(frozen=True)
class CodecExecutionDetails:
    source_path: str
    output_path: str
    reason: str
    return_code: Optional[int] = None
    stderr: str = ""
    command: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ProbeFailedDetails:
    path: str
    return_code: Optional[int] = None
    stderr: str = ""


@dataclass(frozen=True)
class DurationMismatchDetails:
    expected_sec: float
    actual_sec: float
    diff_sec: float
    tolerance_sec: float
    mode: str
    fps: float
    joins: int


@dataclass(frozen=True)
class SyncDriftDetails:
    max_drift_ms: float
    budget_ms: float
    mode: str
    joins: int
    measurements: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)


# =============================================================================
# Exceptions
# =============================================================================


class CompositionError(Exception):
    """Base class for all composition engine failures."""

    error_type = "COMPOSITION_ERROR"
    category = CATEGORY_EXECUTION

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Flatten into a JSON-friendly dict for logs and job records."""
        return {
            "error_type": self.error_type,
            "category": self.category,
            "message": self.message,
            "details": asdict(self.details) if self.details is not None else {},
        }


class InvalidPlan(CompositionError):
    """The keep list is empty, unparsable, overlapping or out of order."""

    error_type = "INVALID_PLAN"
    category = CATEGORY_CONFIGURATION

    details: InvalidPlanDetails


class InputNotFound(CompositionError):
    """A cut plan or source video the job refers to does not exist."""

    error_type = "INPUT_NOT_FOUND"
    category = CATEGORY_CONFIGURATION

    details: InputNotFoundDetails


class InvalidDuration(CompositionError):
    """Transition duration outside (0, 5000] ms or longer than a segment."""

    error_type = "INVALID_DURATION"
    category = CATEGORY_CONFIGURATION

    details: InvalidDurationDetails


class CodecExecutionFailed(CompositionError):
    """The ffmpeg encode failed, timed out or was cancelled."""

    error_type = "FFMPEG_EXECUTION"
    category = CATEGORY_EXECUTION

    details: CodecExecutionDetails


class ProbeFailed(CompositionError):
    """ffprobe could not inspect a file."""

    error_type = "PROBE_FAILED"
    category = CATEGORY_EXECUTION

    details: ProbeFailedDetails


class DurationMismatch(CompositionError):
    """Measured output duration is outside the mode's tolerance."""

    error_type = "DURATION_MISMATCH"
    category = CATEGORY_QUALITY_GATE

    details: DurationMismatchDetails


class SyncDriftExceeded(CompositionError):
    """Audio and video diverge by more than the drift budget."""

    error_type = "SYNC_DRIFT_EXCEEDED"
    category = CATEGORY_QUALITY_GATE

    details: SyncDriftDetails


def format_validation_errors(errors: List[Dict[str, Any]]) -> Tuple[str, ...]:
    """Render pydantic error dicts as 'loc: msg' strings."""
    formatted = []
    for err in errors:
        loc = ".".join(str(part) for part in err.get("loc", ())) or "root"
        formatted.append(f"{loc}: {err.get('msg', 'invalid')}")
    return tuple(formatted)
