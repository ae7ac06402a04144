"""
Worker Models

- RenderJob: one render request (tenant, source video, status)
- RenderArtifactRecord: one validated output file of a job
- JobLogEntry: pipeline log of a job

Artifact and log rows are history: the helpers below only ever insert them.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Session

from .db import Base
from .tasks.composition.schemas import RenderArtifact

JOB_STATUS_PENDING = "pending"
JOB_STATUS_RENDERING = "rendering"
JOB_STATUS_RENDERED = "rendered"
JOB_STATUS_FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RenderJob(Base):
    """A render request for one source video."""

    __tablename__ = "render_jobs"

    id = Column(String(36), primary_key=True)
    env = Column(String(20), nullable=False, default="dev")
    tenant_id = Column(String(64), nullable=False)
    source_key = Column(String(500), nullable=False)
    status = Column(String(20), default=JOB_STATUS_PENDING, nullable=False)
    status_message = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)


class RenderArtifactRecord(Base):
    """A validated render output."""

    __tablename__ = "render_artifacts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = Column(String(36), ForeignKey("render_jobs.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    output_key = Column(String(500), nullable=False)
    duration_sec = Column(Float, nullable=False)
    expected_duration_sec = Column(Float, nullable=False)
    resolution = Column(String(20), nullable=True)
    frame_rate = Column(String(20), nullable=False)
    codec = Column(String(20), nullable=True)
    notes = Column(String(200), nullable=False, default="")
    max_drift_ms = Column(Float, nullable=True)
    transition_type = Column(String(20), nullable=True)
    transition_duration_ms = Column(Integer, nullable=True)
    audio_fade_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class JobLogEntry(Base):
    """One pipeline log line attached to a job."""

    __tablename__ = "job_log_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(36), ForeignKey("render_jobs.id"), nullable=False, index=True)
    level = Column(String(10), nullable=False, default="info")
    message = Column(String(500), nullable=False)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    @property
    def details_dict(self) -> Dict[str, Any]:
        return json.loads(self.details) if self.details else {}


# ============================================================================
# Append-only helpers
# ============================================================================


def append_artifacts(
    db: Session,
    job_id: str,
    artifacts: List[RenderArtifact],
    output_keys: Dict[str, str],
) -> List[RenderArtifactRecord]:
    """
    Insert one record per artifact.

    Args:
        db: Open session (caller commits)
        job_id: Owning job
        artifacts: Validated artifacts from compose()
        output_keys: Storage key per artifact kind

    Returns:
        The new records
    """
    records = []
    for artifact in artifacts:
        transition = artifact.transition
        record = RenderArtifactRecord(
            job_id=job_id,
            kind=artifact.kind,
            output_key=output_keys[artifact.kind],
            duration_sec=artifact.duration_sec,
            expected_duration_sec=artifact.expected_duration_sec,
            resolution=artifact.resolution,
            frame_rate=artifact.frame_rate,
            codec=artifact.codec,
            notes=artifact.notes,
            max_drift_ms=artifact.max_drift_ms,
            transition_type=transition.type if transition else None,
            transition_duration_ms=transition.duration_ms if transition else None,
            audio_fade_ms=transition.audio_fade_ms if transition else None,
        )
        db.add(record)
        records.append(record)
    return records


def append_log_entry(
    db: Session,
    job_id: str,
    message: str,
    level: str = "info",
    details: Optional[Dict[str, Any]] = None,
) -> JobLogEntry:
    """Insert a job log line (caller commits)."""
    entry = JobLogEntry(
        job_id=job_id,
        level=level,
        message=message[:500],
        details=json.dumps(details, default=str) if details else None,
    )
    db.add(entry)
    return entry


def set_job_status(job: RenderJob, status: str, message: Optional[str] = None) -> None:
    """Update the job's status columns (caller commits)."""
    job.status = status
    job.status_message = message[:200] if message else None
    job.updated_at = _utcnow()
