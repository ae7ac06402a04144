"""
Render Task for CutStitch Worker

Renders a job's cut plan against its source video:
- Base cuts: every keep segment joined with hard cuts (always)
- With transitions: the same segments joined by crossfades (when
  transitions are enabled and there are at least two keep segments)

Storage layout (relative to STORAGE_PATH):
    {env}/{tenant_id}/{job_id}/plan/cut_plan.json
    {env}/{tenant_id}/{job_id}/renders/base_cuts.mp4
    {env}/{tenant_id}/{job_id}/renders/with_transitions.mp4

Every validated artifact is appended to the job's artifact history together
with pipeline log entries. Failures are logged to the job and re-raised.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from rq import get_current_job

from ..config import get_settings
from ..db import get_db_session
from ..models import (
    JOB_STATUS_FAILED,
    JOB_STATUS_RENDERED,
    JOB_STATUS_RENDERING,
    RenderJob,
    append_artifacts,
    append_log_entry,
    set_job_status,
)
from .composition import (
    CompositionEngine,
    CompositionError,
    CutPlan,
    FFprobe,
    InputNotFound,
    extract_keep_segments,
    parse_cut_plan,
)
from .composition.errors import CATEGORY_EXECUTION, InputNotFoundDetails
from .ffmpeg_runner import run_ffmpeg_with_progress

logger = logging.getLogger(__name__)

CUT_PLAN_KEY = "plan/cut_plan.json"
RENDERS_PREFIX = "renders"

# Base and transitioned encodes run back to back
ENCODES_PER_JOB = 2


# ============================================================================
# Storage Helpers
# ============================================================================


def key_for(env: str, tenant_id: str, job_id: str, *parts: str) -> str:
    """Build a storage key scoped to one job."""
    return "/".join([env, tenant_id, job_id, *parts])


def path_for(key: str) -> Path:
    """Resolve a storage key to a path under STORAGE_PATH."""
    return get_settings().storage_root / key


def load_cut_plan(env: str, tenant_id: str, job_id: str) -> CutPlan:
    """
    Load and parse the job's cut plan from storage.

    Raises:
        InputNotFound: If the cut plan file does not exist
        InvalidPlan: If the file is not valid cut plan JSON
    """
    key = key_for(env, tenant_id, job_id, CUT_PLAN_KEY)
    path = path_for(key)
    if not path.is_file():
        raise InputNotFound(
            f"Cut plan not found: {key}",
            InputNotFoundDetails(key=key, path=str(path)),
        )

    return parse_cut_plan(path.read_text(encoding="utf-8"))


def update_job_progress(percent: int, message: str) -> None:
    """
    Update RQ job progress metadata.

    Args:
        percent: Progress percentage (0-100)
        message: Progress message
    """
    job = get_current_job()
    if job:
        job.meta["progress_percent"] = percent
        job.meta["progress_message"] = message
        job.save_meta()


def enqueue_render(
    env: str,
    tenant_id: str,
    job_id: str,
    transitions: Optional[bool] = None,
):
    """
    Enqueue a render job with proper timeout.

    Args:
        env: Deployment environment prefix of the storage keys
        tenant_id: Tenant owning the job
        job_id: UUID of the RenderJob row
        transitions: Per-job override of TRANSITIONS_ENABLED

    Returns:
        RQ Job instance
    """
    from ..queues import render_queue

    return render_queue.enqueue(
        render_job,
        env,
        tenant_id,
        job_id,
        transitions,
        job_timeout=get_settings().render_timeout * ENCODES_PER_JOB,
    )


# ============================================================================
# Main Task Function
# ============================================================================


def render_job(
    env: str,
    tenant_id: str,
    job_id: str,
    transitions: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    RQ task to render a job's cut plan.

    This task:
    1. Loads the job from the database
    2. Loads the cut plan and extracts keep segments
    3. Builds the RenderConfig (per-job transitions override wins)
    4. Probes the source video
    5. Composes base cuts and, if enabled, the crossfaded render
    6. Appends artifact records and log entries
    7. Updates progress via RQ job metadata

    Args:
        env: Deployment environment prefix of the storage keys
        tenant_id: Tenant owning the job
        job_id: UUID of the RenderJob row
        transitions: Per-job override of TRANSITIONS_ENABLED

    Returns:
        dict with base_cuts_key, transitions_key, durations, keep segment
        count and join count

    Raises:
        ValueError: If the job row does not exist
        CompositionError: Any engine failure (after it is logged to the job)
    """
    settings = get_settings()
    logger.info(f"Starting render for job={job_id} tenant={tenant_id} env={env}")
    update_job_progress(0, "Starting render")

    with get_db_session() as db:
        job = db.query(RenderJob).filter_by(id=job_id).first()
        if not job:
            raise ValueError(f"Render job not found: {job_id}")

        try:
            update_job_progress(5, "Loading cut plan")
            plan = load_cut_plan(env, tenant_id, job_id)
            segments = extract_keep_segments(plan)

            source_path = path_for(job.source_key)
            if not source_path.is_file():
                raise InputNotFound(
                    f"Source video not found: {job.source_key}",
                    InputNotFoundDetails(key=job.source_key, path=str(source_path)),
                )

            config = settings.render_config(transitions_enabled=transitions)

            update_job_progress(10, "Probing source")
            prober = FFprobe(config.ffprobe_path, timeout_seconds=config.probe_timeout_seconds)
            source_info = prober.probe(source_path)
            logger.info(
                f"Source {job.source_key}: duration={source_info.duration_sec:.3f}s "
                f"resolution={source_info.resolution}"
            )

            set_job_status(job, JOB_STATUS_RENDERING)
            append_log_entry(
                db,
                job_id,
                "Render started",
                details={
                    "keep_segments": len(segments),
                    "transitions_enabled": config.transitions_enabled,
                    "source_duration_sec": source_info.duration_sec,
                },
            )
            db.commit()

            def progress_callback(percent: int, message: str) -> None:
                # Scale composition progress (0-100) to our range (20-95)
                update_job_progress(20 + int(percent * 0.75), message)

            engine = CompositionEngine(runner=run_ffmpeg_with_progress, prober=prober)
            output_dir = path_for(key_for(env, tenant_id, job_id, RENDERS_PREFIX))
            result = engine.compose(
                source_path,
                segments,
                config,
                output_dir,
                progress_callback=progress_callback,
            )

        except CompositionError as e:
            append_log_entry(
                db,
                job_id,
                f"Render failed: {e.message}",
                level="error",
                details=e.to_dict(),
            )
            set_job_status(job, JOB_STATUS_FAILED, e.message)
            db.commit()
            raise
        except Exception as e:
            error_message = str(e)[:500] or type(e).__name__
            append_log_entry(
                db,
                job_id,
                f"Render failed: {error_message}",
                level="error",
                details={
                    "error_type": type(e).__name__,
                    "category": CATEGORY_EXECUTION,
                    "message": error_message,
                    "details": {},
                },
            )
            set_job_status(job, JOB_STATUS_FAILED, error_message)
            db.commit()

            logger.error(f"Render failed for job={job_id}: {error_message}")
            raise

        update_job_progress(95, "Recording artifacts")

        output_keys = {
            artifact.kind: key_for(
                env, tenant_id, job_id, RENDERS_PREFIX, Path(artifact.output_location).name
            )
            for artifact in result.artifacts
        }
        append_artifacts(db, job_id, list(result.artifacts), output_keys)

        base = result.base
        append_log_entry(
            db,
            job_id,
            "Base cuts rendered (no transitions)",
            details={"output_key": output_keys[base.kind], "duration_sec": base.duration_sec},
        )

        joins = len(segments) - 1
        transitioned = result.transitioned
        if transitioned is not None:
            append_log_entry(
                db,
                job_id,
                f"Transitions applied: {joins} joins, {config.transition_duration_ms}ms crossfade",
                details={
                    "output_key": output_keys[transitioned.kind],
                    "duration_sec": transitioned.duration_sec,
                    "audio_fade_ms": config.effective_audio_fade_ms,
                },
            )

        set_job_status(job, JOB_STATUS_RENDERED)
        db.commit()

    update_job_progress(100, "Render complete")
    logger.info(f"Render complete for job={job_id}: state={result.state.value}")

    return {
        "job_id": job_id,
        "state": result.state.value,
        "base_cuts_key": output_keys[base.kind],
        "base_duration_sec": base.duration_sec,
        "transitions_key": output_keys[transitioned.kind] if transitioned else None,
        "transitions_duration_sec": transitioned.duration_sec if transitioned else None,
        "keep_segments": len(segments),
        "joins": joins,
    }
