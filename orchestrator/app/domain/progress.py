"""Display progress for an HDR job, inferred from its status and stage timing metrics.

The processor reports per-stage timings (``alignment_time_ms``, ``segmentation_time_ms``,
``fusion_time_ms``, ``export_time_ms``) as each stage finishes. The first missing timing
tells us which stage is running; elapsed time since ``started_at`` against typical stage
durations estimates how far through it we are.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from orchestrator.app.constants import JobStatus
from orchestrator.app.domain.models import ProcessingJob

QUEUED = "queued"
ALIGNING = "aligning"
SEGMENTING = "segmenting"
FUSING = "fusing"
EXPORTING = "exporting"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

STAGE_ORDER = (QUEUED, ALIGNING, SEGMENTING, FUSING, EXPORTING)

# (start %, end %) of overall progress covered by each stage.
STAGE_WEIGHTS: dict[str, tuple[int, int]] = {
    QUEUED: (0, 5),
    ALIGNING: (5, 25),
    SEGMENTING: (25, 55),
    FUSING: (55, 85),
    EXPORTING: (85, 100),
    COMPLETED: (100, 100),
    FAILED: (0, 0),
    CANCELLED: (0, 0),
}

STAGE_LABELS: dict[str, str] = {
    QUEUED: "Waiting in queue...",
    ALIGNING: "Aligning brackets...",
    SEGMENTING: "Detecting windows/sky...",
    FUSING: "Fusing HDR...",
    EXPORTING: "Finalizing...",
    COMPLETED: "Complete!",
    FAILED: "Processing failed",
    CANCELLED: "Cancelled",
}

# Typical seconds spent in each stage.
STAGE_SECONDS: dict[str, int] = {
    QUEUED: 5,
    ALIGNING: 8,
    SEGMENTING: 8,
    FUSING: 12,
    EXPORTING: 3,
}

_DEFAULT_STAGE_PROGRESS = 50.0
_MAX_STAGE_PROGRESS = 95.0


@dataclass(frozen=True)
class ProcessingProgress:
    stage: str
    stage_label: str
    stage_progress: float
    overall_progress: float
    estimated_seconds_remaining: float | None
    metrics: dict[str, Any] | None


def infer_stage(status: JobStatus, metrics: dict[str, Any] | None) -> str:
    if status == JobStatus.COMPLETED:
        return COMPLETED
    if status in (JobStatus.FAILED, JobStatus.PENDING_RETRY):
        return FAILED
    if status == JobStatus.CANCELLED:
        return CANCELLED
    if status in (JobStatus.PENDING, JobStatus.QUEUED):
        return QUEUED
    if not metrics:
        return ALIGNING
    if metrics.get("export_time_ms") is not None:
        return COMPLETED
    if metrics.get("fusion_time_ms") is not None:
        return EXPORTING
    if metrics.get("segmentation_time_ms") is not None:
        return FUSING
    if metrics.get("alignment_time_ms") is not None:
        return SEGMENTING
    return ALIGNING


def estimate_progress(job: ProcessingJob, now: datetime) -> ProcessingProgress:
    stage = infer_stage(job.status, job.metrics)
    start, end = STAGE_WEIGHTS[stage]

    if stage not in STAGE_ORDER:
        overall = 100.0 if stage == COMPLETED else 0.0
        return ProcessingProgress(
            stage=stage,
            stage_label=STAGE_LABELS[stage],
            stage_progress=100.0 if stage == COMPLETED else 0.0,
            overall_progress=overall,
            estimated_seconds_remaining=None,
            metrics=job.metrics,
        )

    stage_index = STAGE_ORDER.index(stage)
    stage_progress = _DEFAULT_STAGE_PROGRESS
    if job.started_at is not None:
        elapsed = max(0.0, (now - job.started_at).total_seconds())
        expected = sum(STAGE_SECONDS[s] for s in STAGE_ORDER[: stage_index + 1])
        stage_progress = min(_MAX_STAGE_PROGRESS, elapsed / expected * 100)

    overall = start + (end - start) * stage_progress / 100
    remaining = sum(STAGE_SECONDS[s] for s in STAGE_ORDER[stage_index:])
    remaining -= STAGE_SECONDS[stage] * stage_progress / 100

    return ProcessingProgress(
        stage=stage,
        stage_label=STAGE_LABELS[stage],
        stage_progress=round(stage_progress, 1),
        overall_progress=round(overall, 1),
        estimated_seconds_remaining=round(remaining, 1),
        metrics=job.metrics,
    )
