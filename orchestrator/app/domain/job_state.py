"""ProcessingJob state machine: one table, consulted by every job write."""
from __future__ import annotations

from orchestrator.app.constants import JobStatus

JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.CANCELLED}),
    JobStatus.QUEUED: frozenset(
        {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.FAILED: frozenset({JobStatus.PENDING_RETRY, JobStatus.PROCESSING}),
    JobStatus.PENDING_RETRY: frozenset({JobStatus.PROCESSING}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

# Jobs the processor is working on; the only ones worth polling.
ACTIVE_JOB_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.PROCESSING})

# Jobs that went through the processor and ended badly. PENDING and QUEUED can also
# reach PROCESSING, but through dispatch and poll, never through retry.
RETRYABLE_JOB_STATUSES = frozenset({JobStatus.FAILED, JobStatus.PENDING_RETRY})


def can_transition_job(current: JobStatus, target: JobStatus) -> bool:
    return target in JOB_TRANSITIONS.get(current, frozenset())


def can_retry_job(current: JobStatus) -> bool:
    return current in RETRYABLE_JOB_STATUSES and can_transition_job(current, JobStatus.PROCESSING)
