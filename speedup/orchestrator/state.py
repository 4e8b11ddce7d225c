"""State machine constants and transition logic for speed-up jobs.

Defines the allowed JobStatus transitions and derives every piece of
user-facing status text from engine state plus job state, so status text
is never stored on its own.
"""

from typing import Optional

from speedup.engine.lifecycle import EngineState
from speedup.schemas.job import Attempt, JobStatus

TERMINAL_STATES = {
    JobStatus.SUCCEEDED,
    JobStatus.PARTIALLY_SUCCEEDED,
    JobStatus.FAILED,
    JobStatus.CANCELLED,
}

# Allowed transitions; PROCESSING -> PROCESSING is the primary -> fallback step
TRANSITIONS = {
    JobStatus.IDLE: {JobStatus.READY, JobStatus.PROCESSING},
    JobStatus.READY: {JobStatus.IDLE, JobStatus.READY, JobStatus.PROCESSING},
    JobStatus.PROCESSING: {
        JobStatus.PROCESSING,
        JobStatus.SUCCEEDED,
        JobStatus.PARTIALLY_SUCCEEDED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
    },
}
for _terminal in TERMINAL_STATES:
    TRANSITIONS[_terminal] = {JobStatus.IDLE, JobStatus.READY, JobStatus.PROCESSING}

ENGINE_MESSAGES = {
    EngineState.UNINITIALIZED: "Initializing...",
    EngineState.LOADING: "Loading FFmpeg core...",
    EngineState.LOAD_FAILED: "Failed to load FFmpeg",
}

JOB_MESSAGES = {
    JobStatus.IDLE: "Ready",
    JobStatus.READY: "Ready to process",
    JobStatus.SUCCEEDED: "Done!",
    JobStatus.PARTIALLY_SUCCEEDED: "Done (Video Only)!",
    JobStatus.FAILED: "Error processing video",
    JobStatus.CANCELLED: "Cancelled",
}

PROCESSING_MESSAGES = {
    Attempt.PRIMARY: "Processing... This may take a moment.",
    Attempt.FALLBACK: "Retrying video-only speedup...",
}


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATES


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Check whether ``current -> target`` is a legal job transition."""
    return target in TRANSITIONS.get(current, set())


def status_message(
    engine_state: EngineState,
    job_status: JobStatus,
    attempt: Optional[Attempt] = None,
    engine_error: Optional[str] = None,
) -> str:
    """Human-readable status derived from engine and job state.

    Args:
        engine_state: Current EngineState
        job_status: Current JobStatus
        attempt: Active attempt, used while PROCESSING
        engine_error: Load failure message, appended when LOAD_FAILED

    Examples:
        >>> status_message(EngineState.READY, JobStatus.PARTIALLY_SUCCEEDED)
        'Done (Video Only)!'
        >>> status_message(EngineState.LOAD_FAILED, JobStatus.IDLE, engine_error="boom")
        'Failed to load FFmpeg: boom'
    """
    if engine_state is not EngineState.READY:
        message = ENGINE_MESSAGES[engine_state]
        if engine_state is EngineState.LOAD_FAILED and engine_error:
            message = f"{message}: {engine_error}"
        return message

    if job_status is JobStatus.PROCESSING:
        return PROCESSING_MESSAGES[attempt or Attempt.PRIMARY]
    return JOB_MESSAGES[job_status]
