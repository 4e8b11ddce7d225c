"""Pydantic schemas shared across the engine, pipeline and orchestrator."""

from speedup.schemas.job import Attempt, Job, JobError, JobStatus
from speedup.schemas.media import (
    FilterPlan,
    LogEvent,
    MediaAsset,
    ProgressEvent,
    ResourceHandle,
    ResourceSlot,
    VideoOnly,
    WithAudio,
)

__all__ = [
    "Attempt",
    "FilterPlan",
    "Job",
    "JobError",
    "JobStatus",
    "LogEvent",
    "MediaAsset",
    "ProgressEvent",
    "ResourceHandle",
    "ResourceSlot",
    "VideoOnly",
    "WithAudio",
]
