"""Pydantic schemas for speed-up jobs."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from speedup.schemas.media import FilterPlan, MediaAsset


class JobStatus(str, Enum):
    IDLE = "idle"
    READY = "ready"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    PARTIALLY_SUCCEEDED = "partially_succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Attempt(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


class JobError(BaseModel):
    """Failure recorded against a job attempt.

    ``message`` is safe to show to the user; ``detail`` carries the raw
    engine error for diagnostics only.
    """

    attempt: Attempt
    message: str
    detail: str = ""


class Job(BaseModel):
    """A single speed-up run over one input asset.

    Mutated only by the JobStateMachine that created it.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    input_asset: MediaAsset
    attempt: Attempt = Attempt.PRIMARY
    status: JobStatus = JobStatus.PROCESSING
    progress_percent: int = Field(default=0, ge=0, le=100)
    output_asset: Optional[MediaAsset] = None
    error: Optional[JobError] = None
    plans: list[FilterPlan] = Field(default_factory=list)
    errors: list[JobError] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
