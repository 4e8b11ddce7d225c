"""Pydantic schemas for media buffers, resource handles, filter plans and engine events.

FilterPlan is a discriminated union on ``kind`` so callers can pattern-match
on the concrete variant while still treating plans as plain values.
"""

import uuid
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class ResourceSlot(str, Enum):
    """Named slots a resource handle can occupy. One live handle per slot."""

    INPUT_PREVIEW = "input_preview"
    OUTPUT = "output"


class ResourceHandle(BaseModel):
    """Temporary reference to an in-memory buffer backed by a scratch file.

    Handles are created and revoked exclusively by the ResourceLifecycleManager.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    slot: ResourceSlot
    path: Path
    filename: str
    mime_type: str
    size: int
    revoked: bool = False

    @property
    def url(self) -> str:
        """file:// URI usable for preview or download."""
        return self.path.resolve().as_uri()


class MediaAsset(BaseModel):
    """A selected (or produced) media file held in memory."""

    name: str
    mime_type: str
    data: bytes = Field(repr=False)
    preview_handle: Optional[ResourceHandle] = None

    @property
    def size(self) -> int:
        return len(self.data)


class WithAudio(BaseModel):
    """Time-compress both streams: setpts on video, atempo on audio."""

    kind: Literal["with_audio"] = "with_audio"
    speed_factor: float = Field(default=2.0, gt=0)


class VideoOnly(BaseModel):
    """Time-compress the video stream and drop audio entirely."""

    kind: Literal["video_only"] = "video_only"
    speed_factor: float = Field(default=2.0, gt=0)


FilterPlan = Annotated[Union[WithAudio, VideoOnly], Field(discriminator="kind")]


class LogEvent(BaseModel):
    """A single engine log line."""

    message: str


class ProgressEvent(BaseModel):
    """Raw engine progress.

    ``progress`` is nominally a fraction in [0, 1] but is not guaranteed to be
    in range or monotonic. ``time`` is the output position in seconds, if known.
    """

    progress: float
    time: Optional[float] = None
