"""Abstract base class for the media engine capability.

Defines the async surface the orchestrator consumes: load once, register
persistent event listeners, then write input / execute / read output
against the engine's private file namespace.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Literal, Sequence

from pydantic import BaseModel

from speedup.schemas.media import LogEvent, ProgressEvent

logger = logging.getLogger(__name__)

EventKind = Literal["log", "progress"]


class EngineError(Exception):
    """Base class for failures raised by a media engine."""


class LoadError(EngineError):
    """The engine could not be initialized."""


class ExecError(EngineError):
    """A command exited unsuccessfully. The cause is opaque to callers."""

    def __init__(self, message: str, returncode: int | None = None, stderr_tail: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr_tail = stderr_tail


class LoadConfig(BaseModel):
    """References to the two artifacts an engine needs to come up."""

    core_ref: Path
    probe_ref: Path


class EventChannel:
    """Typed observer registry for engine log/progress events.

    Handler failures are logged and never propagate back into the engine.
    """

    def __init__(self):
        self._handlers: dict[str, list[Callable]] = {"log": [], "progress": []}

    def subscribe(self, kind: EventKind, handler: Callable) -> None:
        if kind not in self._handlers:
            raise ValueError(f"Unknown event kind: {kind}")
        self._handlers[kind].append(handler)

    def handler_count(self, kind: EventKind) -> int:
        return len(self._handlers.get(kind, []))

    def emit_log(self, message: str) -> None:
        self._emit("log", LogEvent(message=message))

    def emit_progress(self, progress: float, time: float | None = None) -> None:
        self._emit("progress", ProgressEvent(progress=progress, time=time))

    def _emit(self, kind: str, event: BaseModel) -> None:
        for handler in list(self._handlers[kind]):
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"{kind} handler {handler!r} raised: {e}")


class MediaEngine(ABC):
    """Abstract base class for media engines.

    Concrete engines own a private namespace of named files. Every operation
    other than ``on`` must only be called after ``load`` has succeeded.
    """

    def __init__(self):
        self.events = EventChannel()

    def on(self, kind: EventKind, handler: Callable) -> None:
        """Register a persistent listener for ``"log"`` or ``"progress"`` events."""
        self.events.subscribe(kind, handler)

    @abstractmethod
    async def load(self, config: LoadConfig) -> None:
        """Bring the engine up.

        Raises:
            LoadError: If either artifact is unusable.
        """
        ...

    @abstractmethod
    async def write_file(self, name: str, data: bytes) -> None:
        """Store ``data`` under ``name`` in the engine namespace."""
        ...

    @abstractmethod
    async def exec(self, argv: Sequence[str], *, time_scale: float = 1.0) -> None:
        """Run one command against the namespace.

        Args:
            argv: Command arguments, without the executable itself.
            time_scale: Output timeline length relative to the input's. Only
                used to normalize progress events.

        Raises:
            ExecError: On any unsuccessful exit.
        """
        ...

    @abstractmethod
    async def read_file(self, name: str) -> bytes:
        """Return the bytes stored under ``name``.

        Raises:
            EngineError: If the file does not exist.
        """
        ...

    @abstractmethod
    async def delete_file(self, name: str) -> None:
        """Remove ``name`` from the namespace if present."""
        ...

    @abstractmethod
    async def dispose(self) -> None:
        """Release the namespace. The engine cannot be used afterwards."""
        ...
