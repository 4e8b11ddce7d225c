"""Media engine capability and lifecycle.

Provides a single async engine interface (load / on / write / exec / read)
with an ffmpeg-backed implementation, plus the manager that owns the one
engine instance per process.

Usage:
    from speedup.engine import get_engine_manager

    manager = get_engine_manager()
    await manager.initialize()
"""

from speedup.engine.base import (
    EngineError,
    EventChannel,
    ExecError,
    LoadConfig,
    LoadError,
    MediaEngine,
)
from speedup.engine.lifecycle import (
    EngineLifecycleManager,
    EngineState,
    NotReady,
    get_engine_manager,
)

__all__ = [
    "EngineError",
    "EngineLifecycleManager",
    "EngineState",
    "EventChannel",
    "ExecError",
    "LoadConfig",
    "LoadError",
    "MediaEngine",
    "NotReady",
    "get_engine_manager",
]
