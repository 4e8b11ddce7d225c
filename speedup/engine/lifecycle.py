"""Ownership and asynchronous initialization of the single media engine.

The manager is the only component that constructs or disposes the engine.
Everything else asks it for the handle, which is refused until the engine
has loaded.

Usage:
    from speedup.engine import get_engine_manager

    manager = get_engine_manager()
    await manager.initialize()
    engine = manager.engine  # raises NotReady before READY
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from speedup.config import settings
from speedup.engine.base import EngineError, EventKind, LoadConfig, MediaEngine

logger = logging.getLogger(__name__)

ArtifactFetcher = Callable[[], Awaitable[LoadConfig]]


class NotReady(Exception):
    """Raised when the engine is used before it reached READY."""


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    LOAD_FAILED = "load_failed"


async def fetch_default_artifacts() -> LoadConfig:
    """Resolve ffmpeg/ffprobe from settings or PATH off the event loop."""
    from speedup.engine.ffmpeg import locate_artifacts

    return await asyncio.to_thread(
        locate_artifacts,
        settings.engine.ffmpeg_path,
        settings.engine.ffprobe_path,
    )


class EngineLifecycleManager:
    """Own one MediaEngine and gate access to it behind EngineState.

    Args:
        engine: The engine instance to manage.
        fetch_artifacts: Coroutine function resolving the engine's LoadConfig.
        load_timeout: Seconds allowed for artifact fetch plus load (None = no limit).
    """

    def __init__(
        self,
        engine: MediaEngine,
        fetch_artifacts: ArtifactFetcher = fetch_default_artifacts,
        load_timeout: Optional[float] = None,
    ):
        self._engine = engine
        self._fetch_artifacts = fetch_artifacts
        self._load_timeout = load_timeout
        self._state = EngineState.UNINITIALIZED
        self._error: Optional[str] = None
        self._loading: Optional[asyncio.Task] = None
        self._subscribers: list[tuple[EventKind, Callable]] = []
        self._subscribed = False

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is EngineState.READY

    @property
    def error(self) -> Optional[str]:
        """Message of the last load failure, cleared on success."""
        return self._error

    @property
    def engine(self) -> MediaEngine:
        if self._state is not EngineState.READY:
            raise NotReady(f"Engine is not ready (state={self._state.value})")
        return self._engine

    def subscribe(self, kind: EventKind, handler: Callable) -> None:
        """Register a persistent event listener.

        Listeners registered before READY are installed on the engine when the
        load succeeds; afterwards they are installed immediately. Either way each
        listener is installed exactly once.
        """
        self._subscribers.append((kind, handler))
        if self._subscribed:
            self._engine.on(kind, handler)

    async def initialize(self) -> EngineState:
        """Load the engine, or retry after a failed load.

        Returns the resulting state. Never raises for load failures; inspect
        ``state`` and ``error`` instead.
        """
        if self._state is EngineState.READY:
            return self._state
        if self._state is EngineState.LOADING and self._loading is not None:
            await asyncio.shield(self._loading)
            return self._state

        self._state = EngineState.LOADING
        self._error = None
        logger.info("Loading media engine...")
        self._loading = asyncio.ensure_future(self._load())
        try:
            await asyncio.shield(self._loading)
        finally:
            if self._loading.done():
                self._loading = None
        return self._state

    async def _load(self) -> None:
        try:
            if self._load_timeout is not None:
                await asyncio.wait_for(self._fetch_and_load(), self._load_timeout)
            else:
                await self._fetch_and_load()
        except asyncio.TimeoutError:
            self._fail(f"Engine load timed out after {self._load_timeout}s")
            return
        except EngineError as e:
            self._fail(str(e))
            return
        except Exception as e:
            logger.exception("Unexpected error while loading media engine")
            self._fail(f"{type(e).__name__}: {e}")
            return

        self._install_subscriptions()
        self._state = EngineState.READY
        logger.info("Media engine ready")

    async def _fetch_and_load(self) -> None:
        config = await self._fetch_artifacts()
        await self._engine.load(config)

    def _fail(self, message: str) -> None:
        self._state = EngineState.LOAD_FAILED
        self._error = message
        logger.error(f"Failed to load media engine: {message}")

    def _install_subscriptions(self) -> None:
        if self._subscribed:
            return
        for kind, handler in self._subscribers:
            self._engine.on(kind, handler)
        self._subscribed = True

    async def shutdown(self) -> None:
        """Dispose the engine and return to UNINITIALIZED.

        Subscriptions stay installed on the engine instance, so a later
        ``initialize`` does not register them again.
        """
        if self._state is EngineState.READY:
            await self._engine.dispose()
        self._state = EngineState.UNINITIALIZED
        logger.info("Media engine shut down")


# Module-level singleton: one engine per process
_manager: Optional[EngineLifecycleManager] = None


def get_engine_manager() -> EngineLifecycleManager:
    """Return the process-wide manager, creating the ffmpeg engine on first use."""
    global _manager
    if _manager is None:
        from speedup.engine.ffmpeg import FFmpegEngine

        _manager = EngineLifecycleManager(
            FFmpegEngine(base_dir=settings.storage.engine_dir),
            load_timeout=settings.engine.load_timeout_seconds,
        )
    return _manager
