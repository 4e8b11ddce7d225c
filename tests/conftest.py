"""Shared fixtures: a scripted in-memory engine standing in for ffmpeg.

Fake media is a small text blob, e.g. ``FAKE;duration=10.0;audio=1``. The
fake engine honours the filter plan: the with-audio plan fails on media
without audio (like ffmpeg's "matches no streams" error) and every
successful run scales the duration by ``time_scale``.
"""

import asyncio
from pathlib import Path
from typing import Optional, Sequence

import pytest

from speedup.engine.base import EngineError, ExecError, LoadConfig, LoadError, MediaEngine
from speedup.engine.lifecycle import EngineLifecycleManager
from speedup.orchestrator import JobStateMachine
from speedup.schemas import MediaAsset
from speedup.services.resources import ResourceLifecycleManager


def make_media(duration: float = 10.0, audio: bool = True) -> bytes:
    return f"FAKE;duration={duration};audio={int(audio)}".encode()


def parse_media(data: bytes) -> dict:
    fields = dict(part.split("=", 1) for part in data.decode().split(";")[1:])
    return {"duration": float(fields["duration"]), "audio": fields["audio"] == "1"}


def make_asset(name: str = "clip.mov", duration: float = 10.0, audio: bool = True) -> MediaAsset:
    return MediaAsset(name=name, mime_type="video/quicktime", data=make_media(duration, audio))


class FakeEngine(MediaEngine):
    """In-memory MediaEngine with scripted failures.

    Args:
        load_errors: Messages raised by successive load calls (then succeeds)
        fail_kinds: Plan kinds ("with_audio" / "video_only") that always fail
        progress: Raw fractions emitted during every exec
    """

    def __init__(
        self,
        load_errors: Sequence[str] = (),
        fail_kinds: Sequence[str] = (),
        progress: Sequence[float] = (0.25, 0.5, 1.0),
    ):
        super().__init__()
        self.load_errors = list(load_errors)
        self.fail_kinds = set(fail_kinds)
        self.progress = list(progress)
        self.files: dict[str, bytes] = {}
        self.load_calls = 0
        self.exec_calls: list[list[str]] = []
        self.disposed = False
        self.gate: Optional[asyncio.Event] = None

    async def load(self, config: LoadConfig) -> None:
        self.load_calls += 1
        await asyncio.sleep(0)
        if self.load_errors:
            raise LoadError(self.load_errors.pop(0))
        self.disposed = False

    async def write_file(self, name: str, data: bytes) -> None:
        await asyncio.sleep(0)
        self.files[name] = bytes(data)

    async def exec(self, argv: Sequence[str], *, time_scale: float = 1.0) -> None:
        self.exec_calls.append(list(argv))
        if self.gate is not None:
            await self.gate.wait()

        kind = "with_audio" if "-filter_complex" in argv else "video_only"
        source = parse_media(self.files[argv[argv.index("-i") + 1]])

        for fraction in self.progress:
            self.events.emit_progress(fraction, fraction * source["duration"] * time_scale)
            await asyncio.sleep(0)
        self.events.emit_log(f"fake {kind} run")

        if kind in self.fail_kinds:
            raise ExecError("ffmpeg exited with code 1", returncode=1, stderr_tail=f"{kind} forced failure")
        if kind == "with_audio" and not source["audio"]:
            raise ExecError(
                "ffmpeg exited with code 1",
                returncode=1,
                stderr_tail="Stream specifier ':a' in filtergraph description matches no streams.",
            )

        audio = source["audio"] and kind == "with_audio"
        self.files[argv[-1]] = make_media(source["duration"] * time_scale, audio)

    async def read_file(self, name: str) -> bytes:
        await asyncio.sleep(0)
        if name not in self.files:
            raise EngineError(f"No such engine file: {name}")
        return self.files[name]

    async def delete_file(self, name: str) -> None:
        self.files.pop(name, None)

    async def dispose(self) -> None:
        self.files.clear()
        self.disposed = True


async def fake_artifacts() -> LoadConfig:
    return LoadConfig(core_ref=Path("/opt/fake/ffmpeg"), probe_ref=Path("/opt/fake/ffprobe"))


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def manager(engine):
    return EngineLifecycleManager(engine, fetch_artifacts=fake_artifacts)


@pytest.fixture
def resources(tmp_path):
    return ResourceLifecycleManager(tmp_path / "resources")


@pytest.fixture
def machine(manager, resources):
    return JobStateMachine(manager, resources)
