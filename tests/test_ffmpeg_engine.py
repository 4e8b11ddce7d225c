"""Tests for the ffmpeg-backed engine.

Helper and namespace tests run anywhere; the end-to-end tests need real
ffmpeg/ffprobe executables on PATH and are skipped otherwise.
"""

import shutil
import subprocess

import pytest

from speedup.engine import EngineError, ExecError, LoadConfig, LoadError
from speedup.engine.ffmpeg import (
    FFmpegEngine,
    input_names,
    locate_artifacts,
    parse_out_time,
    progress_fraction,
)
from speedup.pipeline import filters

HAS_FFMPEG = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None
requires_ffmpeg = pytest.mark.skipif(not HAS_FFMPEG, reason="ffmpeg/ffprobe not installed")


# ---------------------------------------------------------------------------
# Progress parsing
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "key, value, expected",
    [
        ("out_time_us", "2500000", 2.5),
        ("out_time_us", "0", 0.0),
        ("out_time", "00:01:02.500000", 62.5),
        ("out_time_us", "N/A", None),
        ("out_time", "N/A", None),
        ("frame", "120", None),
    ],
)
def test_parse_out_time(key, value, expected):
    assert parse_out_time(key, value) == expected


def test_progress_fraction_uses_time_scale():
    # 10s input sped up 2x produces 5s of output
    assert progress_fraction(2.5, 10.0, time_scale=0.5) == 0.5
    assert progress_fraction(5.0, 10.0, time_scale=0.5) == 1.0
    assert progress_fraction(2.5, 10.0) == 0.25


def test_progress_fraction_unknown_duration():
    assert progress_fraction(1.0, 0.0) is None


def test_progress_fraction_is_not_clamped():
    assert progress_fraction(6.0, 10.0, time_scale=0.5) == pytest.approx(1.2)


def test_input_names():
    argv = filters.build(filters.primary_plan(), "input.mov", "output.mp4")
    assert input_names(argv) == ["input.mov"]
    assert input_names(["-y", "out.mp4"]) == []


# ---------------------------------------------------------------------------
# Artifact discovery
# ---------------------------------------------------------------------------

def test_locate_artifacts_missing_on_path(monkeypatch):
    monkeypatch.setattr("speedup.engine.ffmpeg.shutil.which", lambda name: None)

    with pytest.raises(LoadError, match="ffmpeg not found on PATH"):
        locate_artifacts()


def test_locate_artifacts_explicit_paths(tmp_path):
    ffmpeg = tmp_path / "ffmpeg"
    ffprobe = tmp_path / "ffprobe"
    ffmpeg.write_text("")
    ffprobe.write_text("")

    config = locate_artifacts(str(ffmpeg), str(ffprobe))

    assert config == LoadConfig(core_ref=ffmpeg, probe_ref=ffprobe)


def test_locate_artifacts_explicit_path_missing(tmp_path):
    (tmp_path / "ffmpeg").write_text("")

    with pytest.raises(LoadError, match="ffprobe not found at"):
        locate_artifacts(str(tmp_path / "ffmpeg"), str(tmp_path / "missing"))


@pytest.mark.asyncio
async def test_load_rejects_non_executable(tmp_path):
    fake = tmp_path / "ffmpeg"
    fake.write_text("not a program")
    fake.chmod(0o644)
    engine = FFmpegEngine(base_dir=tmp_path)

    with pytest.raises(LoadError):
        await engine.load(LoadConfig(core_ref=fake, probe_ref=fake))
    assert engine.namespace is None


# ---------------------------------------------------------------------------
# Namespace
# ---------------------------------------------------------------------------

@pytest.fixture
def namespaced_engine(tmp_path):
    engine = FFmpegEngine()
    engine.namespace = tmp_path.resolve()
    return engine


@pytest.mark.asyncio
async def test_write_read_delete(namespaced_engine, tmp_path):
    await namespaced_engine.write_file("input.mov", b"data")
    assert (tmp_path / "input.mov").read_bytes() == b"data"
    assert await namespaced_engine.read_file("input.mov") == b"data"

    await namespaced_engine.delete_file("input.mov")
    await namespaced_engine.delete_file("input.mov")
    assert not (tmp_path / "input.mov").exists()


@pytest.mark.asyncio
async def test_read_missing_file(namespaced_engine):
    with pytest.raises(EngineError, match="No such engine file"):
        await namespaced_engine.read_file("output.mp4")


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["../escape.mov", "/etc/passwd", "."])
async def test_names_outside_namespace_rejected(namespaced_engine, name):
    with pytest.raises(EngineError, match="Invalid engine file name"):
        await namespaced_engine.write_file(name, b"x")


@pytest.mark.asyncio
async def test_operations_require_load():
    engine = FFmpegEngine()
    with pytest.raises(EngineError):
        await engine.write_file("input.mov", b"x")
    with pytest.raises(EngineError):
        await engine.exec(["-i", "input.mov", "out.mp4"])


# ---------------------------------------------------------------------------
# End to end against real ffmpeg
# ---------------------------------------------------------------------------

def _make_clip(path, audio: bool) -> bytes:
    cmd = [
        "ffmpeg", "-hide_banner", "-loglevel", "error", "-y",
        "-f", "lavfi", "-i", "testsrc=duration=2:size=160x120:rate=10",
    ]
    if audio:
        cmd += ["-f", "lavfi", "-i", "sine=frequency=440:duration=2", "-c:a", "aac"]
    cmd += ["-c:v", "mpeg4", "-shortest", str(path)]
    subprocess.run(cmd, check=True, capture_output=True)
    return path.read_bytes()


@requires_ffmpeg
@pytest.mark.asyncio
async def test_load_creates_namespace_under_base_dir(tmp_path):
    engine = FFmpegEngine(base_dir=tmp_path / "engine")
    await engine.load(locate_artifacts())

    namespace = engine.namespace
    assert namespace.is_dir()
    assert namespace.parent == (tmp_path / "engine").resolve()

    await engine.dispose()
    assert not namespace.exists()


@requires_ffmpeg
@pytest.mark.asyncio
async def test_primary_plan_end_to_end(tmp_path):
    engine = FFmpegEngine(base_dir=tmp_path / "engine")
    await engine.load(locate_artifacts())
    progress, logs = [], []
    engine.on("progress", lambda event: progress.append(event.progress))
    engine.on("log", lambda event: logs.append(event.message))
    try:
        await engine.write_file("input.mov", _make_clip(tmp_path / "src.mov", audio=True))
        plan = filters.primary_plan()
        await engine.exec(
            filters.build(plan, "input.mov", "output.mp4"),
            time_scale=filters.time_scale(plan),
        )
        output = await engine.read_file("output.mp4")
    finally:
        await engine.dispose()

    assert output
    assert progress
    assert progress[-1] == 1.0
    assert logs


@requires_ffmpeg
@pytest.mark.asyncio
async def test_primary_plan_fails_without_audio(tmp_path):
    engine = FFmpegEngine(base_dir=tmp_path / "engine")
    await engine.load(locate_artifacts())
    try:
        await engine.write_file("input.mov", _make_clip(tmp_path / "src.mov", audio=False))

        with pytest.raises(ExecError) as exc_info:
            await engine.exec(filters.build(filters.primary_plan(), "input.mov", "output.mp4"))
        assert exc_info.value.returncode != 0
        assert exc_info.value.stderr_tail

        plan = filters.fallback_plan()
        await engine.exec(
            filters.build(plan, "input.mov", "output.mp4"),
            time_scale=filters.time_scale(plan),
        )
        assert await engine.read_file("output.mp4")
    finally:
        await engine.dispose()
