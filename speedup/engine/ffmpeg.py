"""ffmpeg-backed media engine.

Runs ffmpeg as an asyncio subprocess against a private scratch directory
that acts as the engine's file namespace. Progress comes from ffmpeg's
machine-readable ``-progress pipe:1`` stream on stdout; stderr lines are
forwarded as log events. ffprobe supplies the input duration used to turn
output timestamps into a completion fraction.
"""

import asyncio
import logging
import shutil
import tempfile
from collections import deque
from pathlib import Path
from typing import Optional, Sequence

from speedup.engine.base import EngineError, ExecError, LoadConfig, LoadError, MediaEngine

logger = logging.getLogger(__name__)

# Number of stderr lines kept for error reporting
_STDERR_TAIL_LINES = 20


def locate_artifacts(
    ffmpeg_path: Optional[str] = None,
    ffprobe_path: Optional[str] = None,
) -> LoadConfig:
    """Resolve the ffmpeg and ffprobe executables.

    Explicit paths win; otherwise both are looked up on PATH.

    Raises:
        LoadError: If either executable cannot be found.
    """
    resolved = {}
    for label, explicit in (("ffmpeg", ffmpeg_path), ("ffprobe", ffprobe_path)):
        candidate = explicit or shutil.which(label)
        if not candidate or not Path(candidate).is_file():
            raise LoadError(
                f"{label} not found{f' at {explicit}' if explicit else ' on PATH'}. "
                "Install ffmpeg to use the speed-up engine.\n"
                "Ubuntu/Debian: sudo apt-get install ffmpeg\n"
                "macOS: brew install ffmpeg\n"
                "Windows: https://ffmpeg.org/download.html"
            )
        resolved[label] = Path(candidate)

    return LoadConfig(core_ref=resolved["ffmpeg"], probe_ref=resolved["ffprobe"])


def parse_out_time(key: str, value: str) -> Optional[float]:
    """Return the output position in seconds from one ``-progress`` key/value pair.

    Handles ``out_time_us`` (microseconds) and ``out_time`` (HH:MM:SS.micro).
    Returns None for other keys and for unparsable values such as ``N/A``.
    """
    try:
        if key == "out_time_us":
            return int(value) / 1_000_000
        if key == "out_time":
            hours, minutes, seconds = value.split(":")
            return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    except ValueError:
        return None
    return None


def progress_fraction(out_seconds: float, input_duration: float, time_scale: float = 1.0) -> Optional[float]:
    """Fraction of the expected output timeline written so far.

    Not clamped: callers normalize out-of-range values.
    """
    expected = input_duration * time_scale
    if expected <= 0:
        return None
    return out_seconds / expected


def input_names(argv: Sequence[str]) -> list[str]:
    """Names passed to ``-i`` in an argument list."""
    return [argv[i + 1] for i, arg in enumerate(argv[:-1]) if arg == "-i"]


class FFmpegEngine(MediaEngine):
    """Media engine backed by the ffmpeg/ffprobe executables.

    Args:
        base_dir: Parent directory for the scratch namespace. A fresh
            temporary directory is created under it on load (system temp
            dir when None).
    """

    def __init__(self, base_dir: Optional[Path] = None):
        super().__init__()
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.config: Optional[LoadConfig] = None
        self.namespace: Optional[Path] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self, config: LoadConfig) -> None:
        await asyncio.gather(
            self._check_executable(config.core_ref),
            self._check_executable(config.probe_ref),
        )

        if self.base_dir is not None:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self.namespace = Path(
            tempfile.mkdtemp(prefix="speedup-engine-", dir=self.base_dir)
        ).resolve()
        self.config = config
        logger.info(f"ffmpeg engine loaded (namespace={self.namespace})")

    async def dispose(self) -> None:
        if self.namespace is not None:
            await asyncio.to_thread(shutil.rmtree, self.namespace, True)
            logger.info(f"ffmpeg engine disposed (namespace={self.namespace})")
        self.namespace = None
        self.config = None

    async def _check_executable(self, path: Path) -> None:
        """Run ``<path> -version`` and fail with LoadError unless it succeeds."""
        try:
            proc = await asyncio.create_subprocess_exec(
                str(path),
                "-version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
        except OSError as e:
            raise LoadError(f"Cannot execute {path}: {e}") from e

        if proc.returncode != 0:
            raise LoadError(
                f"{path.name} -version exited with code {proc.returncode}: "
                f"{stderr.decode('utf-8', errors='replace').strip()[:500]}"
            )
        version_line = stdout.decode("utf-8", errors="replace").split("\n")[0]
        logger.info(f"{path.name} validated: {version_line}")

    # ------------------------------------------------------------------
    # Namespace
    # ------------------------------------------------------------------

    def _resolve(self, name: str) -> Path:
        if self.namespace is None:
            raise EngineError("Engine is not loaded")

        path = (self.namespace / name).resolve()
        # Path traversal protection
        if not path.is_relative_to(self.namespace) or path == self.namespace:
            raise EngineError(f"Invalid engine file name: {name!r}")
        return path

    async def write_file(self, name: str, data: bytes) -> None:
        path = self._resolve(name)
        await asyncio.to_thread(path.write_bytes, data)
        logger.debug(f"Wrote {len(data)} bytes to {name}")

    async def read_file(self, name: str) -> bytes:
        path = self._resolve(name)
        if not path.is_file():
            raise EngineError(f"No such engine file: {name}")
        return await asyncio.to_thread(path.read_bytes)

    async def delete_file(self, name: str) -> None:
        path = self._resolve(name)
        path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def exec(self, argv: Sequence[str], *, time_scale: float = 1.0) -> None:
        if self.config is None or self.namespace is None:
            raise EngineError("Engine is not loaded")

        duration = 0.0
        inputs = input_names(argv)
        if inputs:
            duration = await self._probe_duration(self._resolve(inputs[0]))

        cmd = [
            str(self.config.core_ref),
            "-hide_banner",
            "-nostats",  # suppress human-readable stats on stderr
            "-progress", "pipe:1",  # key=value progress on stdout
            "-y",
            *argv,
        ]
        logger.info(f"Running: {' '.join(cmd)}")

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(self.namespace),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)

        try:
            # Drain both pipes together so a full stderr buffer cannot stall stdout
            await asyncio.gather(
                self._read_progress(proc.stdout, duration, time_scale),
                self._read_log(proc.stderr, stderr_tail),
            )
            await proc.wait()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            logger.info(f"ffmpeg (pid {proc.pid}) killed on cancellation")
            raise

        if proc.returncode != 0:
            tail = "\n".join(stderr_tail)
            raise ExecError(
                f"ffmpeg exited with code {proc.returncode}",
                returncode=proc.returncode,
                stderr_tail=tail,
            )

    async def _read_progress(
        self,
        stream: asyncio.StreamReader,
        duration: float,
        time_scale: float,
    ) -> None:
        async for raw_line in stream:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if "=" not in line:
                continue
            key, value = line.split("=", 1)

            if key == "progress" and value == "end":
                self.events.emit_progress(1.0, duration * time_scale if duration else None)
                continue

            if key != "out_time_us":
                continue
            out_seconds = parse_out_time(key, value)
            if out_seconds is None:
                continue
            fraction = progress_fraction(out_seconds, duration, time_scale)
            if fraction is not None:
                self.events.emit_progress(fraction, out_seconds)

    async def _read_log(self, stream: asyncio.StreamReader, tail: deque) -> None:
        async for raw_line in stream:
            line = raw_line.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            tail.append(line)
            logger.debug(f"ffmpeg: {line}")
            self.events.emit_log(line)

    async def _probe_duration(self, path: Path) -> float:
        """Container duration in seconds via ffprobe, 0.0 if unknown."""
        proc = await asyncio.create_subprocess_exec(
            str(self.config.probe_ref),
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            logger.warning(
                f"ffprobe failed on {path.name}: "
                f"{stderr.decode('utf-8', errors='replace').strip()[:200]}"
            )
            return 0.0
        try:
            return float(stdout.decode().strip())
        except ValueError:
            return 0.0
