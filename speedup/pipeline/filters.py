"""ffmpeg argument construction for speed-up filter plans.

Two plans exist:
- WithAudio: filter_complex splitting the input into a labeled video stream
  (setpts) and a labeled audio stream (atempo), both mapped to the output
- VideoOnly: setpts on the sole video stream with audio explicitly dropped

A single atempo stage only accepts factors in [0.5, 2.0]. Factors outside that
range would need chained atempo stages, which are not built here.
"""

from typing import Union

from speedup.schemas.media import VideoOnly, WithAudio


def primary_plan(speed_factor: float = 2.0) -> WithAudio:
    """Plan tried first for every job."""
    return WithAudio(speed_factor=speed_factor)


def fallback_plan(speed_factor: float = 2.0) -> VideoOnly:
    """Narrower plan used once the primary attempt has failed."""
    return VideoOnly(speed_factor=speed_factor)


def time_scale(plan: Union[WithAudio, VideoOnly]) -> float:
    """Output timeline length relative to the input's."""
    return 1.0 / plan.speed_factor


def _pts_expr(speed_factor: float) -> str:
    return f"setpts={1.0 / speed_factor}*PTS"


def build(plan: Union[WithAudio, VideoOnly], input_name: str, output_name: str) -> list[str]:
    """Build ffmpeg arguments (without the executable) for one attempt.

    Example (WithAudio, factor 2.0):
        ['-i', 'input.mov',
         '-filter_complex', '[0:v]setpts=0.5*PTS[v];[0:a]atempo=2.0[a]',
         '-map', '[v]', '-map', '[a]',
         'output.mp4']
    """
    if isinstance(plan, WithAudio):
        filter_complex = (
            f"[0:v]{_pts_expr(plan.speed_factor)}[v];"
            f"[0:a]atempo={float(plan.speed_factor)}[a]"
        )
        return [
            "-i", input_name,
            "-filter_complex", filter_complex,
            "-map", "[v]",
            "-map", "[a]",
            output_name,
        ]

    if isinstance(plan, VideoOnly):
        return [
            "-i", input_name,
            "-filter:v", _pts_expr(plan.speed_factor),
            "-an",
            output_name,
        ]

    raise TypeError(f"Unsupported filter plan: {plan!r}")
