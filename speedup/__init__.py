"""speedup - 2x video speed-up on top of a single ffmpeg engine.

The package is organised leaves-first:

- engine: the media engine capability and its lifecycle
- pipeline: filter graph construction and progress translation
- services: temporary resource handles for input/output media
- orchestrator: the job state machine tying everything together
"""

__version__ = "0.1.0"
