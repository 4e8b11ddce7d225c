"""Translate raw engine events into a normalized percentage and log text."""

import logging
import math
from typing import Callable, Optional

from speedup.schemas.media import LogEvent, ProgressEvent

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[int], None]


def to_percent(fraction: float) -> Optional[int]:
    """Round a completion fraction to an integer percentage in [0, 100].

    Returns None for NaN or infinite input.
    """
    if not math.isfinite(fraction):
        return None
    return max(0, min(100, round(fraction * 100)))


class ProgressTranslator:
    """Persistent engine event subscriber feeding the current observer.

    Engine progress may exceed 1 or arrive out of order; every value is
    clamped independently. Log text is kept for display only.
    """

    def __init__(self):
        self.percent = 0
        self.last_log: Optional[str] = None
        self._observer: Optional[ProgressObserver] = None

    def attach(self, observer: ProgressObserver) -> None:
        self._observer = observer

    def detach(self) -> None:
        self._observer = None

    def reset(self) -> None:
        self.percent = 0

    def handle_progress(self, event: ProgressEvent) -> None:
        percent = to_percent(event.progress)
        if percent is None:
            logger.debug(f"Ignoring non-finite progress value {event.progress}")
            return
        self.percent = percent
        if self._observer is not None:
            self._observer(percent)

    def handle_log(self, event: LogEvent) -> None:
        self.last_log = event.message
