"""Tests for progress translation."""

import math

import pytest

from speedup.pipeline.progress import ProgressTranslator, to_percent
from speedup.schemas import LogEvent, ProgressEvent


@pytest.mark.parametrize(
    "fraction, expected",
    [
        (0.0, 0),
        (0.004, 0),
        (0.256, 26),
        (0.5, 50),
        (1.0, 100),
        (1.7, 100),
        (-0.3, 0),
    ],
)
def test_to_percent_rounds_and_clamps(fraction, expected):
    result = to_percent(fraction)
    assert result == expected
    assert isinstance(result, int)


@pytest.mark.parametrize("fraction", [math.nan, math.inf, -math.inf])
def test_to_percent_ignores_non_finite(fraction):
    assert to_percent(fraction) is None


def test_out_of_order_and_out_of_range_events_stay_in_bounds():
    translator = ProgressTranslator()
    seen = []
    translator.attach(seen.append)

    for fraction in (0.3, 0.1, 1.4, 0.9, -0.2, math.nan):
        translator.handle_progress(ProgressEvent(progress=fraction))

    assert seen == [30, 10, 100, 90, 0]
    assert all(isinstance(p, int) and 0 <= p <= 100 for p in seen)
    assert translator.percent == 0


def test_detached_translator_still_tracks_percent():
    translator = ProgressTranslator()
    seen = []
    translator.attach(seen.append)
    translator.detach()

    translator.handle_progress(ProgressEvent(progress=0.42))

    assert seen == []
    assert translator.percent == 42


def test_log_events_do_not_change_progress():
    translator = ProgressTranslator()
    translator.handle_progress(ProgressEvent(progress=0.6))

    translator.handle_log(LogEvent(message="frame=  120 fps= 30"))

    assert translator.percent == 60
    assert translator.last_log == "frame=  120 fps= 30"


def test_reset_returns_to_zero():
    translator = ProgressTranslator()
    translator.handle_progress(ProgressEvent(progress=0.8))
    translator.reset()
    assert translator.percent == 0
