"""Tests for media asset helpers."""

import pytest

from speedup.services.assets import (
    UnsupportedMediaType,
    asset_from_path,
    ensure_accepted,
    guess_mime_type,
    output_filename,
)


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("clip.mov", "video/quicktime"),
        ("CLIP.MOV", "video/quicktime"),
        ("clip.mp4", "video/mp4"),
        ("clip.m4v", "video/x-m4v"),
        ("notes", None),
    ],
)
def test_guess_mime_type(filename, expected):
    assert guess_mime_type(filename) == expected


def test_ensure_accepted():
    assert ensure_accepted("video/mp4") == "video/mp4"
    with pytest.raises(UnsupportedMediaType, match="audio/mpeg"):
        ensure_accepted("audio/mpeg")
    with pytest.raises(UnsupportedMediaType):
        ensure_accepted(None)


def test_ensure_accepted_custom_list():
    assert ensure_accepted("video/webm", accepted=["video/webm"]) == "video/webm"
    with pytest.raises(UnsupportedMediaType):
        ensure_accepted("video/mp4", accepted=["video/webm"])


def test_asset_from_path(tmp_path):
    path = tmp_path / "holiday.mov"
    path.write_bytes(b"movie")

    asset = asset_from_path(path)

    assert asset.name == "holiday.mov"
    assert asset.mime_type == "video/quicktime"
    assert asset.data == b"movie"
    assert asset.size == 5
    assert asset.preview_handle is None


def test_asset_from_path_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        asset_from_path(tmp_path / "missing.mov")

    (tmp_path / "notes.txt").write_text("hi")
    with pytest.raises(UnsupportedMediaType):
        asset_from_path(tmp_path / "notes.txt")


def test_output_filename():
    assert output_filename("clip.mov") == "sped_up_clip.mov.mp4"
    assert output_filename("") == "sped_up_video.mp4"
