"""Media asset construction and naming helpers."""

import mimetypes
from pathlib import Path
from typing import Optional

from speedup.config import settings
from speedup.schemas.media import MediaAsset

# Extensions the platform mime table does not reliably know
MIME_TYPES_BY_EXTENSION = {
    ".mov": "video/quicktime",
    ".qt": "video/quicktime",
    ".mp4": "video/mp4",
    ".m4v": "video/x-m4v",
}


class UnsupportedMediaType(ValueError):
    """Raised for files outside the accepted MIME types."""


def guess_mime_type(filename: str) -> Optional[str]:
    """MIME type from a file name, None if unknown."""
    suffix = Path(filename).suffix.lower()
    if suffix in MIME_TYPES_BY_EXTENSION:
        return MIME_TYPES_BY_EXTENSION[suffix]
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type


def ensure_accepted(mime_type: Optional[str], accepted: Optional[list[str]] = None) -> str:
    """Return ``mime_type`` if it is accepted, else raise UnsupportedMediaType."""
    accepted = accepted if accepted is not None else settings.job.accepted_mime_types
    if mime_type not in accepted:
        raise UnsupportedMediaType(
            f"Unsupported media type {mime_type}. Accepted: {', '.join(accepted)}"
        )
    return mime_type


def asset_from_path(path: Path) -> MediaAsset:
    """Read a file from disk into a MediaAsset.

    Raises:
        FileNotFoundError: If the file does not exist
        UnsupportedMediaType: If its type is not accepted
    """
    if not path.is_file():
        raise FileNotFoundError(f"Input file not found: {path}")
    mime_type = ensure_accepted(guess_mime_type(path.name))
    return MediaAsset(name=path.name, mime_type=mime_type, data=path.read_bytes())


def output_filename(original_name: str) -> str:
    """Download name for a speed-up result, e.g. ``sped_up_clip.mov.mp4``."""
    return f"sped_up_{original_name or 'video'}.mp4"
