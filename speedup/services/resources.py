"""
Temporary resource handles for input previews and speed-up results.

Each handle is backed by a scratch file under the resource directory and
occupies one ResourceSlot. Publishing into an occupied slot revokes the
previous handle first, so repeated selections and jobs never accumulate
live files.
"""
import logging
import uuid
from pathlib import Path
from typing import Optional

from speedup.config import settings
from speedup.schemas.media import ResourceHandle, ResourceSlot

logger = logging.getLogger(__name__)


class ResourceLifecycleManager:
    """
    Own every ResourceHandle and the files behind them.

    Files live at {base_dir}/{handle_id}/{filename}. Only this class deletes
    them.
    """

    def __init__(self, base_dir: str | Path | None = None):
        """
        Initialize the manager with a base directory.

        Args:
            base_dir: Root directory for resource files.
                     If None, uses settings.storage.resource_dir
        """
        if base_dir is None:
            base_dir = settings.storage.resource_dir

        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._handles: dict[ResourceSlot, ResourceHandle] = {}

    def _handle_path(self, handle_id: uuid.UUID, filename: str) -> Path:
        handle_dir = (self.base_dir / str(handle_id)).resolve()
        path = (handle_dir / filename).resolve()

        # Path traversal protection
        if not path.is_relative_to(handle_dir) or path == handle_dir:
            raise ValueError(f"Invalid resource filename: {filename!r}")

        return path

    def publish(
        self,
        slot: ResourceSlot,
        data: bytes,
        mime_type: str,
        filename: Optional[str] = None,
    ) -> ResourceHandle:
        """
        Create a handle for ``data`` in ``slot``, revoking the slot's previous handle.

        Args:
            slot: Slot the new handle occupies
            data: Buffer contents
            mime_type: MIME type reported with the handle
            filename: Name used for the backing file and for downloads.
                      Defaults to the slot name.

        Returns:
            The new live handle

        Raises:
            ValueError: If filename would escape the handle directory
        """
        handle_id = uuid.uuid4()
        filename = filename or slot.value
        path = self._handle_path(handle_id, filename)

        self.revoke(slot)

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

        handle = ResourceHandle(
            id=handle_id,
            slot=slot,
            path=path,
            filename=filename,
            mime_type=mime_type,
            size=len(data),
        )
        self._handles[slot] = handle
        logger.info(f"Published {slot.value} handle {handle_id} ({len(data)} bytes, {mime_type})")
        return handle

    def get(self, slot: ResourceSlot) -> Optional[ResourceHandle]:
        """Live handle in ``slot``, if any."""
        return self._handles.get(slot)

    def live_handles(self) -> list[ResourceHandle]:
        return list(self._handles.values())

    def revoke(self, slot: ResourceSlot) -> bool:
        """
        Revoke the handle in ``slot`` and delete its file.

        Returns:
            True if a handle was revoked, False if the slot was empty
        """
        handle = self._handles.pop(slot, None)
        if handle is None:
            return False

        handle.path.unlink(missing_ok=True)
        try:
            handle.path.parent.rmdir()
        except OSError:
            logger.warning(f"Could not remove resource directory {handle.path.parent}")
        handle.revoked = True
        logger.info(f"Revoked {slot.value} handle {handle.id}")
        return True

    def revoke_all(self) -> int:
        """Revoke every tracked handle. Returns how many were revoked."""
        return sum(1 for slot in list(self._handles) if self.revoke(slot))
