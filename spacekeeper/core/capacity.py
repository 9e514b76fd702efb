"""Capacity probing for download volumes.

Reads free space, total space and a volume identity token for a path. These
calls block on the filesystem, so callers run them on the background
executor, never on the GUI thread.
"""

import os
import shutil
from typing import Hashable, Optional

from spacekeeper.core.constants import LOG_CATEGORY
from spacekeeper.core.exceptions import ProbeFailure
from spacekeeper.core.models import CapacityInfo
from spacekeeper.utils.logger import log


class CapacityProber:
    """Pure query over filesystem metadata."""

    def probe(self, path: str) -> CapacityInfo:
        """Return free/total bytes and the volume token for ``path``.

        Raises:
            ProbeFailure: path missing, permission denied, or any other OSError.
        """
        try:
            usage = shutil.disk_usage(path)
            volume = os.stat(path).st_dev
        except OSError as e:
            raise ProbeFailure(f"Cannot read capacity for {path}: {e}", path=path) from e
        return CapacityInfo(
            available_bytes=int(usage.free),
            total_bytes=int(usage.total),
            volume_identity=volume,
        )

    def volume_identity(self, path: str) -> Optional[Hashable]:
        """Return the volume token for ``path``, or None if it cannot be read."""
        try:
            return os.stat(path).st_dev
        except OSError as e:
            log(f"Volume lookup failed for {path}: {e}", level="debug", category=LOG_CATEGORY)
            return None
