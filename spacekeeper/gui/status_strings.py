"""Status line text for transfers paused for disk space."""

from typing import Optional

from spacekeeper.core.models import Transfer
from spacekeeper.utils.format_utils import format_binary_size


def disk_space_status(transfer: Transfer) -> Optional[str]:
    """Return the paused-for-disk-space status line, or None if not paused.

    Example: "Not enough disk space. Used for transfers 12.0 GiB, Need 3.5 GiB,
    Available 1.2 GiB of 500.0 GiB"
    """
    state = transfer.disk_state
    if not state.paused_for_disk_space:
        return None
    return (
        "Not enough disk space. "
        f"Used for transfers {format_binary_size(state.disk_space_used_by_transfers, precision=1)}, "
        f"Need {format_binary_size(state.disk_space_needed, precision=1)}, "
        f"Available {format_binary_size(state.disk_space_available, precision=1)} "
        f"of {format_binary_size(state.disk_space_total, precision=1)}"
    )
