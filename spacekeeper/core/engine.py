"""Engine collaborator interface.

SpaceKeeper never touches torrent internals. It talks to the engine through
this interface: list transfers, start/stop them, delete them with their
data, and ask how much space in-flight transfers still reserve.
"""

from abc import ABC, abstractmethod
from typing import Callable, Hashable, Iterable, List, Optional

from spacekeeper.core.constants import NO_GROUP, RESERVING_ACTIVITIES
from spacekeeper.core.models import Transfer


DeletionCallback = Callable[[List[str]], None]


class TransferEngine(ABC):
    """Operations the admission subsystem needs from the torrent engine.

    All methods are called on the coordinating (GUI) thread, except
    ``total_disk_needed`` and ``total_disk_usage`` which may also be called
    from the probe executor and must only read engine state.
    """

    @abstractmethod
    def transfers(self) -> List[Transfer]:
        """Return a copy of all transfers in insertion order."""

    @abstractmethod
    def start_transfer(self, transfer_id: str, ignore_queue: bool = False) -> None:
        """Start a transfer. Idempotent."""

    @abstractmethod
    def stop_transfer(self, transfer_id: str) -> None:
        """Stop a transfer. Idempotent."""

    @abstractmethod
    def delete_transfers(self, transfer_ids: Iterable[str], with_data: bool,
                         on_complete: DeletionCallback) -> None:
        """Remove transfers, optionally with their data.

        ``on_complete`` is called once for the batch, on the coordinating
        thread, with the ids that could not be removed (empty on success).
        """

    def transfer(self, transfer_id: str) -> Optional[Transfer]:
        for t in self.transfers():
            if t.transfer_id == transfer_id:
                return t
        return None

    def total_disk_needed(self, volume_identity: Optional[Hashable], group_id: int = NO_GROUP,
                          excluding_group: int = NO_GROUP, exclude_id: Optional[str] = None) -> int:
        """Bytes still to be written by active transfers.

        Counts ``size_left`` of downloading and seeding transfers. With a
        volume, only transfers on that volume count. Reservations are
        volume-wide, so ``group_id`` does not narrow the sum; transfers in
        ``excluding_group`` are skipped unless it is NO_GROUP.
        """
        total = 0
        for t in self.transfers():
            if exclude_id is not None and t.transfer_id == exclude_id:
                continue
            if volume_identity is not None and t.volume_identity != volume_identity:
                continue
            if excluding_group != NO_GROUP and t.group_id == excluding_group:
                continue
            if t.activity in RESERVING_ACTIVITIES:
                total += max(0, t.size_left)
        return total

    def total_disk_usage(self, volume_identity: Optional[Hashable] = None) -> int:
        """Bytes all transfers occupy once complete (optionally on one volume)."""
        return sum(
            t.size_when_done for t in self.transfers()
            if volume_identity is None or t.volume_identity == volume_identity
        )
