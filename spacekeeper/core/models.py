"""Data model for disk space admission.

Transfer mirrors the fields the engine exposes for one torrent. Its
``disk_state`` holds everything SpaceKeeper tracks per transfer; nothing
outside SpaceKeeper writes to it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable, List, Optional

from spacekeeper.core.constants import ACTIVITY_STOPPED, NO_GROUP


class AdmissionState(Enum):
    """Per-transfer admission cycle states."""
    IDLE = "idle"
    PROBING = "probing"
    SUFFICIENT_SPACE = "sufficient_space"
    NEEDS_EVICTION = "needs_eviction"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DELETING = "deleting"
    REPROBING = "reprobing"
    RESUME_FAILED = "resume_failed"
    INSUFFICIENT_CANDIDATES = "insufficient_candidates"


TERMINAL_STATES = frozenset({
    AdmissionState.SUFFICIENT_SPACE,
    AdmissionState.RESUME_FAILED,
    AdmissionState.INSUFFICIENT_CANDIDATES,
})

DIALOG_STATES = frozenset({
    AdmissionState.NEEDS_EVICTION,
    AdmissionState.AWAITING_CONFIRMATION,
})


class ConfirmationKind(Enum):
    ERROR = "error"
    DELETE = "delete"


class Decision(Enum):
    ACKNOWLEDGED = "acknowledged"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass
class DiskSpaceState:
    """Disk space bookkeeping stored alongside a transfer."""
    admission_state: AdmissionState = AdmissionState.IDLE
    last_outcome: Optional[AdmissionState] = None
    paused_for_disk_space: bool = False
    last_probe_time: float = 0.0
    # Figures from the most recent probe, shown in the status line
    disk_space_needed: int = 0
    disk_space_available: int = 0
    disk_space_total: int = 0
    disk_space_used_by_transfers: int = 0
    # Bumped whenever a cycle starts; late results for an older cycle are dropped
    cycle_token: int = 0

    @property
    def cycle_active(self) -> bool:
        return self.admission_state is not AdmissionState.IDLE

    @property
    def has_outstanding_disk_dialog(self) -> bool:
        return self.admission_state in DIALOG_STATES


@dataclass(eq=False)
class Transfer:
    """A torrent as seen by the admission subsystem."""
    transfer_id: str
    name: str
    download_dir: str
    group_id: int = NO_GROUP
    size_when_done: int = 0
    size_left: int = 0
    date_added: Optional[float] = None
    date_last_played: Optional[float] = None
    activity: str = ACTIVITY_STOPPED
    volume_identity: Optional[Hashable] = None
    disk_state: DiskSpaceState = field(default_factory=DiskSpaceState)

    @property
    def last_activity(self) -> Optional[float]:
        """Most recent of last-played and added, or None when neither is known."""
        stamps = [t for t in (self.date_last_played, self.date_added) if t is not None]
        return max(stamps) if stamps else None

    @property
    def all_downloaded(self) -> bool:
        return self.size_left <= 0

    @property
    def is_paused_for_disk_space(self) -> bool:
        return self.disk_state.paused_for_disk_space

    def __repr__(self):
        return f"Transfer({self.transfer_id!r}, {self.name!r}, group={self.group_id})"


@dataclass(frozen=True)
class CapacityInfo:
    available_bytes: int
    total_bytes: int
    volume_identity: Hashable


@dataclass(frozen=True)
class DeficitReport:
    needed_bytes: int
    available_bytes: int
    volume_identity: Hashable
    group_id: int

    @property
    def deficit(self) -> int:
        return max(0, self.needed_bytes - self.available_bytes)

    @property
    def sufficient(self) -> bool:
        return self.available_bytes >= self.needed_bytes


@dataclass(frozen=True)
class EvictionPlan:
    candidates: List[Transfer]
    total_reclaimable: int
    deficit: int

    @property
    def sufficient(self) -> bool:
        return self.total_reclaimable >= self.deficit

    @property
    def candidate_ids(self) -> List[str]:
        return [t.transfer_id for t in self.candidates]


@dataclass
class ConfirmationPayload:
    """Everything the gate needs to word an error or delete prompt."""
    key: Any
    needed_bytes: int
    reclaimable_bytes: int
    group_name: str
    candidates: List[Transfer] = field(default_factory=list)
