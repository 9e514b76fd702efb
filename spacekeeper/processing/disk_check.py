"""Remaining disk space check for a single transfer.

This is the gate every start goes through: measure the target volume, add
up what the transfer and the other active transfers on that volume still
need, and mark the transfer paused for disk space when it does not fit.
"""

import time
from dataclasses import dataclass
from typing import Callable, Hashable, Optional

from spacekeeper.core.capacity import CapacityProber
from spacekeeper.core.constants import LOG_CATEGORY, NO_GROUP
from spacekeeper.core.engine import TransferEngine
from spacekeeper.core.exceptions import ProbeFailure
from spacekeeper.core.models import CapacityInfo, DeficitReport, Transfer
from spacekeeper.core.settings import DiskSpaceSettings
from spacekeeper.processing.tasks import BackgroundRunner
from spacekeeper.utils.format_utils import format_binary_size
from spacekeeper.utils.logger import log


@dataclass(frozen=True)
class Measurement:
    """Result of one capacity probe for one transfer."""
    capacity: CapacityInfo
    report: DeficitReport
    used_by_transfers: int

    @property
    def volume_identity(self) -> Hashable:
        return self.capacity.volume_identity


class DiskSpaceChecker:
    """Probe-and-compare step shared by the resume policy and the coordinator."""

    def __init__(self, engine: TransferEngine, runner: BackgroundRunner,
                 settings: Optional[DiskSpaceSettings] = None,
                 prober: Optional[CapacityProber] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._engine = engine
        self._runner = runner
        self._settings = settings or DiskSpaceSettings()
        self._prober = prober or CapacityProber()
        self._clock = clock

    @property
    def settings(self) -> DiskSpaceSettings:
        return self._settings

    def update_settings(self, settings: DiskSpaceSettings):
        self._settings = settings

    @property
    def prober(self) -> CapacityProber:
        return self._prober

    def now(self) -> float:
        return self._clock()

    # ------------------------------------------------------------------
    # Executor side
    # ------------------------------------------------------------------

    def measure(self, transfer_id: str, download_dir: str, size_left: int, group_id: int) -> Measurement:
        """Probe ``download_dir`` and compute what the transfer needs there.

        Runs on the background executor.

        Raises:
            ProbeFailure: the volume could not be read.
        """
        capacity = self._prober.probe(download_dir)
        volume = capacity.volume_identity
        needed = max(0, size_left) + self._engine.total_disk_needed(
            volume, group_id, NO_GROUP, exclude_id=transfer_id)
        used = self._engine.total_disk_usage(volume)
        report = DeficitReport(
            needed_bytes=needed,
            available_bytes=capacity.available_bytes,
            volume_identity=volume,
            group_id=group_id,
        )
        return Measurement(capacity=capacity, report=report, used_by_transfers=used)

    # ------------------------------------------------------------------
    # GUI thread side
    # ------------------------------------------------------------------

    def is_throttled(self, transfer: Transfer) -> bool:
        """True while the last probe for ``transfer`` is inside the throttle window."""
        elapsed = self.now() - transfer.disk_state.last_probe_time
        return transfer.disk_state.last_probe_time > 0 and elapsed <= self._settings.throttle_seconds

    def exempt(self, transfer: Transfer) -> bool:
        """Transfers that never wait on disk space: complete ones, or checks disabled."""
        return transfer.all_downloaded or not self._settings.warning_enabled

    def check(self, transfer: Transfer, bypass_throttle: bool,
              on_result: Callable[[bool], None]) -> bool:
        """Decide whether ``transfer`` may start, probing off-thread when needed.

        ``on_result(allowed)`` is called on the GUI thread. It is called
        immediately when no probe is needed: for exempt transfers, and when a
        throttled check reuses the current paused state.

        Returns True if a probe was queued.
        """
        state = transfer.disk_state
        if self.exempt(transfer):
            state.paused_for_disk_space = False
            on_result(True)
            return False

        if not bypass_throttle and self.is_throttled(transfer):
            on_result(not state.paused_for_disk_space)
            return False

        state.last_probe_time = self.now()
        queued = self._runner.submit(
            self.measure, transfer.transfer_id, transfer.download_dir,
            transfer.size_left, transfer.group_id,
            on_done=lambda result, error: self._on_measured(transfer, result, error, on_result),
        )
        if queued is None:
            on_result(not state.paused_for_disk_space)
            return False
        return True

    def _on_measured(self, transfer: Transfer, measurement: Optional[Measurement],
                     error: Optional[BaseException], on_result: Callable[[bool], None]):
        if error is not None:
            if not isinstance(error, ProbeFailure):
                log(f"Unexpected error checking disk space for {transfer.name}: {error}",
                    level="error", category=LOG_CATEGORY)
            else:
                log(f"Disk space check skipped for {transfer.name}: {error.message}",
                    level="warning", category=LOG_CATEGORY)
            # Capacity unknown: the paused flag stays as it was
            on_result(not transfer.disk_state.paused_for_disk_space)
            return
        on_result(self.apply(transfer, measurement))

    def apply(self, transfer: Transfer, measurement: Measurement) -> bool:
        """Record probe figures on the transfer and set its paused flag.

        Returns True if the transfer fits on its volume.
        """
        state = transfer.disk_state
        report = measurement.report
        state.disk_space_available = report.available_bytes
        state.disk_space_total = measurement.capacity.total_bytes
        state.disk_space_needed = report.needed_bytes
        state.disk_space_used_by_transfers = measurement.used_by_transfers

        if report.sufficient:
            if state.paused_for_disk_space:
                log(f"Disk space available again for {transfer.name} "
                    f"({format_binary_size(report.available_bytes)} free, "
                    f"{format_binary_size(report.needed_bytes)} needed)",
                    level="info", category=LOG_CATEGORY)
            state.paused_for_disk_space = False
            return True

        if not state.paused_for_disk_space:
            log(f"Pausing {transfer.name} for disk space: need "
                f"{format_binary_size(report.needed_bytes)}, "
                f"{format_binary_size(report.available_bytes)} available",
                level="warning", category=LOG_CATEGORY)
        state.paused_for_disk_space = True
        return False
