"""Resume requests for transfers that may be waiting on disk space.

Every way a transfer gets started (Resume, Resume Now, a new add with
auto-start, the periodic status refresh) goes through ResumeRetryPolicy.
Explicit user actions always re-probe; the status refresh is throttled so a
paused transfer is not probed on every tick.
"""

from typing import Iterable

from spacekeeper.core.constants import ACTIVITY_STOPPED, LOG_CATEGORY
from spacekeeper.core.engine import TransferEngine
from spacekeeper.core.models import Transfer
from spacekeeper.processing.admission import AdmissionCoordinator
from spacekeeper.processing.disk_check import DiskSpaceChecker
from spacekeeper.utils.logger import log


class ResumeRetryPolicy:
    """Decides whether a start request starts, waits, or enters admission."""

    def __init__(self, engine: TransferEngine, checker: DiskSpaceChecker,
                 coordinator: AdmissionCoordinator):
        self._engine = engine
        self._checker = checker
        self._coordinator = coordinator

    def resume_request(self, transfer: Transfer, bypass_throttle: bool,
                       ignore_queue: bool = False) -> bool:
        """Start ``transfer`` if there is room for it.

        Args:
            transfer: Transfer to start.
            bypass_throttle: True for explicit user actions. Forces a fresh
                probe and hands a still-short transfer to the admission
                coordinator. False for periodic refreshes: probes at most once
                per throttle window and never opens a dialog.
            ignore_queue: Start without waiting for a download queue slot.

        Returns:
            True if a capacity probe was queued.
        """
        if not transfer.disk_state.paused_for_disk_space:
            self._engine.start_transfer(transfer.transfer_id, ignore_queue)
            return False

        if bypass_throttle:
            return self._checker.check(
                transfer, True,
                on_result=lambda allowed: self._after_forced_check(transfer, allowed, ignore_queue))

        if self._checker.is_throttled(transfer):
            log(f"Skipping disk space probe for {transfer.name}: checked recently",
                level="trace", category=LOG_CATEGORY)
            return False
        return self._checker.check(
            transfer, False,
            on_result=lambda allowed: self._after_periodic_check(transfer, allowed, ignore_queue))

    def _after_forced_check(self, transfer: Transfer, allowed: bool, ignore_queue: bool):
        if allowed:
            self._engine.start_transfer(transfer.transfer_id, ignore_queue)
        else:
            self._coordinator.handle_paused_for_disk_space(transfer)

    def _after_periodic_check(self, transfer: Transfer, allowed: bool, ignore_queue: bool):
        if allowed:
            log(f"Space freed for {transfer.name}; resuming", level="info", category=LOG_CATEGORY)
            self._engine.start_transfer(transfer.transfer_id, ignore_queue)

    def resume_transfers(self, transfers: Iterable[Transfer], ignore_queue: bool = False):
        """Resume (or Resume Now, with ``ignore_queue``) a selection of transfers."""
        for transfer in transfers:
            self.resume_request(transfer, bypass_throttle=True, ignore_queue=ignore_queue)

    def on_transfer_added(self, transfer: Transfer, auto_start: bool):
        """A transfer was just added (from a file, link or watch folder)."""
        if not auto_start:
            return
        self._checker.check(
            transfer, True,
            on_result=lambda allowed: self._after_forced_check(transfer, allowed, False))

    def on_status_tick(self, transfer: Transfer):
        """Periodic refresh: keep paused transfers' figures fresh, within the throttle."""
        if transfer.disk_state.paused_for_disk_space:
            self.resume_request(transfer, bypass_throttle=False)

    def on_transfer_activity_changed(self, transfer: Transfer):
        """The engine reports a new activity; a running transfer is no longer paused."""
        if transfer.activity != ACTIVITY_STOPPED and transfer.disk_state.paused_for_disk_space:
            log(f"{transfer.name} is running again; clearing disk space pause",
                level="debug", category=LOG_CATEGORY)
            transfer.disk_state.paused_for_disk_space = False
