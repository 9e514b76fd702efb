"""Disk space admission coordinator.

Drives one admission cycle per transfer that is paused for disk space:

    IDLE -> PROBING -> SUFFICIENT_SPACE
                    -> INSUFFICIENT_CANDIDATES
                    -> NEEDS_EVICTION -> AWAITING_CONFIRMATION
                           -> (cancel) IDLE
                           -> DELETING -> REPROBING -> SUFFICIENT_SPACE | RESUME_FAILED

Terminal states are recorded as ``last_outcome`` and the transfer returns to
IDLE so the next trigger starts from scratch.

Thread Safety:
    Probing and candidate selection run on the BackgroundRunner executor.
    The selector works on copies of the transfers taken on the GUI thread.
    Every state change, engine call and dialog happens on the GUI thread.
    A transfer with a cycle in progress ignores further requests; cycles for
    different transfers are independent.
"""

import copy
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, List, Optional

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from spacekeeper.core.constants import LOG_CATEGORY, NO_GROUP
from spacekeeper.core.engine import TransferEngine
from spacekeeper.core.exceptions import DeletionIncomplete, InsufficientCandidates, ProbeFailure
from spacekeeper.core.models import (
    AdmissionState,
    ConfirmationKind,
    ConfirmationPayload,
    Decision,
    DeficitReport,
    EvictionPlan,
    Transfer,
)
from spacekeeper.core.selector import select_eviction_candidates
from spacekeeper.gui.confirmation_gate import ConfirmationGate
from spacekeeper.processing.disk_check import DiskSpaceChecker, Measurement
from spacekeeper.processing.tasks import BackgroundRunner
from spacekeeper.utils.format_utils import format_binary_size
from spacekeeper.utils.logger import log


@dataclass(frozen=True)
class ProbeOutcome:
    """What the executor hands back for one cycle."""
    measurement: Measurement
    plan: Optional[EvictionPlan] = None


class AdmissionCoordinator(QObject):
    """Admission cycles for transfers paused for disk space.

    Signals:
        admission_state_changed(str, str): transfer id, new AdmissionState value
        transfer_resumed(str): transfer id, after the engine was asked to start it
        eviction_started(str, list): transfer id, ids of transfers being deleted
    """

    admission_state_changed = pyqtSignal(str, str)
    transfer_resumed = pyqtSignal(str)
    eviction_started = pyqtSignal(str, list)

    def __init__(self, engine: TransferEngine, checker: DiskSpaceChecker,
                 gate: ConfirmationGate, runner: BackgroundRunner, parent=None):
        super().__init__(parent)
        self._engine = engine
        self._checker = checker
        self._gate = gate
        self._runner = runner
        # transfer id -> transfer with a cycle in progress
        self._cycles: Dict[str, Transfer] = {}
        # incoming path -> add waiting on space
        self._incoming: Dict[str, Callable[[], None]] = {}

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def active_cycles(self):
        return list(self._cycles)

    def _set_state(self, transfer: Transfer, new_state: AdmissionState):
        state = transfer.disk_state
        if state.admission_state is new_state:
            return
        log(f"{transfer.name}: {state.admission_state.value} -> {new_state.value}",
            level="trace", category=LOG_CATEGORY)
        state.admission_state = new_state
        self.admission_state_changed.emit(transfer.transfer_id, new_state.value)

    def _finish(self, transfer: Transfer, outcome: Optional[AdmissionState]):
        """End the cycle: record the outcome and release the transfer."""
        if outcome is not None:
            self._set_state(transfer, outcome)
            transfer.disk_state.last_outcome = outcome
        self._cycles.pop(transfer.transfer_id, None)
        self._set_state(transfer, AdmissionState.IDLE)

    def _is_current(self, transfer: Transfer, token: int) -> bool:
        """False for results of an abandoned or superseded cycle."""
        return (self._cycles.get(transfer.transfer_id) is transfer
                and transfer.disk_state.cycle_token == token)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def handle_paused_for_disk_space(self, transfer: Transfer) -> bool:
        """Start an admission cycle for ``transfer``.

        No-op unless the transfer is paused for disk space and has no cycle in
        progress. Returns True if a cycle was started.
        """
        state = transfer.disk_state
        if not state.paused_for_disk_space:
            return False
        if state.cycle_active or transfer.transfer_id in self._cycles:
            log(f"Admission already in progress for {transfer.name}; ignoring",
                level="debug", category=LOG_CATEGORY)
            return False

        state.cycle_token += 1
        state.last_outcome = None
        state.last_probe_time = self._checker.now()
        self._cycles[transfer.transfer_id] = transfer
        self._set_state(transfer, AdmissionState.PROBING)

        queued = self._runner.submit(
            self._probe_and_select, transfer.transfer_id, transfer.download_dir,
            transfer.size_left, transfer.group_id, transfer, self._snapshot(),
            on_done=partial(self._on_probed, transfer, state.cycle_token),
        )
        if queued is None:
            self._finish(transfer, None)
            return False
        return True

    def _snapshot(self) -> List[Transfer]:
        """Copies of the engine's transfers, taken on the GUI thread for the selector."""
        return [copy.copy(t) for t in self._engine.transfers()]

    # ------------------------------------------------------------------
    # Executor side
    # ------------------------------------------------------------------

    def _probe_and_select(self, transfer_id: str, download_dir: str, size_left: int,
                          group_id: int, target: Transfer, snapshot: List[Transfer]) -> ProbeOutcome:
        measurement = self._checker.measure(transfer_id, download_dir, size_left, group_id)
        report = measurement.report
        if report.sufficient:
            return ProbeOutcome(measurement=measurement)
        plan = select_eviction_candidates(
            snapshot, target, report.volume_identity, group_id, report.deficit)
        return ProbeOutcome(measurement=measurement, plan=plan)

    def _probe_only(self, transfer_id: str, download_dir: str, size_left: int,
                    group_id: int) -> ProbeOutcome:
        return ProbeOutcome(measurement=self._checker.measure(transfer_id, download_dir, size_left, group_id))

    # ------------------------------------------------------------------
    # GUI thread: cycle steps
    # ------------------------------------------------------------------

    def _on_probed(self, transfer: Transfer, token: int, outcome: Optional[ProbeOutcome],
                   error: Optional[BaseException]):
        if not self._is_current(transfer, token):
            return

        if error is not None:
            self._abort_on_probe_error(transfer, error)
            return

        if self._started_elsewhere(transfer):
            return

        if self._checker.apply(transfer, outcome.measurement):
            self._resume(transfer)
            return

        report = outcome.measurement.report
        plan = outcome.plan
        payload = self._payload(transfer.transfer_id, report, plan)

        if not plan.candidates or not plan.sufficient:
            err = InsufficientCandidates(
                f"Cannot free space for {transfer.name}: need {format_binary_size(report.deficit)}, "
                f"only {format_binary_size(plan.total_reclaimable)} reclaimable in '{payload.group_name}'",
                needed_bytes=report.deficit, reclaimable_bytes=plan.total_reclaimable,
                group_name=payload.group_name)
            log(err.message, level="warning", category=LOG_CATEGORY)
            self._gate.request_confirmation(ConfirmationKind.ERROR, payload)
            self._finish(transfer, AdmissionState.INSUFFICIENT_CANDIDATES)
            return

        self._set_state(transfer, AdmissionState.NEEDS_EVICTION)
        shown = self._gate.request_confirmation(
            ConfirmationKind.DELETE, payload,
            on_decision=partial(self._on_decision, transfer, token, plan))
        if not shown:
            self._finish(transfer, None)
            return
        # The presenter may have answered synchronously
        if self._is_current(transfer, token) and \
                transfer.disk_state.admission_state is AdmissionState.NEEDS_EVICTION:
            self._set_state(transfer, AdmissionState.AWAITING_CONFIRMATION)

    def _abort_on_probe_error(self, transfer: Transfer, error: BaseException):
        if isinstance(error, ProbeFailure):
            log(f"Disk space probe failed for {transfer.name}, will retry on next trigger: "
                f"{error.message}", level="warning", category=LOG_CATEGORY)
        else:
            log(f"Disk space admission failed for {transfer.name}: {error}",
                level="error", category=LOG_CATEGORY)
        self._finish(transfer, None)

    def _payload(self, key, report: DeficitReport, plan: EvictionPlan) -> ConfirmationPayload:
        return ConfirmationPayload(
            key=key,
            needed_bytes=report.deficit,
            reclaimable_bytes=plan.total_reclaimable,
            group_name=self._gate.group_name(report.group_id),
            candidates=list(plan.candidates),
        )

    def _started_elsewhere(self, transfer: Transfer) -> bool:
        """End the cycle if the transfer is no longer paused for disk space."""
        if transfer.disk_state.paused_for_disk_space:
            return False
        log(f"{transfer.name} started by other means; ending disk space admission",
            level="debug", category=LOG_CATEGORY)
        self._finish(transfer, None)
        return True

    def _on_decision(self, transfer: Transfer, token: int, plan: EvictionPlan, decision: Decision):
        if not self._is_current(transfer, token):
            return
        if self._started_elsewhere(transfer):
            return
        if decision is not Decision.CONFIRMED:
            log(f"Deletion declined; {transfer.name} stays paused for disk space",
                level="info", category=LOG_CATEGORY)
            self._finish(transfer, None)
            return

        ids = plan.candidate_ids
        self._set_state(transfer, AdmissionState.DELETING)
        log(f"Deleting {len(ids)} transfer(s) with data to make room for {transfer.name}",
            level="info", category=LOG_CATEGORY)
        self.eviction_started.emit(transfer.transfer_id, ids)
        self._engine.delete_transfers(
            ids, True, on_complete=partial(self._on_deleted, transfer, token))

    def _on_deleted(self, transfer: Transfer, token: int, failed_ids):
        if not self._is_current(transfer, token):
            return
        if failed_ids:
            err = DeletionIncomplete(
                f"Could not delete {len(failed_ids)} transfer(s); {transfer.name} stays paused",
                failed_ids=failed_ids)
            log(f"{err.message}: {', '.join(err.failed_ids)}", level="error", category=LOG_CATEGORY)
            self._finish(transfer, AdmissionState.RESUME_FAILED)
            return

        if self._started_elsewhere(transfer):
            return

        self._set_state(transfer, AdmissionState.REPROBING)
        delay = self._checker.settings.reprobe_delay_ms
        if delay > 0:
            QTimer.singleShot(delay, partial(self._reprobe, transfer, token))
        else:
            self._reprobe(transfer, token)

    def _reprobe(self, transfer: Transfer, token: int):
        if not self._is_current(transfer, token):
            return
        if self._started_elsewhere(transfer):
            return
        # Live state: the deletions may have changed what the engine reports
        live = self._engine.transfer(transfer.transfer_id) or transfer
        transfer.disk_state.last_probe_time = self._checker.now()
        queued = self._runner.submit(
            self._probe_only, live.transfer_id, live.download_dir, live.size_left, live.group_id,
            on_done=partial(self._on_reprobed, transfer, token),
        )
        if queued is None:
            self._finish(transfer, None)

    def _on_reprobed(self, transfer: Transfer, token: int, outcome: Optional[ProbeOutcome],
                     error: Optional[BaseException]):
        if not self._is_current(transfer, token):
            return
        if error is not None:
            self._abort_on_probe_error(transfer, error)
            return
        if self._started_elsewhere(transfer):
            return
        if self._checker.apply(transfer, outcome.measurement):
            self._resume(transfer)
            return
        report = outcome.measurement.report
        log(f"Still short of space for {transfer.name} after deletion "
            f"(need {format_binary_size(report.deficit)} more); leaving it paused",
            level="warning", category=LOG_CATEGORY)
        self._finish(transfer, AdmissionState.RESUME_FAILED)

    def _resume(self, transfer: Transfer):
        transfer.disk_state.paused_for_disk_space = False
        self._engine.start_transfer(transfer.transfer_id)
        log(f"Resumed {transfer.name} after disk space check", level="info", category=LOG_CATEGORY)
        self._finish(transfer, AdmissionState.SUFFICIENT_SPACE)
        self.transfer_resumed.emit(transfer.transfer_id)

    # ------------------------------------------------------------------
    # Incoming (RPC) adds
    # ------------------------------------------------------------------

    def admit_incoming(self, path: str, group_id: int, needed_bytes: int,
                       on_admitted: Callable[[], None],
                       on_rejected: Optional[Callable[[], None]] = None) -> bool:
        """Make room for a transfer that is about to be added.

        ``on_admitted`` runs once there is room, once deletion has been
        confirmed, or when capacity cannot be read. ``on_rejected`` runs if
        the user cancels or nothing can be freed. A second request for the
        same path while one is pending is ignored (returns False).
        """
        if path in self._incoming:
            log(f"Admission already pending for incoming transfer at {path}",
                level="debug", category=LOG_CATEGORY)
            return False
        self._incoming[path] = on_admitted
        queued = self._runner.submit(
            self._probe_incoming, path, group_id, needed_bytes, self._snapshot(),
            on_done=partial(self._on_incoming_probed, path, on_admitted, on_rejected),
        )
        if queued is None:
            self._incoming.pop(path, None)
            return False
        return True

    def _probe_incoming(self, path: str, group_id: int, needed_bytes: int, snapshot: List[Transfer]):
        capacity = self._checker.prober.probe(path)
        volume = capacity.volume_identity
        needed = max(0, needed_bytes) + self._engine.total_disk_needed(volume, NO_GROUP, NO_GROUP)
        report = DeficitReport(
            needed_bytes=needed,
            available_bytes=capacity.available_bytes,
            volume_identity=volume,
            group_id=group_id,
        )
        if report.sufficient:
            return report, None
        plan = select_eviction_candidates(
            snapshot, None, volume, group_id, report.deficit)
        return report, plan

    def _on_incoming_probed(self, path: str, on_admitted, on_rejected, result, error):
        if self._incoming.get(path) is not on_admitted:
            return
        if error is not None:
            log(f"Disk space probe failed for incoming transfer at {path}; adding anyway: {error}",
                level="warning", category=LOG_CATEGORY)
            self._admit_incoming(path, on_admitted)
            return

        report, plan = result
        if plan is None:
            self._admit_incoming(path, on_admitted)
            return

        key = f"incoming:{path}"
        payload = self._payload(key, report, plan)
        if not plan.candidates or not plan.sufficient:
            self._gate.request_confirmation(ConfirmationKind.ERROR, payload)
            self._reject_incoming(path, on_rejected)
            return

        def decided(decision: Decision):
            if decision is Decision.CONFIRMED:
                self._engine.delete_transfers(
                    plan.candidate_ids, True,
                    on_complete=partial(self._on_incoming_deleted, path))
                self._admit_incoming(path, on_admitted)
            else:
                self._reject_incoming(path, on_rejected)

        if not self._gate.request_confirmation(ConfirmationKind.DELETE, payload, on_decision=decided):
            self._reject_incoming(path, on_rejected)

    def _on_incoming_deleted(self, path: str, failed_ids):
        if failed_ids:
            log(f"Could not delete {len(failed_ids)} transfer(s) while making room for {path}",
                level="error", category=LOG_CATEGORY)

    def _admit_incoming(self, path: str, on_admitted):
        self._incoming.pop(path, None)
        on_admitted()

    def _reject_incoming(self, path: str, on_rejected):
        self._incoming.pop(path, None)
        log(f"Incoming transfer at {path} not added: not enough disk space",
            level="info", category=LOG_CATEGORY)
        if on_rejected is not None:
            on_rejected()

    # ------------------------------------------------------------------
    # Engine notifications
    # ------------------------------------------------------------------

    def forget(self, transfer: Transfer):
        """Drop any cycle for a transfer the engine has removed."""
        if self._cycles.pop(transfer.transfer_id, None) is not None:
            transfer.disk_state.cycle_token += 1
            transfer.disk_state.admission_state = AdmissionState.IDLE
