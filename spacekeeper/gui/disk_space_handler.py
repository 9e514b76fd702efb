"""Disk space admission wiring for the main window.

Builds the background runner, checker, confirmation gate, coordinator and
resume policy from the saved settings, and exposes the handful of calls the
window's actions and engine notifications need.
"""

from typing import TYPE_CHECKING, Callable, Iterable, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from spacekeeper.core.capacity import CapacityProber
from spacekeeper.core.constants import LOG_CATEGORY
from spacekeeper.core.engine import TransferEngine
from spacekeeper.core.models import Transfer
from spacekeeper.core.settings import DiskSpaceSettings
from spacekeeper.gui.confirmation_gate import ConfirmationGate
from spacekeeper.gui.message_presenter import MessagePresenter, QtMessagePresenter
from spacekeeper.gui.status_strings import disk_space_status
from spacekeeper.processing.admission import AdmissionCoordinator
from spacekeeper.processing.disk_check import DiskSpaceChecker
from spacekeeper.processing.resume_policy import ResumeRetryPolicy
from spacekeeper.processing.tasks import BackgroundRunner
from spacekeeper.utils.logger import log

if TYPE_CHECKING:
    from concurrent.futures import Executor


class DiskSpaceHandler(QObject):
    """Owns the disk space admission objects for one window.

    Signals:
        transfer_resumed(str): re-emitted from the coordinator so the window
            can refresh the row
    """

    transfer_resumed = pyqtSignal(str)

    def __init__(self, engine: TransferEngine, main_window=None,
                 settings: Optional[DiskSpaceSettings] = None,
                 presenter: Optional[MessagePresenter] = None,
                 group_name_for: Optional[Callable[[int], str]] = None,
                 executor: Optional['Executor'] = None,
                 prober: Optional[CapacityProber] = None):
        super().__init__(main_window)
        self._engine = engine
        self.settings = settings or DiskSpaceSettings.load_from_config()

        self.runner = BackgroundRunner(executor=executor, max_workers=self.settings.max_probe_workers, parent=self)
        self.checker = DiskSpaceChecker(engine, self.runner, self.settings, prober=prober)
        self.gate = ConfirmationGate(presenter or QtMessagePresenter(main_window), group_name_for)
        self.coordinator = AdmissionCoordinator(engine, self.checker, self.gate, self.runner, parent=self)
        self.policy = ResumeRetryPolicy(engine, self.checker, self.coordinator)

        self.coordinator.transfer_resumed.connect(self.transfer_resumed)

        log(f"Disk space checks {'enabled' if self.settings.warning_enabled else 'disabled'} "
            f"(throttle {self.settings.throttle_seconds:g}s)", level="debug", category=LOG_CATEGORY)

    # Window actions

    def resume_selected(self, transfers: Iterable[Transfer]):
        self.policy.resume_transfers(transfers)

    def resume_selected_now(self, transfers: Iterable[Transfer]):
        self.policy.resume_transfers(transfers, ignore_queue=True)

    # Engine notifications

    def on_transfer_added(self, transfer: Transfer, auto_start: bool):
        self.policy.on_transfer_added(transfer, auto_start)

    def on_rpc_transfer_added(self, download_dir: str, group_id: int, size_when_done: int,
                              add: Callable[[], None]):
        """RPC add: make room on ``download_dir`` before calling ``add``."""
        self.coordinator.admit_incoming(download_dir, group_id, size_when_done, add)

    def on_transfer_activity_changed(self, transfer: Transfer):
        self.policy.on_transfer_activity_changed(transfer)

    def on_transfer_removed(self, transfer: Transfer):
        self.coordinator.forget(transfer)

    # Status refresh

    def status_text(self, transfer: Transfer) -> Optional[str]:
        """Refresh (throttled) and return the disk space status line for a row."""
        self.policy.on_status_tick(transfer)
        return disk_space_status(transfer)

    def apply_settings(self, settings: DiskSpaceSettings):
        settings.validate()
        self.settings = settings
        self.checker.update_settings(settings)

    def shutdown(self):
        """Abandon in-flight checks; open dialogs resolve into no-ops."""
        self.runner.shutdown(wait=False)
