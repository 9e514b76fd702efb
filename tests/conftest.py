"""
pytest fixtures shared by the SpaceKeeper test suite.

Provides in-memory doubles for the engine, the filesystem prober and the
message presenter, plus executors that run background jobs inline or on
demand so admission cycles can be stepped through deterministically.
"""

import os
import tempfile
import threading
from concurrent.futures import Executor, Future
from typing import Dict, List

import pytest

# Ensure Qt uses offscreen platform for headless testing
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
# Keep the INI file and logs out of the real home directory
os.environ.setdefault("SPACEKEEPER_HOME", tempfile.mkdtemp(prefix="spacekeeper-tests-"))

from spacekeeper.core.capacity import CapacityProber  # noqa: E402
from spacekeeper.core.engine import TransferEngine  # noqa: E402
from spacekeeper.core.exceptions import ProbeFailure  # noqa: E402
from spacekeeper.core.models import CapacityInfo, Transfer  # noqa: E402
from spacekeeper.core.settings import DiskSpaceSettings  # noqa: E402
from spacekeeper.gui.confirmation_gate import ConfirmationGate  # noqa: E402
from spacekeeper.gui.message_presenter import MessagePresenter  # noqa: E402
from spacekeeper.processing.admission import AdmissionCoordinator  # noqa: E402
from spacekeeper.processing.disk_check import DiskSpaceChecker  # noqa: E402
from spacekeeper.processing.resume_policy import ResumeRetryPolicy  # noqa: E402
from spacekeeper.processing.tasks import BackgroundRunner  # noqa: E402


GB = 1024 ** 3
DOWNLOADS = "/downloads"
DOWNLOADS_VOLUME = 42


class InlineExecutor(Executor):
    """Runs every job immediately on the calling thread."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class ManualExecutor(Executor):
    """Queues jobs until the test calls run_all()."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.jobs.append((fn, args, kwargs, future))
        return future

    def run_all(self):
        while self.jobs:
            fn, args, kwargs, future = self.jobs.pop(0)
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeProber(CapacityProber):
    """Volumes keyed by path: free bytes, total bytes, volume token."""

    def __init__(self):
        self.volumes: Dict[str, list] = {}
        self.fail_paths = set()
        self.probe_count = 0

    def add_volume(self, path: str, free: int, total: int, volume):
        self.volumes[path] = [free, total, volume]

    def set_free(self, path: str, free: int):
        self.volumes[path][0] = free

    def free_up(self, path: str, amount: int):
        if path in self.volumes:
            self.volumes[path][0] += amount

    def probe(self, path: str) -> CapacityInfo:
        self.probe_count += 1
        if path in self.fail_paths or path not in self.volumes:
            raise ProbeFailure(f"Cannot read capacity for {path}", path=path)
        free, total, volume = self.volumes[path]
        return CapacityInfo(available_bytes=free, total_bytes=total, volume_identity=volume)

    def volume_identity(self, path: str):
        entry = self.volumes.get(path)
        return entry[2] if entry else None


class FakeEngine(TransferEngine):
    """In-memory engine. Deleting a transfer frees its size on the prober."""

    def __init__(self, prober: FakeProber = None):
        self._transfers: List[Transfer] = []
        self.prober = prober
        self.started = []
        self.stopped = []
        self.deleted_batches = []
        self.pending_deletes = []
        self.auto_complete = True
        self.fail_ids = set()
        # Threads that listed transfers outside the reservation totals
        self.listing_threads = []
        self._local = threading.local()

    def add(self, *transfers: Transfer):
        self._transfers.extend(transfers)

    def transfers(self):
        if not getattr(self._local, "in_totals", False):
            self.listing_threads.append(threading.get_ident())
        return list(self._transfers)

    def total_disk_needed(self, *args, **kwargs):
        self._local.in_totals = True
        try:
            return super().total_disk_needed(*args, **kwargs)
        finally:
            self._local.in_totals = False

    def total_disk_usage(self, *args, **kwargs):
        self._local.in_totals = True
        try:
            return super().total_disk_usage(*args, **kwargs)
        finally:
            self._local.in_totals = False

    def start_transfer(self, transfer_id, ignore_queue=False):
        self.started.append((transfer_id, ignore_queue))

    def stop_transfer(self, transfer_id):
        self.stopped.append(transfer_id)

    def delete_transfers(self, transfer_ids, with_data, on_complete):
        ids = list(transfer_ids)
        self.deleted_batches.append((ids, with_data))
        if self.auto_complete:
            self.complete_deletion(ids, on_complete)
        else:
            self.pending_deletes.append((ids, on_complete))

    def complete_deletion(self, ids, on_complete):
        failed = [i for i in ids if i in self.fail_ids]
        for t in list(self._transfers):
            if t.transfer_id in ids and t.transfer_id not in failed:
                self._transfers.remove(t)
                if self.prober is not None:
                    self.prober.free_up(t.download_dir, t.size_when_done)
        on_complete(failed)

    def started_ids(self):
        return [transfer_id for transfer_id, _ in self.started]


class FakePresenter(MessagePresenter):
    """Records dialogs; tests answer them explicitly."""

    def __init__(self):
        self.errors = []
        self.confirmations = []

    def show_error(self, title, message, on_closed):
        self.errors.append((title, message, on_closed))

    def show_confirmation(self, title, message, options, on_decision):
        self.confirmations.append((title, message, list(options), on_decision))

    def confirm(self, index: int = -1):
        self.confirmations[index][3](0)

    def cancel(self, index: int = -1):
        self.confirmations[index][3](1)

    def acknowledge(self, index: int = -1):
        self.errors[index][2]()


@pytest.fixture
def make_transfer():
    """Factory for transfers on the fake downloads volume."""
    counter = {"n": 0}

    def _make(name=None, size_when_done=0, size_left=None, group_id=-1, date_added=None,
              date_last_played=None, activity="stopped", download_dir=DOWNLOADS,
              volume_identity=DOWNLOADS_VOLUME, paused=False, transfer_id=None):
        counter["n"] += 1
        name = name or f"transfer-{counter['n']}"
        t = Transfer(
            transfer_id=transfer_id or name,
            name=name,
            download_dir=download_dir,
            group_id=group_id,
            size_when_done=size_when_done,
            size_left=size_when_done if size_left is None else size_left,
            date_added=date_added,
            date_last_played=date_last_played,
            activity=activity,
            volume_identity=volume_identity,
        )
        t.disk_state.paused_for_disk_space = paused
        return t

    return _make


@pytest.fixture
def prober():
    p = FakeProber()
    p.add_volume(DOWNLOADS, free=4 * GB, total=500 * GB, volume=DOWNLOADS_VOLUME)
    return p


@pytest.fixture
def engine(prober):
    return FakeEngine(prober)


@pytest.fixture
def presenter():
    return FakePresenter()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return DiskSpaceSettings(reprobe_delay_ms=0)


@pytest.fixture
def inline_executor():
    return InlineExecutor()


@pytest.fixture
def manual_executor():
    return ManualExecutor()


@pytest.fixture
def runner(qapp, inline_executor):
    r = BackgroundRunner(executor=inline_executor)
    yield r
    r.shutdown()


@pytest.fixture
def checker(engine, runner, settings, prober, clock):
    return DiskSpaceChecker(engine, runner, settings, prober=prober, clock=clock)


@pytest.fixture
def gate(presenter):
    return ConfirmationGate(presenter, group_name_for=lambda g: "Movies" if g == 1 else f"Group {g}")


@pytest.fixture
def coordinator(engine, checker, gate, runner):
    return AdmissionCoordinator(engine, checker, gate, runner)


@pytest.fixture
def policy(engine, checker, coordinator):
    return ResumeRetryPolicy(engine, checker, coordinator)
