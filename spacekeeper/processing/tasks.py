"""Background work queue for filesystem probes.

Jobs run on a ThreadPoolExecutor. Their results hop back to the thread that
owns the BackgroundRunner (the GUI thread) through a queued Qt signal, so
callbacks always run where transfer state may be mutated.

Thread Safety:
    ``submit`` and ``shutdown`` must be called from the owning thread.
    Jobs must only read shared state.
"""

import itertools
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from PyQt6.QtCore import QObject, pyqtSignal, pyqtSlot

from spacekeeper.core.constants import DEFAULT_MAX_PROBE_WORKERS, LOG_CATEGORY
from spacekeeper.utils.logger import log


JobCallback = Callable[[Any, Optional[BaseException]], None]


class BackgroundRunner(QObject):
    """Runs jobs off the GUI thread and delivers results back onto it.

    Signals:
        _job_finished(int, object, object): request id, result, exception.
            Internal; connected to ``_deliver``.
    """

    _job_finished = pyqtSignal(int, object, object)

    def __init__(self, executor: Optional[Executor] = None,
                 max_workers: int = DEFAULT_MAX_PROBE_WORKERS, parent=None):
        super().__init__(parent)
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="DiskProbe")
        self._callbacks: Dict[int, JobCallback] = {}
        self._ids = itertools.count(1)
        self._closed = False
        self._job_finished.connect(self._deliver)

    @property
    def pending_count(self) -> int:
        return len(self._callbacks)

    def submit(self, fn: Callable[..., Any], *args, on_done: JobCallback) -> Optional[int]:
        """Queue ``fn(*args)``; ``on_done(result, error)`` runs on the owning thread.

        Returns the request id, or None if the runner has been shut down.
        """
        if self._closed:
            log(f"Dropping background job {getattr(fn, '__name__', fn)}: runner is shut down",
                level="debug", category=LOG_CATEGORY)
            return None
        request_id = next(self._ids)
        self._callbacks[request_id] = on_done
        self._executor.submit(self._run, request_id, fn, args)
        return request_id

    def _run(self, request_id: int, fn: Callable[..., Any], args: tuple):
        """Executor side: never lets an exception escape the worker thread."""
        try:
            result = fn(*args)
        except Exception as e:
            self._job_finished.emit(request_id, None, e)
            return
        self._job_finished.emit(request_id, result, None)

    @pyqtSlot(int, object, object)
    def _deliver(self, request_id: int, result, error):
        callback = self._callbacks.pop(request_id, None)
        if callback is None:
            # Runner shut down while the job was in flight
            return
        callback(result, error)

    def shutdown(self, wait: bool = False):
        """Stop accepting jobs and abandon in-flight ones."""
        if self._closed:
            return
        self._closed = True
        self._callbacks.clear()
        if self._owns_executor:
            self._executor.shutdown(wait=wait, cancel_futures=True)
