"""
Off-request dispatch of calibration updates.

Submitting an answer must not wait on calibration storage. The session state
machine hands each (item_id, correct) pair to the dispatcher, which records
it on a worker thread. Failures are logged and never surface to the answering
student; conflicts that exhaust the engine's retries are logged as errors.

``synchronous=True`` records inline on the caller's thread, which keeps
tests deterministic.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Optional, Set

from adaptive_core.core.cat.calibration import DifficultyCalibrationEngine
from adaptive_core.core.cat.errors import AssessmentError
from adaptive_core.core.config import settings

logger = logging.getLogger(__name__)


class CalibrationDispatcher:
    """Runs calibration writes on a bounded worker pool."""

    def __init__(
        self,
        engine: DifficultyCalibrationEngine,
        max_workers: int = settings.CALIBRATION_WORKERS,
        synchronous: bool = False,
    ):
        self.engine = engine
        self.synchronous = synchronous
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()
        self._executor: Optional[ThreadPoolExecutor] = None
        if not synchronous:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="calibration"
            )

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def submit(self, item_id: str, correct: bool) -> Optional[Future]:
        """Queue one response for calibration; returns the future if async."""
        if self._executor is None:
            self._record(item_id, correct)
            return None

        future = self._executor.submit(self._record, item_id, correct)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def drain(self, timeout: Optional[float] = None) -> None:
        """Block until every queued update has been recorded."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self, wait_for_pending: bool = True) -> None:
        if self._executor is not None:
            logger.info(
                f"Shutting down calibration dispatcher ({self.pending_count} pending)"
            )
            self._executor.shutdown(wait=wait_for_pending)

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _record(self, item_id: str, correct: bool) -> None:
        try:
            self.engine.record_response(item_id, correct)
        except AssessmentError as e:
            logger.error(f"Calibration update for item {item_id} failed: {e}")
        except Exception:
            logger.exception(
                f"Calibration update for item {item_id} failed with unexpected error"
            )
