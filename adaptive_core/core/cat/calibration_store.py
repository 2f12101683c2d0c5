"""
Versioned storage for per-item calibration statistics.

Every CalibrationStat carries a monotonically increasing ``version``. Writers
never overwrite blindly: ``compare_and_set`` commits a new stat only if the
stored version still equals the version the writer read, and raises
``ConcurrentCalibrationConflict`` otherwise. Two sessions answering the same
item within milliseconds of each other therefore serialize through retries
instead of losing an increment.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from adaptive_core.core.cat.domain import CalibrationTrend
from adaptive_core.core.cat.errors import ConcurrentCalibrationConflict


@dataclass(frozen=True)
class CalibrationStat:
    """Aggregate response statistics for one item.

    Attributes:
        item_id: Item identifier.
        correct_count: Correct responses recorded.
        total_count: Responses recorded.
        accuracy_pct: 100 * correct_count / total_count (0 when no responses).
        difficulty: Current difficulty on the 1-10 scale.
        trend: Direction of the latest difficulty change.
        confidence_score: Saturating confidence in the estimate (0-1).
        validated: Whether the item has left pilot status.
        version: Optimistic-concurrency version (0 = never stored).
        validated_at: When the pilot-to-validated transition happened.
        updated_at: Last write time.
    """

    item_id: str
    correct_count: int
    total_count: int
    accuracy_pct: float
    difficulty: float
    trend: CalibrationTrend
    confidence_score: float
    validated: bool
    version: int
    validated_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CalibrationStore(Protocol):
    """Optimistic-concurrency store for CalibrationStat records."""

    def get(self, item_id: str) -> Optional[CalibrationStat]:
        ...

    def list_for_items(self, item_ids: Iterable[str]) -> List[CalibrationStat]:
        ...

    def compare_and_set(
        self, stat: CalibrationStat, expected_version: Optional[int]
    ) -> CalibrationStat:
        """
        Commit ``stat`` if the stored version equals ``expected_version``.

        ``expected_version=None`` means the writer saw no stored record and
        the write is an insert.

        Raises:
            ConcurrentCalibrationConflict: If another writer got there first.
        """
        ...


class InMemoryCalibrationStore:
    """Thread-safe in-memory CalibrationStat store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats: Dict[str, CalibrationStat] = {}

    def get(self, item_id: str) -> Optional[CalibrationStat]:
        with self._lock:
            return self._stats.get(item_id)

    def list_for_items(self, item_ids: Iterable[str]) -> List[CalibrationStat]:
        with self._lock:
            return [self._stats[i] for i in item_ids if i in self._stats]

    def compare_and_set(
        self, stat: CalibrationStat, expected_version: Optional[int]
    ) -> CalibrationStat:
        with self._lock:
            current = self._stats.get(stat.item_id)
            current_version = current.version if current is not None else None
            if current_version != expected_version:
                raise ConcurrentCalibrationConflict(
                    "Calibration stat version changed",
                    context={
                        "item_id": stat.item_id,
                        "expected_version": expected_version,
                        "stored_version": current_version,
                    },
                )
            self._stats[stat.item_id] = stat
            return stat
