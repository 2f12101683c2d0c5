"""
Response-driven difficulty calibration.

Every answered item feeds a running accuracy tally. Once an item has at
least ``min_responses`` answers, its difficulty is re-derived from accuracy:

    accuracy >= 90%  -> 1  (very easy)
    accuracy >= 80%  -> 2
    ...
    accuracy >= 10%  -> 9
    otherwise        -> 10 (very hard)

Pilot items graduate to validated exactly once, when their response count
first reaches ``pilot_threshold``. From then on the selector prefers them and
the estimator weights them by their discrimination.

All writes go through the CalibrationStore's compare-and-set, retried up to
``max_retries`` times on version conflicts. The item repository only ever
receives the difficulty/status from the newest committed version.
"""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from adaptive_core.core.cat.calibration_store import CalibrationStat, CalibrationStore
from adaptive_core.core.cat.domain import CalibrationTrend, Item, ValidationStatus
from adaptive_core.core.cat.errors import ConcurrentCalibrationConflict, ItemNotFound
from adaptive_core.core.cat.repositories import ItemRepository
from adaptive_core.core.cat.scale import DIFFICULTY_MAX, DIFFICULTY_MIN
from adaptive_core.core.config import settings
from adaptive_core.core.datetime_utils import utc_now

logger = logging.getLogger(__name__)

# (minimum accuracy percent, difficulty), checked in order
DIFFICULTY_BUCKETS: Tuple[Tuple[float, int], ...] = (
    (90.0, 1),
    (80.0, 2),
    (70.0, 3),
    (60.0, 4),
    (50.0, 5),
    (40.0, 6),
    (30.0, 7),
    (20.0, 8),
    (10.0, 9),
)
HARDEST_DIFFICULTY = 10


def difficulty_from_accuracy(accuracy_pct: float) -> int:
    """Map an accuracy percentage (0-100) onto the 1-10 difficulty scale."""
    for threshold, difficulty in DIFFICULTY_BUCKETS:
        if accuracy_pct >= threshold:
            return difficulty
    return HARDEST_DIFFICULTY


def classify_trend(previous: float, current: float) -> CalibrationTrend:
    if current > previous:
        return CalibrationTrend.INCREASING
    if current < previous:
        return CalibrationTrend.DECREASING
    return CalibrationTrend.STABLE


def confidence_from_count(total_count: int, half_saturation: float) -> float:
    """Saturating confidence n / (n + k); 0.5 at n == k, approaching 1."""
    if total_count <= 0:
        return 0.0
    return total_count / (total_count + half_saturation)


@dataclass(frozen=True)
class CalibrationUpdate:
    """Outcome of one committed calibration write."""

    item_id: str
    difficulty: float
    previous_difficulty: float
    trend: CalibrationTrend
    confidence_score: float
    validated: bool
    newly_validated: bool
    total_count: int
    accuracy_pct: float
    version: int
    attempts: int


@dataclass(frozen=True)
class BankDifficultySummary:
    """Calibration overview for an item bank."""

    bank_id: str
    total_items: int
    pilot_items: int
    validated_items: int
    items_with_responses: int
    difficulty_distribution: Dict[int, int]
    average_accuracy: Optional[float]


@dataclass(frozen=True)
class PilotItemProgress:
    item_id: str
    responses: int
    responses_needed: int


class DifficultyCalibrationEngine:
    """Maintains CalibrationStats and pushes results to the item repository."""

    def __init__(
        self,
        store: CalibrationStore,
        items: ItemRepository,
        pilot_threshold: int = settings.CALIBRATION_PILOT_THRESHOLD,
        min_responses: int = settings.CALIBRATION_MIN_RESPONSES,
        max_retries: int = settings.CALIBRATION_MAX_RETRIES,
        confidence_half_saturation: float = settings.CALIBRATION_CONFIDENCE_HALF_SATURATION,
        clock: Callable[[], datetime] = utc_now,
    ):
        if min_responses > pilot_threshold:
            raise ValueError(
                f"min_responses ({min_responses}) must not exceed "
                f"pilot_threshold ({pilot_threshold})"
            )
        self.store = store
        self.items = items
        self.pilot_threshold = pilot_threshold
        self.min_responses = min_responses
        self.max_retries = max_retries
        self.confidence_half_saturation = confidence_half_saturation
        self.clock = clock

    def get_stat(self, item_id: str) -> CalibrationStat:
        """Stored stat for an item, or its unstored seed if none exists yet."""
        stat = self.store.get(item_id)
        if stat is not None:
            return stat
        return self._seed_stat(self._require_item(item_id))

    def record_response(self, item_id: str, correct: bool) -> CalibrationUpdate:
        """
        Fold one response into an item's statistics.

        Raises:
            ItemNotFound: If the item does not exist.
            ConcurrentCalibrationConflict: If retries are exhausted.
        """

        def mutate(base: CalibrationStat, now: datetime) -> CalibrationStat:
            return self._recompute(
                base,
                correct_count=base.correct_count + (1 if correct else 0),
                total_count=base.total_count + 1,
                now=now,
            )

        return self._commit(item_id, mutate)

    def recalibrate(self, item_id: str) -> CalibrationUpdate:
        """Re-derive difficulty from the current tallies without adding a response."""

        def mutate(base: CalibrationStat, now: datetime) -> CalibrationStat:
            return self._recompute(
                base,
                correct_count=base.correct_count,
                total_count=base.total_count,
                now=now,
            )

        return self._commit(item_id, mutate)

    def adjust_difficulty(
        self, item_id: str, difficulty: float, reason: Optional[str] = None
    ) -> CalibrationUpdate:
        """
        Manually override an item's difficulty.

        The override holds until the next response re-derives difficulty from
        accuracy (once the item has at least min_responses answers).
        """
        if not DIFFICULTY_MIN <= difficulty <= DIFFICULTY_MAX:
            raise ValueError(
                f"Difficulty must be in [{DIFFICULTY_MIN}, {DIFFICULTY_MAX}], got {difficulty}"
            )

        def mutate(base: CalibrationStat, now: datetime) -> CalibrationStat:
            return dataclasses.replace(
                base,
                difficulty=float(difficulty),
                trend=classify_trend(base.difficulty, difficulty),
                version=base.version + 1,
                updated_at=now,
            )

        update = self._commit(item_id, mutate)
        logger.info(
            f"Manual difficulty adjustment for item {item_id}: "
            f"{update.previous_difficulty} -> {update.difficulty} "
            f"(reason: {reason or 'unspecified'})"
        )
        return update

    def bank_difficulty_summary(self, bank_id: str) -> BankDifficultySummary:
        items = self.items.list_bank_items(bank_id)
        stats = {s.item_id: s for s in self.store.list_for_items(i.id for i in items)}

        distribution: Dict[int, int] = {d: 0 for d in range(1, HARDEST_DIFFICULTY + 1)}
        accuracies: List[float] = []
        for item in items:
            distribution[int(round(item.difficulty))] += 1
            stat = stats.get(item.id)
            if stat is not None and stat.total_count > 0:
                accuracies.append(stat.accuracy_pct)

        validated = sum(1 for i in items if i.is_validated)
        return BankDifficultySummary(
            bank_id=bank_id,
            total_items=len(items),
            pilot_items=len(items) - validated,
            validated_items=validated,
            items_with_responses=len(accuracies),
            difficulty_distribution=distribution,
            average_accuracy=(
                round(sum(accuracies) / len(accuracies), 2) if accuracies else None
            ),
        )

    def pilot_items_pending(self, bank_id: str) -> List[PilotItemProgress]:
        """Pilot items in a bank with the responses they still need."""
        pilots = [i for i in self.items.list_bank_items(bank_id) if not i.is_validated]
        stats = {s.item_id: s for s in self.store.list_for_items(i.id for i in pilots)}
        progress = []
        for item in pilots:
            responses = stats[item.id].total_count if item.id in stats else 0
            progress.append(
                PilotItemProgress(
                    item_id=item.id,
                    responses=responses,
                    responses_needed=max(0, self.pilot_threshold - responses),
                )
            )
        return sorted(progress, key=lambda p: (p.responses_needed, p.item_id))

    def _require_item(self, item_id: str) -> Item:
        item = self.items.get_item(item_id)
        if item is None:
            raise ItemNotFound("Item not found", context={"item_id": item_id})
        return item

    def _seed_stat(self, item: Item) -> CalibrationStat:
        return CalibrationStat(
            item_id=item.id,
            correct_count=0,
            total_count=0,
            accuracy_pct=0.0,
            difficulty=item.difficulty,
            trend=CalibrationTrend.STABLE,
            confidence_score=0.0,
            validated=item.is_validated,
            version=0,
        )

    def _recompute(
        self,
        base: CalibrationStat,
        correct_count: int,
        total_count: int,
        now: datetime,
    ) -> CalibrationStat:
        accuracy_pct = 100.0 * correct_count / total_count if total_count else 0.0
        if total_count >= self.min_responses:
            difficulty = float(difficulty_from_accuracy(accuracy_pct))
        else:
            difficulty = base.difficulty

        validated = base.validated or total_count >= self.pilot_threshold
        return CalibrationStat(
            item_id=base.item_id,
            correct_count=correct_count,
            total_count=total_count,
            accuracy_pct=accuracy_pct,
            difficulty=difficulty,
            trend=classify_trend(base.difficulty, difficulty),
            confidence_score=confidence_from_count(
                total_count, self.confidence_half_saturation
            ),
            validated=validated,
            version=base.version + 1,
            validated_at=base.validated_at or (now if validated and not base.validated else None),
            updated_at=now,
        )

    def _commit(
        self,
        item_id: str,
        mutate: Callable[[CalibrationStat, datetime], CalibrationStat],
    ) -> CalibrationUpdate:
        item = self._require_item(item_id)

        for attempt in range(1, self.max_retries + 1):
            current = self.store.get(item_id)
            expected_version = current.version if current is not None else None
            base = current if current is not None else self._seed_stat(item)
            candidate = mutate(base, self.clock())

            try:
                committed = self.store.compare_and_set(candidate, expected_version)
            except ConcurrentCalibrationConflict:
                logger.debug(
                    f"Calibration conflict for item {item_id} "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                continue

            newly_validated = committed.validated and not base.validated
            self.items.apply_calibration(
                item_id,
                committed.difficulty,
                ValidationStatus.VALIDATED if committed.validated else ValidationStatus.PILOT,
                committed.version,
            )
            if newly_validated:
                logger.info(
                    f"Item {item_id} validated after {committed.total_count} responses "
                    f"(difficulty={committed.difficulty}, accuracy={committed.accuracy_pct:.1f}%)"
                )
            return CalibrationUpdate(
                item_id=item_id,
                difficulty=committed.difficulty,
                previous_difficulty=base.difficulty,
                trend=committed.trend,
                confidence_score=committed.confidence_score,
                validated=committed.validated,
                newly_validated=newly_validated,
                total_count=committed.total_count,
                accuracy_pct=committed.accuracy_pct,
                version=committed.version,
                attempts=attempt,
            )

        raise ConcurrentCalibrationConflict(
            "Calibration retries exhausted",
            context={"item_id": item_id, "max_retries": self.max_retries},
        )
