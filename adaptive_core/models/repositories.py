"""
SQLAlchemy implementations of the core collaborator interfaces.

Each method opens its own short-lived session from the session factory so
that request threads and calibration worker threads never share a session.
"""

import logging
from typing import Any, Collection, Iterable, List, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from adaptive_core.core.cat.calibration_store import CalibrationStat
from adaptive_core.core.cat.domain import (
    AssessmentResult,
    BankScore,
    Item,
    ValidationStatus,
)
from adaptive_core.core.cat.errors import ConcurrentCalibrationConflict
from adaptive_core.core.datetime_utils import ensure_timezone_aware
from adaptive_core.models.models import (
    AssessmentResultRecord,
    BlueprintRecord,
    CalibrationStatRecord,
    ItemRecord,
)

logger = logging.getLogger(__name__)


def item_from_record(record: ItemRecord) -> Item:
    return Item(
        id=record.id,
        bank_id=record.bank_id,
        difficulty=record.difficulty,
        discrimination=record.discrimination,
        validation_status=ValidationStatus(record.validation_status),
        answer_key=tuple(record.answer_key or ()),
        calibration_version=record.calibration_version,
    )


def stat_from_record(record: CalibrationStatRecord) -> CalibrationStat:
    return CalibrationStat(
        item_id=record.item_id,
        correct_count=record.correct_count,
        total_count=record.total_count,
        accuracy_pct=record.accuracy_pct,
        difficulty=record.difficulty,
        trend=record.trend,
        confidence_score=record.confidence_score,
        validated=record.validated,
        version=record.version,
        validated_at=(
            ensure_timezone_aware(record.validated_at) if record.validated_at else None
        ),
        updated_at=ensure_timezone_aware(record.updated_at) if record.updated_at else None,
    )


class SqlItemRepository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def list_eligible_items(
        self, bank_id: str, exclude_ids: Collection[str]
    ) -> List[Item]:
        stmt = select(ItemRecord).where(
            ItemRecord.bank_id == bank_id,
            ItemRecord.is_active.is_(True),
        )
        if exclude_ids:
            stmt = stmt.where(ItemRecord.id.notin_(list(exclude_ids)))
        stmt = stmt.order_by(ItemRecord.id)
        with self._session_factory() as db:
            return [item_from_record(r) for r in db.scalars(stmt)]

    def list_bank_items(self, bank_id: str) -> List[Item]:
        return self.list_eligible_items(bank_id, ())

    def get_item(self, item_id: str) -> Optional[Item]:
        with self._session_factory() as db:
            record = db.get(ItemRecord, item_id)
            return item_from_record(record) if record is not None else None

    def add_item(self, item: Item, prompt: Optional[str] = None) -> None:
        with self._session_factory() as db:
            db.add(
                ItemRecord(
                    id=item.id,
                    bank_id=item.bank_id,
                    prompt=prompt,
                    answer_key=list(item.answer_key),
                    difficulty=item.difficulty,
                    discrimination=item.discrimination,
                    validation_status=item.validation_status,
                    calibration_version=item.calibration_version,
                )
            )
            db.commit()

    def apply_calibration(
        self,
        item_id: str,
        difficulty: float,
        validation_status: ValidationStatus,
        version: int,
    ) -> bool:
        stmt = (
            update(ItemRecord)
            .where(ItemRecord.id == item_id, ItemRecord.calibration_version < version)
            .values(
                difficulty=difficulty,
                validation_status=validation_status,
                calibration_version=version,
            )
        )
        with self._session_factory() as db:
            result = db.execute(stmt)
            db.commit()
            return result.rowcount == 1


class SqlCalibrationStore:
    """CalibrationStat store using a version column for compare-and-set."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, item_id: str) -> Optional[CalibrationStat]:
        with self._session_factory() as db:
            record = db.get(CalibrationStatRecord, item_id)
            return stat_from_record(record) if record is not None else None

    def list_for_items(self, item_ids: Iterable[str]) -> List[CalibrationStat]:
        ids = list(item_ids)
        if not ids:
            return []
        with self._session_factory() as db:
            records = db.scalars(
                select(CalibrationStatRecord).where(CalibrationStatRecord.item_id.in_(ids))
            )
            return [stat_from_record(r) for r in records]

    def compare_and_set(
        self, stat: CalibrationStat, expected_version: Optional[int]
    ) -> CalibrationStat:
        values = {
            "correct_count": stat.correct_count,
            "total_count": stat.total_count,
            "accuracy_pct": stat.accuracy_pct,
            "difficulty": stat.difficulty,
            "trend": stat.trend,
            "confidence_score": stat.confidence_score,
            "validated": stat.validated,
            "validated_at": stat.validated_at,
            "version": stat.version,
            "updated_at": stat.updated_at,
        }
        conflict_context = {"item_id": stat.item_id, "expected_version": expected_version}

        with self._session_factory() as db:
            if expected_version is None:
                db.add(CalibrationStatRecord(item_id=stat.item_id, **values))
                try:
                    db.commit()
                except IntegrityError as e:
                    db.rollback()
                    raise ConcurrentCalibrationConflict(
                        "Calibration stat was created concurrently",
                        context=conflict_context,
                    ) from e
                return stat

            result = db.execute(
                update(CalibrationStatRecord)
                .where(
                    CalibrationStatRecord.item_id == stat.item_id,
                    CalibrationStatRecord.version == expected_version,
                )
                .values(**values)
            )
            if result.rowcount != 1:
                db.rollback()
                raise ConcurrentCalibrationConflict(
                    "Calibration stat version changed", context=conflict_context
                )
            db.commit()
            return stat


class SqlBlueprintStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, blueprint_id: str) -> Optional[Mapping[str, Any]]:
        with self._session_factory() as db:
            record = db.get(BlueprintRecord, blueprint_id)
            return dict(record.config) if record is not None else None

    def save(self, blueprint_id: str, config: Mapping[str, Any]) -> None:
        with self._session_factory() as db:
            record = db.get(BlueprintRecord, blueprint_id)
            if record is None:
                record = BlueprintRecord(id=blueprint_id)
                db.add(record)
            record.name = config.get("name")
            record.config = dict(config)
            db.commit()


class SqlResultStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def save(self, result: AssessmentResult) -> None:
        lower, upper = result.confidence_interval
        with self._session_factory() as db:
            db.merge(
                AssessmentResultRecord(
                    session_id=result.session_id,
                    blueprint_id=result.blueprint_id,
                    final_score=result.final_score,
                    scaled_score=result.scaled_score,
                    percentile_rank=result.percentile_rank,
                    questions_asked=result.questions_asked,
                    correct_count=result.correct_count,
                    theta=result.theta,
                    standard_error=result.se,
                    ci_lower=lower,
                    ci_upper=upper,
                    confidence_level=result.confidence_level,
                    passed=result.passed,
                    performance_level=result.performance_level,
                    stop_reason=result.stop_reason,
                    time_forced=result.time_forced,
                    per_bank=[
                        {
                            "bank_id": b.bank_id,
                            "score": b.score,
                            "questions_asked": b.questions_asked,
                            "correct_count": b.correct_count,
                        }
                        for b in result.per_bank
                    ],
                    started_at=result.started_at,
                    completed_at=result.completed_at,
                )
            )
            db.commit()
        logger.debug(f"Archived result for session {result.session_id}")

    def get(self, session_id: str) -> Optional[AssessmentResult]:
        with self._session_factory() as db:
            record = db.get(AssessmentResultRecord, session_id)
            if record is None:
                return None
            return _result_from_record(record)


def _result_from_record(record: AssessmentResultRecord) -> AssessmentResult:
    return AssessmentResult(
        session_id=record.session_id,
        blueprint_id=record.blueprint_id,
        final_score=record.final_score,
        scaled_score=record.scaled_score,
        percentile_rank=record.percentile_rank,
        questions_asked=record.questions_asked,
        correct_count=record.correct_count,
        per_bank=tuple(BankScore(**b) for b in record.per_bank),
        theta=record.theta,
        se=record.standard_error,
        confidence_interval=(record.ci_lower, record.ci_upper),
        confidence_level=record.confidence_level,
        passed=record.passed,
        performance_level=record.performance_level,
        stop_reason=record.stop_reason,
        time_forced=record.time_forced,
        started_at=ensure_timezone_aware(record.started_at),
        completed_at=ensure_timezone_aware(record.completed_at),
    )

