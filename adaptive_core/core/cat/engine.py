"""
AdaptiveSessionManager: state machine for adaptive assessment sessions.

Lifecycle:

    begin -> InProgress --(submit_answer / next_item)*--> Completed
                    \\--> Aborted

Every session carries at most one pending item. ``next_item`` returns it
unchanged until it is answered, so retried requests are idempotent.
``submit_answer`` only accepts the pending item; anything else raises
ItemMismatch and leaves the session untouched.

After each answer the manager re-estimates ability, queues a calibration
update for the answered item, and either selects the next item or
finalizes the session. Time limits are enforced lazily on every call.

Finished sessions are released from memory. A completed session stays
reachable through the result store, so ``complete`` and ``next_item`` keep
returning the same result; an aborted session is simply gone.

Operations on one session are serialized by a per-session lock acquired
without blocking: a second concurrent call receives SessionBusy.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterator, Optional, Tuple

from adaptive_core.core.cat.ability_estimation import AbilityEstimator, build_estimator
from adaptive_core.core.cat.calibration_dispatcher import CalibrationDispatcher
from adaptive_core.core.cat.domain import (
    AdministeredItemRecord,
    AnswerInput,
    AssessmentResult,
    AssessmentSession,
    Item,
    SessionStatus,
)
from adaptive_core.core.cat.errors import (
    BlueprintNotFound,
    InsufficientItemPool,
    ItemMismatch,
    SessionAlreadyCompleted,
    SessionBusy,
    SessionIncomplete,
    SessionNotFound,
)
from adaptive_core.core.cat.item_selection import ItemSelector, Terminate
from adaptive_core.core.cat.repositories import (
    BlueprintStore,
    InMemoryResultStore,
    ItemRepository,
    ResultStore,
)
from adaptive_core.core.cat.scale import probability_correct
from adaptive_core.core.cat.score_conversion import (
    NormalReferenceDistribution,
    ReferenceDistribution,
    build_result,
)
from adaptive_core.core.cat.stopping_rules import (
    REASON_TIME_LIMIT,
    check_stopping_criteria,
)
from adaptive_core.core.config import settings
from adaptive_core.core.datetime_utils import utc_now
from adaptive_core.schemas.blueprint import Blueprint, parse_blueprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeginResult:
    session_id: str
    first_item: Item
    theta: float
    se: float


@dataclass(frozen=True)
class NextItemOutcome:
    """Either the pending item or the terminal result."""

    item: Optional[Item] = None
    result: Optional[AssessmentResult] = None

    @property
    def completed(self) -> bool:
        return self.result is not None


@dataclass(frozen=True)
class SubmitOutcome:
    correct: bool
    theta: float
    se: float
    questions_asked: int
    should_continue: bool
    stop_reason: Optional[str] = None
    next_item: Optional[Item] = None
    result: Optional[AssessmentResult] = None


def _new_session_id() -> str:
    return uuid.uuid4().hex


class AdaptiveSessionManager:
    """Orchestrates selection, estimation, calibration and scoring per session."""

    def __init__(
        self,
        items: ItemRepository,
        blueprints: BlueprintStore,
        dispatcher: CalibrationDispatcher,
        results: Optional[ResultStore] = None,
        reference: Optional[ReferenceDistribution] = None,
        estimation_strategy: str = settings.CAT_ESTIMATION_STRATEGY,
        pilot_exposure_fraction: float = settings.CAT_PILOT_EXPOSURE_FRACTION,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_session_id,
    ):
        self.items = items
        self.blueprints = blueprints
        self.dispatcher = dispatcher
        self.results = results if results is not None else InMemoryResultStore()
        self.reference = reference or NormalReferenceDistribution(
            settings.REFERENCE_THETA_MEAN, settings.REFERENCE_THETA_SD
        )
        self.estimation_strategy = estimation_strategy
        self.selector = ItemSelector(items, pilot_exposure_fraction)
        self.clock = clock
        self.id_factory = id_factory

        self._registry_lock = threading.Lock()
        self._sessions: Dict[str, AssessmentSession] = {}
        self._session_locks: Dict[str, threading.Lock] = {}
        self._session_blueprints: Dict[str, Blueprint] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def begin(self, blueprint_id: str) -> BeginResult:
        """
        Start a session against a stored blueprint.

        Raises:
            BlueprintNotFound: If no blueprint has this id.
            BlueprintInvalid: If the stored configuration fails validation.
            InsufficientItemPool: If some bank minimum cannot be met.
        """
        config = self.blueprints.get(blueprint_id)
        if config is None:
            raise BlueprintNotFound(
                "Blueprint not found", context={"blueprint_id": blueprint_id}
            )
        blueprint = parse_blueprint(config)
        self.selector.check_pool_feasibility(blueprint)

        estimator = self._estimator_for(blueprint)
        theta, se = estimator.initial()
        now = self.clock()
        limit = blueprint.adaptive.termination.time_limit_seconds
        session = AssessmentSession(
            id=self.id_factory(),
            blueprint_id=blueprint.id,
            theta=theta,
            se=se,
            started_at=now,
            bank_counts={a.bank_id: 0 for a in blueprint.bank_allocations},
            deadline=now + timedelta(seconds=limit) if limit is not None else None,
        )

        outcome = self.selector.select_next(session, blueprint, now)
        if isinstance(outcome, Terminate):
            raise InsufficientItemPool(
                "No item available to start the session",
                context={"blueprint_id": blueprint.id, "reason": outcome.reason},
            )
        self._set_pending(session, outcome)

        with self._registry_lock:
            self._sessions[session.id] = session
            self._session_locks[session.id] = threading.Lock()
            self._session_blueprints[session.id] = blueprint

        logger.info(
            f"Began session {session.id} on blueprint {blueprint.id}: "
            f"theta={theta:.3f}, first_item={outcome.id}"
        )
        return BeginResult(session_id=session.id, first_item=outcome, theta=theta, se=se)

    def next_item(self, session_id: str) -> NextItemOutcome:
        """
        Return the pending item, or the result once the session has completed.

        Raises:
            SessionNotFound: Unknown or aborted session.
            SessionBusy: Another call for the session is in flight.
        """
        archived = self.archived_result(session_id)
        if archived is not None:
            return NextItemOutcome(result=archived)

        with self._guard(session_id) as (session, blueprint):
            if session.status == SessionStatus.ABORTED:
                raise SessionAlreadyCompleted(
                    "Session was aborted", context={"session_id": session_id}
                )
            if session.status == SessionStatus.IN_PROGRESS:
                now = self.clock()
                if not self._expire_if_due(session, blueprint, now):
                    if session.pending_item is None:
                        self._advance(session, blueprint, now)
            if session.status == SessionStatus.COMPLETED:
                return NextItemOutcome(result=session.result)
            return NextItemOutcome(item=session.pending_item)

    def submit_answer(
        self,
        session_id: str,
        item_id: str,
        answer: AnswerInput,
        time_spent_ms: int = 0,
    ) -> SubmitOutcome:
        """
        Grade and record an answer to the pending item.

        Raises:
            SessionNotFound, SessionBusy: Lookup and concurrency errors.
            SessionAlreadyCompleted: If the session is not in progress,
                including when its time limit has just expired.
            ItemMismatch: If item_id is not the pending item.
            ValueError: If time_spent_ms is negative.
        """
        if time_spent_ms < 0:
            raise ValueError(f"time_spent_ms must be non-negative, got {time_spent_ms}")
        self._reject_if_archived(session_id)

        with self._guard(session_id) as (session, blueprint):
            self._require_in_progress(session)
            now = self.clock()
            if self._expire_if_due(session, blueprint, now):
                raise SessionAlreadyCompleted(
                    "Session time limit expired",
                    context={"session_id": session_id, "stop_reason": REASON_TIME_LIMIT},
                )

            pending = session.pending_item
            if pending is None or pending.id != item_id:
                raise ItemMismatch(
                    "Answer does not match the pending item",
                    context={
                        "session_id": session_id,
                        "item_id": item_id,
                        "pending_item_id": pending.id if pending else None,
                    },
                )

            correct = pending.grade(answer)
            record = AdministeredItemRecord(
                item_id=pending.id,
                bank_id=pending.bank_id,
                presented_difficulty=pending.difficulty,
                correct=correct,
                time_spent_ms=time_spent_ms,
                discrimination=pending.effective_discrimination,
                probability_correct=probability_correct(session.theta, pending.difficulty),
            )
            session.administered.append(record)
            session.bank_counts[pending.bank_id] = (
                session.bank_counts.get(pending.bank_id, 0) + 1
            )
            session.pending_item = None

            theta, se = self._estimator_for(blueprint).estimate(session.administered)
            session.theta, session.se = theta, se

            logger.info(
                f"Session {session_id}: item {item_id} answered "
                f"{'correctly' if correct else 'incorrectly'}; "
                f"theta={theta:.3f}, se={se:.3f}, items={session.questions_asked}"
            )

            self.dispatcher.submit(pending.id, correct)
            self._advance(session, blueprint, now)

            completed = session.status == SessionStatus.COMPLETED
            return SubmitOutcome(
                correct=correct,
                theta=theta,
                se=se,
                questions_asked=session.questions_asked,
                should_continue=not completed,
                stop_reason=session.stop_reason,
                next_item=session.pending_item,
                result=session.result,
            )

    def complete(self, session_id: str) -> AssessmentResult:
        """
        Finalize a session, returning its result.

        Idempotent: once a session has completed, the archived result is
        returned unchanged. A session is only finalized here when one of its
        stopping rules holds, which normally means an earlier result store
        failure left it open.

        Raises:
            SessionIncomplete: If no stopping rule is met yet.
            SessionNotFound: Unknown or aborted session.
        """
        archived = self.archived_result(session_id)
        if archived is not None:
            return archived

        with self._guard(session_id) as (session, blueprint):
            if session.status == SessionStatus.ABORTED:
                raise SessionAlreadyCompleted(
                    "Session was aborted", context={"session_id": session_id}
                )
            if session.status == SessionStatus.IN_PROGRESS:
                now = self.clock()
                decision = check_stopping_criteria(session, blueprint, now)
                if not decision.should_stop:
                    raise SessionIncomplete(
                        "No stopping rule has been met",
                        context={
                            "session_id": session_id,
                            "questions_asked": session.questions_asked,
                        },
                    )
                self._finalize(session, blueprint, decision.reason, decision.time_forced, now)
            return session.result

    def abort(self, session_id: str, reason: Optional[str] = None) -> AssessmentSession:
        """
        Abandon an in-progress session without producing a result.

        The session is released immediately, so later calls for its id raise
        SessionNotFound. Calibration updates already queued for answered
        items still apply.

        Raises:
            SessionAlreadyCompleted: If the session already completed.
        """
        self._reject_if_archived(session_id)
        with self._guard(session_id) as (session, _):
            self._require_in_progress(session)
            session.status = SessionStatus.ABORTED
            session.pending_item = None
            session.abort_reason = reason
            session.completed_at = self.clock()
            self._release(session_id)
            logger.info(
                f"Aborted session {session_id} after {session.questions_asked} items "
                f"(reason: {reason or 'unspecified'})"
            )
            return session

    def get_session(self, session_id: str) -> AssessmentSession:
        """Return a live session, applying any due time limit first."""
        with self._guard(session_id) as (session, blueprint):
            if session.status == SessionStatus.IN_PROGRESS:
                self._expire_if_due(session, blueprint, self.clock())
            return session

    def archived_result(self, session_id: str) -> Optional[AssessmentResult]:
        """Result of a completed session that is no longer held in memory."""
        with self._registry_lock:
            if session_id in self._sessions:
                return None
        return self.results.get(session_id)

    @property
    def active_session_count(self) -> int:
        with self._registry_lock:
            return len(self._sessions)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _guard(self, session_id: str) -> Iterator[Tuple[AssessmentSession, Blueprint]]:
        with self._registry_lock:
            session = self._sessions.get(session_id)
            lock = self._session_locks.get(session_id)
            blueprint = self._session_blueprints.get(session_id)
        if session is None or lock is None or blueprint is None:
            raise SessionNotFound("Session not found", context={"session_id": session_id})
        if not lock.acquire(blocking=False):
            raise SessionBusy(
                "Another request for this session is in progress",
                context={"session_id": session_id},
            )
        try:
            yield session, blueprint
        finally:
            lock.release()

    def _release(self, session_id: str) -> None:
        with self._registry_lock:
            self._sessions.pop(session_id, None)
            self._session_locks.pop(session_id, None)
            self._session_blueprints.pop(session_id, None)

    def _reject_if_archived(self, session_id: str) -> None:
        if self.archived_result(session_id) is not None:
            raise SessionAlreadyCompleted(
                "Session already completed", context={"session_id": session_id}
            )

    def _estimator_for(self, blueprint: Blueprint) -> AbilityEstimator:
        adaptive = blueprint.adaptive
        return build_estimator(
            adaptive.starting_difficulty,
            adaptive.difficulty_adjustment,
            self.estimation_strategy,
        )

    @staticmethod
    def _require_in_progress(session: AssessmentSession) -> None:
        if session.status != SessionStatus.IN_PROGRESS:
            raise SessionAlreadyCompleted(
                "Session is no longer in progress",
                context={"session_id": session.id, "status": session.status.value},
            )

    @staticmethod
    def _set_pending(session: AssessmentSession, item: Item) -> None:
        session.pending_item = item
        if not item.is_validated:
            session.pilot_count += 1

    def _expire_if_due(
        self, session: AssessmentSession, blueprint: Blueprint, now: datetime
    ) -> bool:
        if session.deadline is None or now < session.deadline:
            return False
        logger.info(
            f"Session {session.id}: time limit reached with "
            f"{session.questions_asked} items answered"
        )
        self._finalize(session, blueprint, REASON_TIME_LIMIT, True, now)
        return True

    def _advance(
        self, session: AssessmentSession, blueprint: Blueprint, now: datetime
    ) -> None:
        outcome = self.selector.select_next(session, blueprint, now)
        if isinstance(outcome, Terminate):
            self._finalize(session, blueprint, outcome.reason, outcome.time_forced, now)
        else:
            self._set_pending(session, outcome)

    def _finalize(
        self,
        session: AssessmentSession,
        blueprint: Blueprint,
        reason: str,
        time_forced: bool,
        now: datetime,
    ) -> None:
        # Persist before mutating so a store failure leaves the session in progress
        result = build_result(session, blueprint, self.reference, reason, time_forced, now)
        self.results.save(result)

        session.status = SessionStatus.COMPLETED
        session.pending_item = None
        session.completed_at = now
        session.stop_reason = reason
        session.time_forced = time_forced
        session.result = result
        self._release(session.id)
        logger.info(
            f"Completed session {session.id}: reason={reason}, "
            f"time_forced={time_forced}, items={session.questions_asked}"
        )
