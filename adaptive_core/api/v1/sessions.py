"""
Adaptive session endpoints.

Endpoints are synchronous so that FastAPI runs them on its threadpool; the
session manager serializes work per session with its own locks.
"""
import logging

from fastapi import APIRouter, Depends, status

from adaptive_core.api.v1.dependencies import get_session_manager
from adaptive_core.core.cat.engine import AdaptiveSessionManager
from adaptive_core.core.cat.errors import AssessmentError
from adaptive_core.core.error_responses import raise_for_assessment_error
from adaptive_core.schemas.sessions import (
    AbortSessionRequest,
    AssessmentResultResponse,
    BeginSessionRequest,
    BeginSessionResponse,
    ItemResponse,
    NextItemResponse,
    SessionStatusResponse,
    SubmitAnswerRequest,
    SubmitAnswerResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "", response_model=BeginSessionResponse, status_code=status.HTTP_201_CREATED
)
def begin_session(
    request: BeginSessionRequest,
    manager: AdaptiveSessionManager = Depends(get_session_manager),
):
    """
    Start an adaptive session against a registered blueprint.

    Returns the first item immediately.
    """
    try:
        begun = manager.begin(request.blueprint_id)
    except AssessmentError as e:
        raise_for_assessment_error(e)

    return BeginSessionResponse(
        session_id=begun.session_id,
        first_item=ItemResponse.from_item(begun.first_item),
        theta=begun.theta,
        se=begun.se,
    )


@router.get("/{session_id}/next-item", response_model=NextItemResponse)
def get_next_item(
    session_id: str,
    manager: AdaptiveSessionManager = Depends(get_session_manager),
):
    """
    Return the session's pending item, or its result once completed.

    Repeated calls return the same item until it is answered.
    """
    try:
        outcome = manager.next_item(session_id)
    except AssessmentError as e:
        raise_for_assessment_error(e)

    if outcome.completed:
        return NextItemResponse(
            status="completed",
            result=AssessmentResultResponse.from_result(outcome.result),
        )
    return NextItemResponse(status="item", item=ItemResponse.from_item(outcome.item))


@router.post("/{session_id}/answers", response_model=SubmitAnswerResponse)
def submit_answer(
    session_id: str,
    request: SubmitAnswerRequest,
    manager: AdaptiveSessionManager = Depends(get_session_manager),
):
    """Answer the pending item and receive the next one (or the result)."""
    try:
        outcome = manager.submit_answer(
            session_id,
            request.item_id,
            request.answers,
            time_spent_ms=request.time_spent_ms,
        )
    except AssessmentError as e:
        raise_for_assessment_error(e)

    return SubmitAnswerResponse(
        correct=outcome.correct,
        theta=outcome.theta,
        se=outcome.se,
        questions_asked=outcome.questions_asked,
        should_continue=outcome.should_continue,
        stop_reason=outcome.stop_reason,
        next_item=(
            ItemResponse.from_item(outcome.next_item) if outcome.next_item else None
        ),
        result=(
            AssessmentResultResponse.from_result(outcome.result)
            if outcome.result
            else None
        ),
    )


@router.post("/{session_id}/complete", response_model=AssessmentResultResponse)
def complete_session(
    session_id: str,
    manager: AdaptiveSessionManager = Depends(get_session_manager),
):
    """
    Finalize the session. Idempotent once completed.

    Returns 409 while no stopping rule has been met.
    """
    try:
        result = manager.complete(session_id)
    except AssessmentError as e:
        raise_for_assessment_error(e)

    return AssessmentResultResponse.from_result(result)


@router.post("/{session_id}/abort", response_model=SessionStatusResponse)
def abort_session(
    session_id: str,
    request: AbortSessionRequest,
    manager: AdaptiveSessionManager = Depends(get_session_manager),
):
    """Abandon an in-progress session without a result."""
    try:
        session = manager.abort(session_id, request.reason)
    except AssessmentError as e:
        raise_for_assessment_error(e)

    return SessionStatusResponse.from_session(session)


@router.get("/{session_id}", response_model=SessionStatusResponse)
def get_session_status(
    session_id: str,
    manager: AdaptiveSessionManager = Depends(get_session_manager),
):
    """Status of a live session, or of a completed one from its archived result."""
    archived = manager.archived_result(session_id)
    if archived is not None:
        return SessionStatusResponse.from_result(archived)
    try:
        session = manager.get_session(session_id)
    except AssessmentError as e:
        raise_for_assessment_error(e)

    return SessionStatusResponse.from_session(session)
