"""
Blueprint registration endpoints (admin).
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, status

from adaptive_core.api.v1.dependencies import get_services, verify_admin_token
from adaptive_core.core.cat.errors import AssessmentError
from adaptive_core.core.error_responses import (
    ErrorMessages,
    raise_for_assessment_error,
    raise_not_found,
)
from adaptive_core.core.services import AssessmentServices
from adaptive_core.schemas.blueprint import Blueprint, parse_blueprint

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=Blueprint,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_admin_token)],
)
def register_blueprint(
    config: Dict[str, Any] = Body(...),
    services: AssessmentServices = Depends(get_services),
):
    """
    Validate and store a blueprint.

    Invalid blueprints are rejected with 422 and never stored.
    """
    try:
        blueprint = parse_blueprint(config)
    except AssessmentError as e:
        raise_for_assessment_error(e)

    services.blueprints.save(blueprint.id, blueprint.model_dump(mode="json"))
    logger.info(
        f"Registered blueprint {blueprint.id} with "
        f"{len(blueprint.bank_allocations)} bank allocations"
    )
    return blueprint


@router.get(
    "/{blueprint_id}",
    response_model=Blueprint,
    dependencies=[Depends(verify_admin_token)],
)
def get_blueprint(
    blueprint_id: str,
    services: AssessmentServices = Depends(get_services),
):
    config = services.blueprints.get(blueprint_id)
    if config is None:
        raise_not_found(ErrorMessages.BLUEPRINT_NOT_FOUND)
    try:
        return parse_blueprint(config)
    except AssessmentError as e:
        raise_for_assessment_error(e)
