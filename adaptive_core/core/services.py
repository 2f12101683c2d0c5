"""
Wiring of the adaptive core collaborators.

``build_sql_services`` backs every store with the database; in-memory
services back tests and single-process simulations. The application keeps
one AssessmentServices instance on ``app.state``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.orm import sessionmaker

from adaptive_core.core.cat.calibration import DifficultyCalibrationEngine
from adaptive_core.core.cat.calibration_dispatcher import CalibrationDispatcher
from adaptive_core.core.cat.calibration_store import (
    CalibrationStore,
    InMemoryCalibrationStore,
)
from adaptive_core.core.cat.domain import Item
from adaptive_core.core.cat.engine import AdaptiveSessionManager
from adaptive_core.core.cat.repositories import (
    BlueprintStore,
    InMemoryBlueprintStore,
    InMemoryItemRepository,
    InMemoryResultStore,
    ItemRepository,
    ResultStore,
)

logger = logging.getLogger(__name__)


@dataclass
class AssessmentServices:
    items: ItemRepository
    blueprints: BlueprintStore
    results: ResultStore
    calibration_store: CalibrationStore
    calibration: DifficultyCalibrationEngine
    dispatcher: CalibrationDispatcher
    sessions: AdaptiveSessionManager

    def shutdown(self) -> None:
        self.dispatcher.shutdown(wait_for_pending=True)


def assemble_services(
    items: ItemRepository,
    blueprints: BlueprintStore,
    results: ResultStore,
    calibration_store: CalibrationStore,
    synchronous_calibration: bool = False,
    **manager_kwargs: Any,
) -> AssessmentServices:
    calibration = DifficultyCalibrationEngine(calibration_store, items)
    dispatcher = CalibrationDispatcher(calibration, synchronous=synchronous_calibration)
    sessions = AdaptiveSessionManager(
        items=items,
        blueprints=blueprints,
        dispatcher=dispatcher,
        results=results,
        **manager_kwargs,
    )
    return AssessmentServices(
        items=items,
        blueprints=blueprints,
        results=results,
        calibration_store=calibration_store,
        calibration=calibration,
        dispatcher=dispatcher,
        sessions=sessions,
    )


def build_in_memory_services(
    items: Iterable[Item] = (),
    blueprints: Optional[Mapping[str, Mapping[str, Any]]] = None,
    synchronous_calibration: bool = True,
    **manager_kwargs: Any,
) -> AssessmentServices:
    return assemble_services(
        items=InMemoryItemRepository(items),
        blueprints=InMemoryBlueprintStore(blueprints),
        results=InMemoryResultStore(),
        calibration_store=InMemoryCalibrationStore(),
        synchronous_calibration=synchronous_calibration,
        **manager_kwargs,
    )


def build_sql_services(
    session_factory: sessionmaker,
    synchronous_calibration: bool = False,
    **manager_kwargs: Any,
) -> AssessmentServices:
    from adaptive_core.models.repositories import (
        SqlBlueprintStore,
        SqlCalibrationStore,
        SqlItemRepository,
        SqlResultStore,
    )

    logger.info("Building SQL-backed assessment services")
    return assemble_services(
        items=SqlItemRepository(session_factory),
        blueprints=SqlBlueprintStore(session_factory),
        results=SqlResultStore(session_factory),
        calibration_store=SqlCalibrationStore(session_factory),
        synchronous_calibration=synchronous_calibration,
        **manager_kwargs,
    )
