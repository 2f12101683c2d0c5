"""
Collaborator interfaces consumed by the adaptive core, with in-memory
implementations.

The item repository, blueprint store and result store are external to the
adaptive loop. The SQL-backed implementations live in
``adaptive_core.models.repositories``; the in-memory versions here back unit
tests, simulations and single-process deployments.
"""

import dataclasses
import threading
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional, Protocol

from adaptive_core.core.cat.domain import AssessmentResult, Item, ValidationStatus


class ItemRepository(Protocol):
    """Source of items for selection; the only writer is calibration."""

    def list_eligible_items(
        self, bank_id: str, exclude_ids: Collection[str]
    ) -> List[Item]:
        """Active items in a bank, minus the excluded ids, ordered by id."""
        ...

    def list_bank_items(self, bank_id: str) -> List[Item]:
        ...

    def get_item(self, item_id: str) -> Optional[Item]:
        ...

    def apply_calibration(
        self,
        item_id: str,
        difficulty: float,
        validation_status: ValidationStatus,
        version: int,
    ) -> bool:
        """Write calibrated difficulty/status if ``version`` is newer.

        Returns:
            True if the item was updated, False if a newer version was
            already applied (or the item does not exist).
        """
        ...


class BlueprintStore(Protocol):
    """Supplies raw blueprint configuration; validation happens at begin."""

    def get(self, blueprint_id: str) -> Optional[Mapping[str, Any]]:
        ...

    def save(self, blueprint_id: str, config: Mapping[str, Any]) -> None:
        ...


class ResultStore(Protocol):
    """Archive for terminal session results."""

    def save(self, result: AssessmentResult) -> None:
        ...

    def get(self, session_id: str) -> Optional[AssessmentResult]:
        ...


class InMemoryItemRepository:
    """Thread-safe dictionary-backed item repository."""

    def __init__(self, items: Optional[Iterable[Item]] = None):
        self._lock = threading.Lock()
        self._items: Dict[str, Item] = {}
        for item in items or []:
            self._items[item.id] = item

    def add(self, item: Item) -> None:
        with self._lock:
            self._items[item.id] = item

    def list_eligible_items(
        self, bank_id: str, exclude_ids: Collection[str]
    ) -> List[Item]:
        excluded = set(exclude_ids)
        with self._lock:
            items = [
                item
                for item in self._items.values()
                if item.bank_id == bank_id and item.id not in excluded
            ]
        return sorted(items, key=lambda i: i.id)

    def list_bank_items(self, bank_id: str) -> List[Item]:
        return self.list_eligible_items(bank_id, ())

    def get_item(self, item_id: str) -> Optional[Item]:
        with self._lock:
            return self._items.get(item_id)

    def apply_calibration(
        self,
        item_id: str,
        difficulty: float,
        validation_status: ValidationStatus,
        version: int,
    ) -> bool:
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.calibration_version >= version:
                return False
            self._items[item_id] = dataclasses.replace(
                item,
                difficulty=difficulty,
                validation_status=validation_status,
                calibration_version=version,
            )
            return True


class InMemoryBlueprintStore:
    def __init__(self, blueprints: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._lock = threading.Lock()
        self._blueprints: Dict[str, Dict[str, Any]] = {
            k: dict(v) for k, v in (blueprints or {}).items()
        }

    def get(self, blueprint_id: str) -> Optional[Mapping[str, Any]]:
        with self._lock:
            config = self._blueprints.get(blueprint_id)
            return dict(config) if config is not None else None

    def save(self, blueprint_id: str, config: Mapping[str, Any]) -> None:
        with self._lock:
            self._blueprints[blueprint_id] = dict(config)


class InMemoryResultStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._results: Dict[str, AssessmentResult] = {}

    def save(self, result: AssessmentResult) -> None:
        with self._lock:
            self._results[result.session_id] = result

    def get(self, session_id: str) -> Optional[AssessmentResult]:
        with self._lock:
            return self._results.get(session_id)
