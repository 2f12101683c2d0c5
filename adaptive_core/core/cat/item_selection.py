"""
Difficulty-matched item selection for adaptive sessions.

Selects the next item whose difficulty is closest to the current ability
estimate, subject to bank quotas and pilot exposure:

1. Stop if any stopping rule fires (see stopping_rules).
2. Restrict to banks still below max_questions.
3. If any bank is below its min_questions, restrict to those banks.
4. Within each bank, prefer validated items. Pilot items are offered only
   when the bank's validated pool is exhausted and the session is still
   under its pilot cap.
5. Rank by |theta(b) - theta|, breaking ties by higher discrimination and
   then by item id, so that selection is deterministic.

When no candidate remains, the session either terminates cleanly (every bank
minimum is satisfied) or raises InsufficientItemPool.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Sequence, Union

from adaptive_core.core.cat.bank_balancing import (
    bank_deficits,
    open_banks,
    pilot_item_cap,
)
from adaptive_core.core.cat.domain import AssessmentSession, Item
from adaptive_core.core.cat.errors import InsufficientItemPool
from adaptive_core.core.cat.repositories import ItemRepository
from adaptive_core.core.cat.scale import difficulty_to_theta
from adaptive_core.core.cat.stopping_rules import (
    REASON_POOL_EXHAUSTED,
    check_stopping_criteria,
)
from adaptive_core.schemas.blueprint import Blueprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Terminate:
    """Selector outcome meaning the session should be finalized."""

    reason: str
    time_forced: bool = False


@dataclass
class ItemCandidate:
    """An item with its distance from the current ability estimate."""

    item: Item
    distance: float


SelectionOutcome = Union[Item, Terminate]


def rank_candidates(items: Sequence[Item], theta: float) -> List[ItemCandidate]:
    """Order items by difficulty match, then discrimination, then id."""
    candidates = [
        ItemCandidate(item=item, distance=abs(difficulty_to_theta(item.difficulty) - theta))
        for item in items
    ]
    candidates.sort(
        key=lambda c: (c.distance, -c.item.effective_discrimination, c.item.id)
    )
    return candidates


class ItemSelector:
    """Chooses the next item for a session from the item repository."""

    def __init__(self, repository: ItemRepository, pilot_exposure_fraction: float):
        self.repository = repository
        self.pilot_exposure_fraction = pilot_exposure_fraction

    def pilot_cap(self, blueprint: Blueprint) -> int:
        return pilot_item_cap(blueprint, self.pilot_exposure_fraction)

    def check_pool_feasibility(self, blueprint: Blueprint) -> None:
        """
        Verify at begin that every bank minimum can be met.

        A bank's minimum may be covered by pilot items only up to the
        session's pilot cap, summed across banks.

        Raises:
            InsufficientItemPool: If any bank cannot reach its minimum.
        """
        cap = self.pilot_cap(blueprint)
        pilot_needed = 0
        for allocation in blueprint.bank_allocations:
            items = self.repository.list_eligible_items(allocation.bank_id, ())
            validated = sum(1 for i in items if i.is_validated)
            pilots = len(items) - validated
            shortfall = max(0, allocation.min_questions - validated)
            if shortfall > pilots:
                raise InsufficientItemPool(
                    "Bank cannot meet its minimum",
                    context={
                        "blueprint_id": blueprint.id,
                        "bank_id": allocation.bank_id,
                        "min_questions": allocation.min_questions,
                        "available": len(items),
                    },
                )
            pilot_needed += shortfall

        if pilot_needed > cap:
            raise InsufficientItemPool(
                "Bank minimums require more pilot items than the session allows",
                context={
                    "blueprint_id": blueprint.id,
                    "pilot_needed": pilot_needed,
                    "pilot_cap": cap,
                },
            )

    def _bank_pool(
        self, bank_id: str, exclude_ids: Sequence[str], pilot_allowed: bool
    ) -> List[Item]:
        """Validated items in a bank, or its pilots once those run out."""
        items = self.repository.list_eligible_items(bank_id, exclude_ids)
        validated = [i for i in items if i.is_validated]
        if validated:
            return validated
        if pilot_allowed:
            return [i for i in items if not i.is_validated]
        return []

    def select_next(
        self,
        session: AssessmentSession,
        blueprint: Blueprint,
        now: datetime,
    ) -> SelectionOutcome:
        """
        Pick the next item for a session or decide that it should end.

        Raises:
            InsufficientItemPool: If a bank minimum is unmet and no item can
                be served toward it.
        """
        decision = check_stopping_criteria(session, blueprint, now)
        if decision.should_stop:
            return Terminate(reason=decision.reason, time_forced=decision.time_forced)

        exclude_ids = sorted(session.administered_ids)
        pilot_allowed = session.pilot_count < self.pilot_cap(blueprint)

        pools: Dict[str, List[Item]] = {}
        for bank_id in open_banks(session.bank_counts, blueprint):
            pool = self._bank_pool(bank_id, exclude_ids, pilot_allowed)
            if pool:
                pools[bank_id] = pool

        deficits = bank_deficits(session.bank_counts, blueprint)
        deficit_pool = [i for b in deficits if b in pools for i in pools[b]]

        if deficit_pool:
            candidates = deficit_pool
        else:
            if deficits:
                logger.warning(
                    f"Session {session.id}: no items left in deficit banks "
                    f"{sorted(deficits)}; falling back to other open banks"
                )
            candidates = [i for pool in pools.values() for i in pool]

        if not candidates:
            if deficits:
                raise InsufficientItemPool(
                    "Item pool exhausted before bank minimums were met",
                    context={"session_id": session.id, "deficits": deficits},
                )
            logger.info(
                f"Session {session.id}: item pool exhausted after "
                f"{session.questions_asked} items"
            )
            return Terminate(reason=REASON_POOL_EXHAUSTED)

        selected = rank_candidates(candidates, session.theta)[0].item
        logger.debug(
            f"Session {session.id}: selected item {selected.id} "
            f"(bank={selected.bank_id}, difficulty={selected.difficulty}, "
            f"status={selected.validation_status.value}, theta={session.theta:.3f})"
        )
        return selected
