"""
Bank quota tracking for adaptive item selection.

Enforces per-bank allocation constraints from the blueprint:

    Hard constraint: a bank below its min_questions is served before any bank
    that has already met its minimum.

    Cap: a bank that has reached max_questions is closed to further items.

Pilot exposure is capped per session so that unvalidated items never make up
more than a small share of any student's test.
"""

import logging
import math
from typing import Dict, List, Optional

from adaptive_core.schemas.blueprint import Blueprint

logger = logging.getLogger(__name__)


def bank_deficits(bank_counts: Dict[str, int], blueprint: Blueprint) -> Dict[str, int]:
    """
    Return banks still below their minimum, with the number of items missing.

    Preserves the blueprint's allocation order.
    """
    deficits: Dict[str, int] = {}
    for allocation in blueprint.bank_allocations:
        count = bank_counts.get(allocation.bank_id, 0)
        if count < allocation.min_questions:
            deficits[allocation.bank_id] = allocation.min_questions - count
    return deficits


def open_banks(bank_counts: Dict[str, int], blueprint: Blueprint) -> List[str]:
    """Banks that can still receive items (count below max_questions)."""
    return [
        allocation.bank_id
        for allocation in blueprint.bank_allocations
        if bank_counts.get(allocation.bank_id, 0) < allocation.max_questions
    ]


def is_quota_satisfied(bank_counts: Dict[str, int], blueprint: Blueprint) -> bool:
    """Check whether every bank has met its minimum."""
    deficits = bank_deficits(bank_counts, blueprint)
    if deficits:
        logger.debug(f"Bank minimums not met: {deficits}")
        return False
    return True


def all_banks_at_max(bank_counts: Dict[str, int], blueprint: Blueprint) -> bool:
    return not open_banks(bank_counts, blueprint)


def pilot_item_cap(blueprint: Blueprint, exposure_fraction: float) -> int:
    """
    Pilot items a single session may receive.

    Uses the blueprint's explicit pilot_item_cap when set; otherwise a share
    of max_questions (at least one item, so new items can gather responses).
    """
    explicit: Optional[int] = blueprint.adaptive.pilot_item_cap
    if explicit is not None:
        return explicit
    if exposure_fraction <= 0:
        return 0
    return max(1, math.floor(blueprint.adaptive.max_questions * exposure_fraction))
