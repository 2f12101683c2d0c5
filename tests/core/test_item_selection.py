"""
Tests for difficulty-matched item selection with bank quotas and pilot caps.
"""
import pytest

from adaptive_core.core.cat.domain import (
    AdministeredItemRecord,
    AssessmentSession,
    Item,
    ValidationStatus,
)
from adaptive_core.core.cat.errors import InsufficientItemPool
from adaptive_core.core.cat.item_selection import ItemSelector, Terminate, rank_candidates
from adaptive_core.core.cat.repositories import InMemoryItemRepository
from adaptive_core.core.cat.scale import difficulty_to_theta
from adaptive_core.core.cat.stopping_rules import REASON_MAX_ITEMS, REASON_POOL_EXHAUSTED
from adaptive_core.schemas.blueprint import parse_blueprint
from tests.factories import FakeClock, blueprint_config, make_items


def _session(theta=0.0, bank_counts=None, pilot_count=0):
    return AssessmentSession(
        id="s-1",
        blueprint_id="bp-1",
        theta=theta,
        se=5.0,
        started_at=FakeClock().now,
        bank_counts=bank_counts or {"math": 0, "verbal": 0},
        pilot_count=pilot_count,
    )


def _selector(items, fraction=0.1):
    return ItemSelector(InMemoryItemRepository(items), pilot_exposure_fraction=fraction)


@pytest.fixture
def now():
    return FakeClock().now


class TestRankCandidates:
    def test_closest_difficulty_first(self):
        items = make_items("math", [2.0, 5.0, 9.0])
        ranked = rank_candidates(items, difficulty_to_theta(5.0))
        assert ranked[0].item.difficulty == 5.0

    def test_tie_broken_by_discrimination(self):
        low = make_items("math", [5.0], prefix="low", discrimination=1.0)
        high = make_items("math", [5.0], prefix="high", discrimination=1.5)
        ranked = rank_candidates(low + high, 0.0)
        assert ranked[0].item.id == "high-00"

    def test_tie_broken_by_id(self):
        items = make_items("math", [5.0], prefix="b") + make_items("math", [5.0], prefix="a")
        assert rank_candidates(items, 0.0)[0].item.id == "a-00"

    def test_pilot_discrimination_is_neutral(self):
        pilot = make_items(
            "math", [5.0], prefix="a", status=ValidationStatus.PILOT, discrimination=3.0
        )
        validated = make_items("math", [5.0], prefix="b", discrimination=1.2)
        assert rank_candidates(pilot + validated, 0.0)[0].item.id == "b-00"


class TestSelectNext:
    def test_selects_item_matching_theta(self, now):
        blueprint = parse_blueprint(blueprint_config())
        selector = _selector(make_items("math", range(1, 11)) + make_items("verbal", [1.0]))
        session = _session(theta=difficulty_to_theta(7.0), bank_counts={"math": 2, "verbal": 2})
        selected = selector.select_next(session, blueprint, now)
        assert isinstance(selected, Item)
        assert selected.difficulty == 7.0

    def test_deficit_bank_served_first(self, now):
        blueprint = parse_blueprint(blueprint_config())
        selector = _selector(make_items("math", [5.0]) + make_items("verbal", [10.0]))
        session = _session(theta=difficulty_to_theta(5.0), bank_counts={"math": 2, "verbal": 0})
        selected = selector.select_next(session, blueprint, now)
        assert selected.bank_id == "verbal"

    def test_full_bank_closed(self, now):
        blueprint = parse_blueprint(
            blueprint_config(banks=[("math", 50.0, 0, 2), ("verbal", 50.0, 0, 10)])
        )
        selector = _selector(make_items("math", [5.0]) + make_items("verbal", [10.0]))
        session = _session(theta=difficulty_to_theta(5.0), bank_counts={"math": 2, "verbal": 2})
        assert selector.select_next(session, blueprint, now).bank_id == "verbal"

    def test_administered_items_excluded(self, now):
        blueprint = parse_blueprint(blueprint_config())
        items = make_items("math", [5.0, 6.0]) + make_items("verbal", [5.0])
        selector = _selector(items)
        session = _session(theta=difficulty_to_theta(5.0), bank_counts={"math": 2, "verbal": 2})
        session.pending_item = items[0]
        selected = selector.select_next(session, blueprint, now)
        assert selected.id != items[0].id

    def test_stopping_rule_returns_terminate(self, now):
        blueprint = parse_blueprint(blueprint_config(max_questions=4))
        selector = _selector(make_items("math", [5.0]))
        session = _session(bank_counts={"math": 2, "verbal": 2})
        session.administered.extend(
            AdministeredItemRecord(
                item_id=f"done-{i}",
                bank_id="math" if i < 2 else "verbal",
                presented_difficulty=5.0,
                correct=True,
                time_spent_ms=500,
            )
            for i in range(4)
        )
        outcome = selector.select_next(session, blueprint, now)
        assert outcome == Terminate(reason=REASON_MAX_ITEMS)

    def test_pool_exhausted_after_minimums(self, now):
        blueprint = parse_blueprint(blueprint_config())
        selector = _selector([])
        session = _session(bank_counts={"math": 2, "verbal": 2})
        assert selector.select_next(session, blueprint, now) == Terminate(
            reason=REASON_POOL_EXHAUSTED
        )

    def test_pool_exhausted_before_minimums_raises(self, now):
        blueprint = parse_blueprint(blueprint_config())
        selector = _selector([])
        session = _session(bank_counts={"math": 2, "verbal": 1})
        with pytest.raises(InsufficientItemPool):
            selector.select_next(session, blueprint, now)


class TestPilotItems:
    def test_validated_preferred_over_pilot(self, now):
        blueprint = parse_blueprint(blueprint_config())
        items = make_items("math", [5.0], prefix="pilot", status=ValidationStatus.PILOT)
        items += make_items("math", [9.0], prefix="valid")
        selector = _selector(items)
        session = _session(theta=difficulty_to_theta(5.0), bank_counts={"math": 0, "verbal": 2})
        assert selector.select_next(session, blueprint, now).id == "valid-00"

    def test_pilot_used_when_validated_exhausted(self, now):
        blueprint = parse_blueprint(blueprint_config())
        items = make_items("math", [5.0], status=ValidationStatus.PILOT)
        selector = _selector(items)
        session = _session(bank_counts={"math": 0, "verbal": 2})
        assert selector.select_next(session, blueprint, now).id == "math-00"

    def test_pilot_cap_reached(self, now):
        blueprint = parse_blueprint(blueprint_config(pilot_item_cap=1))
        items = make_items("math", [5.0], status=ValidationStatus.PILOT)
        selector = _selector(items)
        session = _session(bank_counts={"math": 2, "verbal": 2}, pilot_count=1)
        assert selector.select_next(session, blueprint, now) == Terminate(
            reason=REASON_POOL_EXHAUSTED
        )

    def test_default_cap_is_share_of_max_questions(self):
        blueprint = parse_blueprint(blueprint_config(max_questions=20))
        assert _selector([], fraction=0.1).pilot_cap(blueprint) == 2

    def test_default_cap_at_least_one(self):
        blueprint = parse_blueprint(blueprint_config(max_questions=5))
        assert _selector([], fraction=0.1).pilot_cap(blueprint) == 1


class TestPoolFeasibility:
    def test_feasible_pool(self):
        blueprint = parse_blueprint(blueprint_config())
        selector = _selector(make_items("math", [1, 2]) + make_items("verbal", [1, 2]))
        selector.check_pool_feasibility(blueprint)

    def test_bank_too_small(self):
        blueprint = parse_blueprint(blueprint_config())
        selector = _selector(make_items("math", [1, 2]) + make_items("verbal", [1]))
        with pytest.raises(InsufficientItemPool) as exc_info:
            selector.check_pool_feasibility(blueprint)
        assert exc_info.value.context["bank_id"] == "verbal"

    def test_pilots_cover_shortfall_within_cap(self):
        blueprint = parse_blueprint(blueprint_config(pilot_item_cap=1))
        items = make_items("math", [1, 2]) + make_items("verbal", [1])
        items += make_items("verbal", [3], prefix="p", status=ValidationStatus.PILOT)
        _selector(items).check_pool_feasibility(blueprint)

    def test_pilot_shortfall_exceeds_cap(self):
        blueprint = parse_blueprint(blueprint_config(pilot_item_cap=1))
        items = make_items("math", [1, 2])
        items += make_items("verbal", [3, 4], status=ValidationStatus.PILOT)
        with pytest.raises(InsufficientItemPool):
            _selector(items).check_pool_feasibility(blueprint)
