"""
Tests for stopping rules: each criterion independently and in priority order.
"""
from datetime import timedelta

import pytest

from adaptive_core.core.cat.domain import AdministeredItemRecord, AssessmentSession
from adaptive_core.core.cat.stopping_rules import (
    REASON_BANKS_AT_MAX,
    REASON_MAX_ITEMS,
    REASON_SE_THRESHOLD,
    REASON_TIME_LIMIT,
    check_stopping_criteria,
)
from adaptive_core.schemas.blueprint import parse_blueprint
from tests.factories import FakeClock, blueprint_config


def _session(bank_counts, se=1.0, started_at=None):
    records = [
        AdministeredItemRecord(
            item_id=f"{bank}-{i}",
            bank_id=bank,
            presented_difficulty=5.0,
            correct=True,
            time_spent_ms=1000,
        )
        for bank, count in bank_counts.items()
        for i in range(count)
    ]
    return AssessmentSession(
        id="s-1",
        blueprint_id="bp-1",
        theta=0.0,
        se=se,
        started_at=started_at or FakeClock().now,
        bank_counts=dict(bank_counts),
        administered=records,
    )


@pytest.fixture
def blueprint():
    return parse_blueprint(blueprint_config(time_limit_seconds=600))


@pytest.fixture
def now():
    return FakeClock().now


class TestTimeLimit:
    def test_time_limit_forces_stop_below_minimums(self, blueprint, now):
        session = _session({"math": 1, "verbal": 0})
        decision = check_stopping_criteria(session, blueprint, now + timedelta(seconds=600))
        assert decision.should_stop is True
        assert decision.reason == REASON_TIME_LIMIT
        assert decision.time_forced is True

    def test_before_limit_continues(self, blueprint, now):
        session = _session({"math": 1, "verbal": 0})
        decision = check_stopping_criteria(session, blueprint, now + timedelta(seconds=599))
        assert decision.should_stop is False

    def test_time_limit_outranks_max_items(self, blueprint, now):
        session = _session({"math": 5, "verbal": 5})
        decision = check_stopping_criteria(session, blueprint, now + timedelta(seconds=601))
        assert decision.reason == REASON_TIME_LIMIT


class TestMaxItems:
    def test_max_items_stops_with_high_se(self, blueprint, now):
        session = _session({"math": 5, "verbal": 5}, se=2.0)
        decision = check_stopping_criteria(session, blueprint, now)
        assert decision.should_stop is True
        assert decision.reason == REASON_MAX_ITEMS
        assert decision.time_forced is False


class TestBanksAtMax:
    def test_all_banks_full(self, now):
        blueprint = parse_blueprint(
            blueprint_config(
                banks=[("math", 50.0, 1, 2), ("verbal", 50.0, 1, 2)],
                min_questions=2,
                max_questions=10,
            )
        )
        session = _session({"math": 2, "verbal": 2}, se=2.0)
        decision = check_stopping_criteria(session, blueprint, now)
        assert decision.reason == REASON_BANKS_AT_MAX


class TestStandardErrorThreshold:
    def test_se_met_with_minimums(self, blueprint, now):
        session = _session({"math": 2, "verbal": 2}, se=0.25)
        decision = check_stopping_criteria(session, blueprint, now)
        assert decision.should_stop is True
        assert decision.reason == REASON_SE_THRESHOLD

    def test_se_at_threshold_stops(self, blueprint, now):
        session = _session({"math": 2, "verbal": 2}, se=0.3)
        assert check_stopping_criteria(session, blueprint, now).should_stop is True

    def test_bank_minimum_blocks_se_stop(self, blueprint, now):
        session = _session({"math": 4, "verbal": 1}, se=0.1)
        decision = check_stopping_criteria(session, blueprint, now)
        assert decision.should_stop is False
        assert decision.details["bank_minimums_met"] is False

    def test_min_questions_blocks_se_stop(self, now):
        blueprint = parse_blueprint(blueprint_config(min_questions=6))
        session = _session({"math": 2, "verbal": 2}, se=0.1)
        decision = check_stopping_criteria(session, blueprint, now)
        assert decision.should_stop is False
        assert decision.details["min_items_met"] is False

    def test_se_above_threshold_continues(self, blueprint, now):
        session = _session({"math": 3, "verbal": 3}, se=0.31)
        assert check_stopping_criteria(session, blueprint, now).should_stop is False


def test_negative_se_rejected(blueprint, now):
    with pytest.raises(ValueError):
        check_stopping_criteria(_session({"math": 1}, se=-0.1), blueprint, now)
