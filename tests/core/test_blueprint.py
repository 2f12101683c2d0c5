"""
Tests for blueprint validation.
"""
import pytest

from adaptive_core.core.cat.domain import ScalingMethod
from adaptive_core.core.cat.errors import BlueprintInvalid
from adaptive_core.schemas.blueprint import parse_blueprint
from tests.factories import blueprint_config


class TestValidBlueprint:
    def test_parses_defaults(self):
        blueprint = parse_blueprint(blueprint_config())
        assert blueprint.id == "bp-1"
        assert [a.bank_id for a in blueprint.bank_allocations] == ["math", "verbal"]
        assert blueprint.adaptive.termination.confidence_level == 0.95
        assert blueprint.scoring.scaling_method == ScalingMethod.IRT

    def test_fractional_percentages_sum_to_100(self):
        config = blueprint_config(
            banks=[("a", 33.3, 1, 5), ("b", 33.3, 1, 5), ("c", 33.4, 1, 5)]
        )
        assert len(parse_blueprint(config).bank_allocations) == 3

    def test_allocation_for(self):
        blueprint = parse_blueprint(blueprint_config())
        assert blueprint.allocation_for("verbal").min_questions == 2
        with pytest.raises(KeyError):
            blueprint.allocation_for("history")


class TestInvalidBlueprint:
    """Every allocation or settings violation raises BlueprintInvalid."""

    def test_percentages_must_sum_to_100(self):
        config = blueprint_config(banks=[("math", 60.0, 1, 5), ("verbal", 30.0, 1, 5)])
        with pytest.raises(BlueprintInvalid) as exc_info:
            parse_blueprint(config)
        assert "sum to 100" in exc_info.value.context["errors"]

    def test_duplicate_bank_ids(self):
        config = blueprint_config(banks=[("math", 50.0, 1, 5), ("math", 50.0, 1, 5)])
        with pytest.raises(BlueprintInvalid):
            parse_blueprint(config)

    def test_bank_min_above_max(self):
        config = blueprint_config(banks=[("math", 50.0, 6, 5), ("verbal", 50.0, 1, 5)])
        with pytest.raises(BlueprintInvalid):
            parse_blueprint(config)

    def test_global_min_above_max(self):
        with pytest.raises(BlueprintInvalid):
            parse_blueprint(blueprint_config(min_questions=12, max_questions=10))

    def test_bank_minimums_exceed_max_questions(self):
        config = blueprint_config(
            banks=[("math", 50.0, 6, 8), ("verbal", 50.0, 6, 8)], max_questions=10
        )
        with pytest.raises(BlueprintInvalid):
            parse_blueprint(config)

    @pytest.mark.parametrize("level", [0.0, 1.0, 1.5])
    def test_confidence_level_bounds(self, level):
        config = blueprint_config()
        config["adaptive"]["termination"]["confidence_level"] = level
        with pytest.raises(BlueprintInvalid):
            parse_blueprint(config)

    def test_reporting_scale_order(self):
        config = blueprint_config()
        config["scoring"]["reporting_scale"] = {"min": 800, "max": 200}
        with pytest.raises(BlueprintInvalid):
            parse_blueprint(config)

    def test_unknown_scaling_method(self):
        with pytest.raises(BlueprintInvalid):
            parse_blueprint(blueprint_config(scaling_method="stanine"))

    def test_empty_allocations(self):
        config = blueprint_config()
        config["bank_allocations"] = []
        with pytest.raises(BlueprintInvalid):
            parse_blueprint(config)

    def test_context_carries_blueprint_id(self):
        config = blueprint_config(blueprint_id="broken", min_questions=12, max_questions=10)
        with pytest.raises(BlueprintInvalid) as exc_info:
            parse_blueprint(config)
        assert exc_info.value.context["blueprint_id"] == "broken"
        assert exc_info.value.retryable is False
