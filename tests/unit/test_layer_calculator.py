"""
Unit Tests for the Single Coverage Layer Calculator.
"""

from decimal import Decimal

import pytest

from coverage_engine.core.enums import AdjustmentStatus, LayerStatus
from coverage_engine.schemas.coverage import CoverageLayer
from coverage_engine.services.adjustment_engine import AdjustmentEngine
from coverage_engine.services.layer_calculator import LayerCalculator


@pytest.fixture
def calculator(fixed_clock):
    return LayerCalculator(adjustment_engine=AdjustmentEngine(now=fixed_clock))


def make_layer(**overrides) -> CoverageLayer:
    data = {"insurance_id": "ins-1", "priority": 1, "percentage": Decimal("50")}
    data.update(overrides)
    return CoverageLayer(**data)


@pytest.mark.unit
class TestLayerArithmetic:
    """Percentage, cap, floor and clamping."""

    def test_percentage_of_remaining(self, calculator, fixed_now):
        outcome = calculator.compute_layer(make_layer(), Decimal("1000"), fixed_now)

        assert outcome.status == LayerStatus.COMPUTED
        assert outcome.result.calculated_coverage == Decimal("500")
        assert outcome.result.actual_coverage == Decimal("500")
        assert outcome.result.is_applied is True

    def test_zero_percentage_covers_full_remainder(self, calculator, fixed_now):
        outcome = calculator.compute_layer(
            make_layer(percentage=Decimal("0")), Decimal("750"), fixed_now
        )

        assert outcome.result.actual_coverage == Decimal("750")

    def test_cap(self, calculator, fixed_now):
        outcome = calculator.compute_layer(
            make_layer(percentage=Decimal("70"), max_amount=Decimal("500000")),
            Decimal("1000000"),
            fixed_now,
        )

        assert outcome.result.calculated_coverage == Decimal("500000")

    def test_floor(self, calculator, fixed_now):
        outcome = calculator.compute_layer(
            make_layer(percentage=Decimal("10"), min_amount=Decimal("300")),
            Decimal("1000"),
            fixed_now,
        )

        assert outcome.result.calculated_coverage == Decimal("300")
        assert outcome.result.actual_coverage == Decimal("300")

    def test_floor_wins_when_above_cap(self, calculator, fixed_now):
        """Cap is applied first, then the floor overrides it."""
        outcome = calculator.compute_layer(
            make_layer(
                percentage=Decimal("50"),
                max_amount=Decimal("100"),
                min_amount=Decimal("200"),
            ),
            Decimal("1000"),
            fixed_now,
        )

        assert outcome.result.calculated_coverage == Decimal("200")
        assert outcome.result.actual_coverage == Decimal("200")

    def test_actual_never_exceeds_remaining(self, calculator, fixed_now):
        outcome = calculator.compute_layer(
            make_layer(min_amount=Decimal("900")), Decimal("400"), fixed_now
        )

        assert outcome.result.calculated_coverage == Decimal("900")
        assert outcome.result.actual_coverage == Decimal("400")

    def test_negative_adjustment_clamps_to_zero(self, calculator, fixed_now):
        outcome = calculator.compute_layer(
            make_layer(custom_settings={"multiplier": "-2"}), Decimal("1000"), fixed_now
        )

        assert outcome.result.calculated_coverage == Decimal("-1000")
        assert outcome.result.actual_coverage == Decimal("0")
        assert outcome.result.is_applied is False

    def test_not_applied_when_nothing_remaining(self, calculator, fixed_now):
        outcome = calculator.compute_layer(
            make_layer(min_amount=Decimal("50")), Decimal("0"), fixed_now
        )

        assert outcome.result.actual_coverage == Decimal("0")
        assert outcome.result.is_applied is False


@pytest.mark.unit
class TestLayerAdjustments:
    """Custom settings flow through the adjustment engine."""

    def test_layer_settings_applied(self, calculator, fixed_now):
        outcome = calculator.compute_layer(
            make_layer(custom_settings={"discount_percent": "10"}), Decimal("1000"), fixed_now
        )

        assert outcome.result.calculated_coverage == Decimal("450")
        assert outcome.result.adjustment_status == AdjustmentStatus.ADJUSTED

    def test_layer_settings_take_precedence_over_passed_settings(self, calculator, fixed_now):
        outcome = calculator.compute_layer(
            make_layer(custom_settings={"multiplier": "2"}),
            Decimal("1000"),
            fixed_now,
            settings={"multiplier": "0.5"},
        )

        assert outcome.result.calculated_coverage == Decimal("1000")

    def test_passed_settings_used_when_layer_has_none(self, calculator, fixed_now):
        outcome = calculator.compute_layer(
            make_layer(), Decimal("1000"), fixed_now, settings={"multiplier": "0.5"}
        )

        assert outcome.result.calculated_coverage == Decimal("250")

    def test_bad_settings_keep_unadjusted_amount(self, calculator, fixed_now):
        outcome = calculator.compute_layer(
            make_layer(custom_settings={"multiplier": "n/a"}), Decimal("1000"), fixed_now
        )

        assert outcome.status == LayerStatus.COMPUTED
        assert outcome.result.calculated_coverage == Decimal("500")
        assert outcome.result.adjustment_status == AdjustmentStatus.FALLBACK


@pytest.mark.unit
class TestLayerFailure:
    """Internal errors are reported as a failed outcome."""

    def test_malformed_layer_reports_failure(self, calculator, fixed_now):
        broken = CoverageLayer.model_construct(
            insurance_id="ins-broken",
            insurance_name=None,
            priority=1,
            percentage="abc",
            min_amount=None,
            max_amount=None,
            custom_settings=None,
        )

        outcome = calculator.compute_layer(broken, Decimal("1000"), fixed_now)

        assert outcome.status == LayerStatus.FAILED
        assert outcome.result is None
        assert outcome.succeeded is False
        assert "TypeError" in outcome.error
