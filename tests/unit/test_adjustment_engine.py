"""
Unit Tests for the Coverage Adjustment Engine.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from coverage_engine.core.enums import AdjustmentStatus
from coverage_engine.schemas.coverage import AdjustmentSettings
from coverage_engine.services.adjustment_engine import AdjustmentEngine, get_adjustment_engine


@pytest.fixture
def engine(fixed_clock):
    return AdjustmentEngine(now=fixed_clock)


@pytest.mark.unit
class TestAdjustmentRules:
    """Each recognised option on its own."""

    def test_multiplier(self, engine, fixed_now):
        outcome = engine.adjust(Decimal("1000"), {"multiplier": "1.5"}, fixed_now)

        assert outcome.amount == Decimal("1500")
        assert outcome.status == AdjustmentStatus.ADJUSTED
        assert outcome.applied_rules == ["multiplier"]

    def test_discount_percent(self, engine, fixed_now):
        outcome = engine.adjust(
            Decimal("1000"), AdjustmentSettings(discount_percent=Decimal("20")), fixed_now
        )

        assert outcome.amount == Decimal("800")
        assert outcome.applied_rules == ["discount_percent"]

    def test_time_decay_applies_past_limit(self, engine, fixed_now):
        stale = fixed_now - timedelta(hours=30)
        outcome = engine.adjust(Decimal("1000"), {"time_limit_hours": 24}, stale)

        assert outcome.amount == Decimal("500")
        assert outcome.applied_rules == ["time_decay"]

    def test_time_decay_not_applied_within_limit(self, engine, fixed_now):
        recent = fixed_now - timedelta(hours=2)
        outcome = engine.adjust(Decimal("1000"), {"time_limit_hours": 24}, recent)

        assert outcome.amount == Decimal("1000")
        assert outcome.status == AdjustmentStatus.UNCHANGED

    def test_naive_evaluation_time_treated_as_utc(self, engine, fixed_now):
        naive = (fixed_now - timedelta(hours=5)).replace(tzinfo=None)
        outcome = engine.adjust(Decimal("1000"), {"time_limit_hours": 4}, naive)

        assert outcome.amount == Decimal("500")


@pytest.mark.unit
class TestAdjustmentOrdering:
    """Options compose in the order multiplier -> discount -> time-decay."""

    def test_all_options_apply_in_order(self, engine, fixed_now):
        stale = fixed_now - timedelta(hours=48)
        outcome = engine.adjust(
            Decimal("1000"),
            {"multiplier": "2", "discount_percent": "10", "time_limit_hours": 24},
            stale,
        )

        # 1000 * 2 = 2000, * 0.9 = 1800, * 0.5 = 900
        assert outcome.amount == Decimal("900")
        assert outcome.applied_rules == ["multiplier", "discount_percent", "time_decay"]

    def test_custom_decay_factor(self, fixed_clock, fixed_now):
        engine = AdjustmentEngine(now=fixed_clock, decay_factor=Decimal("0.25"))
        outcome = engine.adjust(
            Decimal("1000"), {"time_limit_hours": 1}, fixed_now - timedelta(hours=2)
        )

        assert outcome.amount == Decimal("250")


@pytest.mark.unit
class TestAdjustmentFallback:
    """Bad settings never raise; the base amount comes back."""

    def test_unknown_keys_are_ignored(self, engine, fixed_now):
        outcome = engine.adjust(Decimal("1000"), {"bonus": "3", "region": "north"}, fixed_now)

        assert outcome.amount == Decimal("1000")
        assert outcome.status == AdjustmentStatus.UNCHANGED

    def test_unconvertible_value_falls_back(self, engine, fixed_now):
        outcome = engine.adjust(Decimal("1000"), {"multiplier": "lots"}, fixed_now)

        assert outcome.amount == Decimal("1000")
        assert outcome.status == AdjustmentStatus.FALLBACK
        assert outcome.error

    def test_out_of_range_discount_falls_back(self, engine, fixed_now):
        outcome = engine.adjust(Decimal("1000"), {"discount_percent": "150"}, fixed_now)

        assert outcome.amount == Decimal("1000")
        assert outcome.status == AdjustmentStatus.FALLBACK

    def test_unsupported_settings_type_falls_back(self, engine, fixed_now):
        outcome = engine.adjust(Decimal("1000"), ["multiplier", 2], fixed_now)

        assert outcome.status == AdjustmentStatus.FALLBACK
        assert outcome.amount == Decimal("1000")

    def test_none_settings_unchanged(self, engine, fixed_now):
        outcome = engine.adjust(Decimal("1000"), None, fixed_now)

        assert outcome.amount == Decimal("1000")
        assert outcome.status == AdjustmentStatus.UNCHANGED


@pytest.mark.unit
def test_singleton_accessor():
    assert get_adjustment_engine() is get_adjustment_engine()
