"""
Unit Tests for Pydantic Schemas
Tests validation logic for coverage and tariff schemas
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from coverage_engine.core.enums import CoverageType, LayerStatus, ProvisioningState
from coverage_engine.schemas.coverage import (
    AdjustmentSettings,
    CoverageLayer,
    LayerOutcome,
    ServiceInfo,
)
from coverage_engine.schemas.tariff import PlanDependencyCounts, PlanDependencyInfo, TariffCreate
from coverage_engine.utils.errors import BulkOperationError, NotFoundError, ValidationFailure


@pytest.mark.unit
class TestAdjustmentSettingsSchema:

    def test_missing_options_are_empty(self):
        assert AdjustmentSettings().is_empty is True

    def test_unknown_keys_ignored(self):
        settings = AdjustmentSettings.model_validate({"multiplier": "1.2", "colour": "blue"})

        assert settings.multiplier == Decimal("1.2")
        assert not hasattr(settings, "colour")

    def test_negative_time_limit_rejected(self):
        with pytest.raises(ValidationError):
            AdjustmentSettings(time_limit_hours=-1)


@pytest.mark.unit
class TestCoverageLayerSchema:

    def test_percentage_bounds(self):
        with pytest.raises(ValidationError):
            CoverageLayer(insurance_id="a", priority=1, percentage=Decimal("101"))

    def test_min_above_max_accepted(self):
        """Ordering of floor and cap is not validated on the layer."""
        layer = CoverageLayer(
            insurance_id="a",
            priority=1,
            min_amount=Decimal("500"),
            max_amount=Decimal("100"),
        )

        assert layer.min_amount > layer.max_amount

    def test_empty_insurance_id_rejected(self):
        with pytest.raises(ValidationError):
            CoverageLayer(insurance_id="", priority=1)

    def test_failed_outcome_not_succeeded(self):
        outcome = LayerOutcome(insurance_id="a", status=LayerStatus.FAILED, error="boom")

        assert outcome.succeeded is False


@pytest.mark.unit
class TestTariffSchemas:

    def test_validity_window(self):
        with pytest.raises(ValidationError):
            TariffCreate(
                service_id="s",
                insurance_plan_id="p",
                tariff_price=Decimal("10"),
                valid_from=date(2026, 5, 1),
                valid_to=date(2026, 4, 1),
                created_at=datetime.now(timezone.utc),
            )

    def test_defaults(self):
        tariff = TariffCreate(
            service_id="s",
            insurance_plan_id="p",
            tariff_price=Decimal("10"),
            created_at=datetime.now(timezone.utc),
        )

        assert tariff.coverage_type == CoverageType.PRIMARY
        assert tariff.priority == 1
        assert tariff.is_active is True

    def test_service_eligibility(self):
        assert ServiceInfo(service_id="s").is_eligible is True
        assert ServiceInfo(service_id="s", is_deleted=True).is_eligible is False
        assert ServiceInfo(service_id="s", is_active=False).is_eligible is False

    def test_dependency_summary(self):
        info = PlanDependencyInfo(
            plan_id="p",
            counts=PlanDependencyCounts(insurance_calculations=3, tariffs=1),
        )

        assert info.has_dependencies is True
        assert info.summary == "3 insurance calculations, 1 tariffs"


@pytest.mark.unit
class TestEnumsAndErrors:

    def test_terminal_states(self):
        assert ProvisioningState.DONE.is_terminal
        assert ProvisioningState.ROLLED_BACK.is_terminal
        assert not ProvisioningState.COMMIT.is_terminal

    def test_not_found_is_validation_failure(self):
        error = NotFoundError("Insurance plan", "p-1")

        assert isinstance(error, ValidationFailure)
        assert error.to_dict() == {
            "code": "NOT_FOUND",
            "message": "Insurance plan not found (id: p-1)",
            "details": {"resource": "Insurance plan", "id": "p-1"},
        }

    def test_bulk_error_is_generic(self):
        assert str(BulkOperationError()) == "Bulk operation failed"
