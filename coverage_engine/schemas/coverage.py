"""
Pydantic Schemas for Coverage Calculation.

Covers the multi-layer waterfall (layers, per-layer results, aggregate
result), the custom adjustment settings applied to a layer, and the
primary/supplementary combination result.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from coverage_engine.core.enums import AdjustmentStatus, CoverageType, LayerStatus


# =============================================================================
# Adjustment Schemas
# =============================================================================


class AdjustmentSettings(BaseModel):
    """
    Recognised per-layer adjustment options.

    Every option is optional; a missing option is a no-op. Unknown keys
    are ignored so older configuration blobs still load.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    multiplier: Optional[Decimal] = Field(None, description="Scale the coverage amount")
    discount_percent: Optional[Decimal] = Field(
        None, ge=0, le=100, description="Percentage discount applied after the multiplier"
    )
    time_limit_hours: Optional[int] = Field(
        None, ge=0, description="Halve the coverage once the calculation is older than this"
    )

    @property
    def is_empty(self) -> bool:
        return (
            self.multiplier is None
            and self.discount_percent is None
            and self.time_limit_hours is None
        )


SettingsInput = Union[AdjustmentSettings, dict[str, Any]]


class AdjustmentOutcome(BaseModel):
    """Result of passing an amount through the adjustment engine."""

    amount: Decimal
    status: AdjustmentStatus = AdjustmentStatus.UNCHANGED
    applied_rules: list[str] = Field(default_factory=list)
    error: Optional[str] = None


# =============================================================================
# Waterfall Schemas
# =============================================================================


class CoverageLayer(BaseModel):
    """One insurance party's coverage rule in the waterfall."""

    insurance_id: str = Field(..., min_length=1, description="Opaque insurance identifier")
    insurance_name: Optional[str] = None
    priority: int = Field(..., description="Lower value is evaluated earlier")
    percentage: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=100,
        description="Share of the remaining balance; 0 covers the full remainder",
    )
    min_amount: Optional[Decimal] = Field(None, ge=0, description="Coverage floor")
    max_amount: Optional[Decimal] = Field(None, ge=0, description="Coverage cap")
    custom_settings: Optional[SettingsInput] = Field(
        None, description="Adjustment options for this layer"
    )


class LayerResult(BaseModel):
    """Contribution of a single processed layer."""

    insurance_id: str
    insurance_name: Optional[str] = None
    priority: int
    percentage: Decimal
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None

    # Amount after percentage/cap/floor/adjustment, before clamping to the balance
    calculated_coverage: Decimal
    # min(calculated, remaining), never negative
    actual_coverage: Decimal
    is_applied: bool
    remaining_before: Decimal
    calculation_date: datetime
    adjustment_status: Optional[AdjustmentStatus] = None


class LayerOutcome(BaseModel):
    """Explicit success/failure wrapper around a layer computation."""

    insurance_id: str
    status: LayerStatus
    result: Optional[LayerResult] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == LayerStatus.COMPUTED and self.result is not None


class WaterfallResult(BaseModel):
    """Aggregate result of a multi-layer coverage calculation."""

    service_amount: Decimal
    calculation_date: datetime
    layer_results: list[LayerResult] = Field(default_factory=list)
    skipped_layers: list[LayerOutcome] = Field(default_factory=list)
    total_coverage: Decimal = Decimal("0")
    final_patient_share: Decimal = Decimal("0")
    coverage_percentage: Decimal = Decimal("0")

    @property
    def applied_layers(self) -> list[LayerResult]:
        return [layer for layer in self.layer_results if layer.is_applied]


# =============================================================================
# Plan / Service Lookups
# =============================================================================


class PlanDetails(BaseModel):
    """Plan fields the combination math reads."""

    model_config = ConfigDict(from_attributes=True)

    plan_id: str
    name: str
    deductible: Decimal = Field(default=Decimal("0"), ge=0)
    coverage_percent: Decimal = Field(..., ge=0, le=100)
    is_active: bool = True
    coverage_type: CoverageType = CoverageType.PRIMARY


class ServiceInfo(BaseModel):
    """Billable service as seen by the tariff provisioning."""

    model_config = ConfigDict(from_attributes=True)

    service_id: str
    title: str = ""
    price: Decimal = Field(default=Decimal("0"))
    is_active: bool = True
    is_deleted: bool = False

    @property
    def is_eligible(self) -> bool:
        return self.is_active and not self.is_deleted


# =============================================================================
# Combination Schemas
# =============================================================================


class CombinationResult(BaseModel):
    """Split of one service amount between a primary and a supplementary plan."""

    service_amount: Decimal
    primary_coverage: Decimal
    supplementary_coverage: Decimal
    final_patient_share: Decimal
    calculation_date: datetime

    @property
    def total_insurer_share(self) -> Decimal:
        return self.primary_coverage + self.supplementary_coverage
