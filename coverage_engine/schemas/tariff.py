"""
Pydantic Schemas for Insurance Tariffs and Bulk Provisioning.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from coverage_engine.core.enums import CoverageType, ProvisioningState


# =============================================================================
# Tariff Schemas
# =============================================================================


class TariffBase(BaseModel):
    """Fields shared by every tariff shape."""

    service_id: str = Field(..., description="Priced service")
    insurance_plan_id: str = Field(..., description="Plan this tariff belongs to")
    primary_plan_id: Optional[str] = Field(
        None, description="Primary plan a supplementary tariff stacks on"
    )
    tariff_price: Decimal = Field(..., ge=0, description="Total price of the service")
    patient_share: Decimal = Field(default=Decimal("0"), ge=0)
    insurer_share: Decimal = Field(default=Decimal("0"), ge=0)
    coverage_type: CoverageType = CoverageType.PRIMARY
    priority: int = Field(default=1, ge=1, le=10)
    is_active: bool = True
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    supplementary_coverage_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    supplementary_max_payment: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_validity_window(self) -> "TariffBase":
        if self.valid_from and self.valid_to and self.valid_to < self.valid_from:
            raise ValueError("valid_to must not be before valid_from")
        return self


class TariffCreate(TariffBase):
    """Tariff ready to be persisted, stamped with audit fields."""

    created_at: datetime
    created_by: Optional[str] = None


class TariffRecord(TariffCreate):
    """Persisted tariff with its assigned identity."""

    model_config = ConfigDict(from_attributes=True)

    tariff_id: str
    is_deleted: bool = False


# =============================================================================
# Bulk Provisioning Schemas
# =============================================================================


class BulkTariffRequest(BaseModel):
    """Shared fields stamped onto every tariff of a bulk run."""

    insurance_plan_id: str = Field(..., min_length=1)
    tariff_price: Optional[Decimal] = Field(
        None, ge=0, description="Fixed price; None uses each service's own price"
    )
    patient_share: Optional[Decimal] = Field(
        None, ge=0, description="Fixed patient share; None derives it per service"
    )
    insurer_share: Optional[Decimal] = Field(
        None, ge=0, description="Fixed insurer share; None derives it from plan coverage"
    )
    coverage_type: CoverageType = CoverageType.PRIMARY
    priority: int = Field(default=1, ge=1, le=10)
    is_active: bool = True
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    notes: Optional[str] = None
    skip_existing: bool = Field(
        default=True, description="Leave out services already priced under this plan"
    )

    @model_validator(mode="after")
    def check_validity_window(self) -> "BulkTariffRequest":
        if self.valid_from and self.valid_to and self.valid_to < self.valid_from:
            raise ValueError("valid_to must not be before valid_from")
        return self


class ProvisioningOutcome(BaseModel):
    """What a bulk run did, for callers that want more than the count."""

    created_count: int = Field(..., ge=0)
    final_state: ProvisioningState
    replayed: bool = False
    idempotency_token: Optional[str] = None
    state_trail: list[ProvisioningState] = Field(default_factory=list)


# =============================================================================
# Plan Dependency Schemas
# =============================================================================


class PlanDependencyCounts(BaseModel):
    """Raw counts of records referencing a plan."""

    plan_services: int = Field(default=0, ge=0)
    patient_insurances: int = Field(default=0, ge=0)
    insurance_calculations: int = Field(default=0, ge=0)
    tariffs: int = Field(default=0, ge=0)


class PlanDependencyInfo(BaseModel):
    """Summary used to decide whether a plan may be deleted."""

    plan_id: str
    plan_name: Optional[str] = None
    counts: PlanDependencyCounts

    @property
    def has_dependencies(self) -> bool:
        return any(
            (
                self.counts.plan_services,
                self.counts.patient_insurances,
                self.counts.insurance_calculations,
                self.counts.tariffs,
            )
        )

    @property
    def summary(self) -> str:
        parts = []
        if self.counts.plan_services:
            parts.append(f"{self.counts.plan_services} plan services")
        if self.counts.patient_insurances:
            parts.append(f"{self.counts.patient_insurances} patient insurances")
        if self.counts.insurance_calculations:
            parts.append(f"{self.counts.insurance_calculations} insurance calculations")
        if self.counts.tariffs:
            parts.append(f"{self.counts.tariffs} tariffs")
        return ", ".join(parts) if parts else "no dependencies"
