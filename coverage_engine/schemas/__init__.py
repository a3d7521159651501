"""
Pydantic Schemas for the Coverage Engine.
"""

from coverage_engine.schemas.coverage import (
    AdjustmentOutcome,
    AdjustmentSettings,
    CombinationResult,
    CoverageLayer,
    LayerOutcome,
    LayerResult,
    PlanDetails,
    ServiceInfo,
    WaterfallResult,
)
from coverage_engine.schemas.tariff import (
    BulkTariffRequest,
    PlanDependencyCounts,
    PlanDependencyInfo,
    ProvisioningOutcome,
    TariffCreate,
    TariffRecord,
)

__all__ = [
    # Coverage
    "AdjustmentSettings",
    "AdjustmentOutcome",
    "CoverageLayer",
    "LayerResult",
    "LayerOutcome",
    "WaterfallResult",
    "PlanDetails",
    "ServiceInfo",
    "CombinationResult",
    # Tariffs
    "TariffCreate",
    "TariffRecord",
    "BulkTariffRequest",
    "ProvisioningOutcome",
    "PlanDependencyCounts",
    "PlanDependencyInfo",
]
