"""
Services Layer for the Coverage Engine.

Exports the waterfall calculation, the primary/supplementary combination
resolver, and bulk tariff provisioning with its collaborators.
"""

from coverage_engine.services.adjustment_engine import AdjustmentEngine, get_adjustment_engine
from coverage_engine.services.layer_calculator import LayerCalculator, get_layer_calculator
from coverage_engine.services.waterfall_engine import WaterfallEngine, get_waterfall_engine
from coverage_engine.services.combination_resolver import CombinationResolver
from coverage_engine.services.repositories import (
    DependencyLookup,
    InMemoryTariffStore,
    PlanLookup,
    ServiceLookup,
    SqlAlchemyTariffRepository,
    TariffRepository,
)
from coverage_engine.services.idempotency import (
    IdempotencyStore,
    InMemoryIdempotencyStore,
    RedisIdempotencyStore,
    get_idempotency_store,
)
from coverage_engine.services.unit_of_work import (
    InMemoryUnitOfWork,
    SqlAlchemyUnitOfWork,
    UnitOfWork,
    UnitOfWorkFactory,
)
from coverage_engine.services.bulk_provisioner import BulkProvisioner, ProvisioningRun
from coverage_engine.services.plan_dependency import PlanDependencyChecker

__all__ = [
    # Waterfall
    "AdjustmentEngine",
    "get_adjustment_engine",
    "LayerCalculator",
    "get_layer_calculator",
    "WaterfallEngine",
    "get_waterfall_engine",
    # Combination
    "CombinationResolver",
    # Collaborators
    "PlanLookup",
    "ServiceLookup",
    "TariffRepository",
    "DependencyLookup",
    "InMemoryTariffStore",
    "SqlAlchemyTariffRepository",
    # Idempotency
    "IdempotencyStore",
    "InMemoryIdempotencyStore",
    "RedisIdempotencyStore",
    "get_idempotency_store",
    # Unit of work
    "UnitOfWork",
    "UnitOfWorkFactory",
    "InMemoryUnitOfWork",
    "SqlAlchemyUnitOfWork",
    # Bulk provisioning
    "BulkProvisioner",
    "ProvisioningRun",
    # Plan dependencies
    "PlanDependencyChecker",
]
