"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

import os
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

os.environ.setdefault("ENVIRONMENT", "testing")

from coverage_engine.core.enums import CoverageType  # noqa: E402
from coverage_engine.schemas.coverage import PlanDetails, ServiceInfo  # noqa: E402
from coverage_engine.services.bulk_provisioner import BulkProvisioner  # noqa: E402
from coverage_engine.services.idempotency import InMemoryIdempotencyStore  # noqa: E402
from coverage_engine.services.repositories import InMemoryTariffStore  # noqa: E402
from coverage_engine.services.unit_of_work import InMemoryUnitOfWork  # noqa: E402

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    """Fixed evaluation timestamp."""
    return FIXED_NOW


@pytest.fixture
def fixed_clock():
    """Clock callable returning FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def primary_plan():
    """Primary plan: 50,000 deductible, 80% coverage."""
    return PlanDetails(
        plan_id="plan-primary",
        name="Basic Health",
        deductible=Decimal("50000"),
        coverage_percent=Decimal("80"),
        coverage_type=CoverageType.PRIMARY,
    )


@pytest.fixture
def supplementary_plan():
    """Supplementary plan stacked on the primary."""
    return PlanDetails(
        plan_id="plan-supp",
        name="Gold Supplement",
        deductible=Decimal("0"),
        coverage_percent=Decimal("50"),
        coverage_type=CoverageType.SUPPLEMENTARY,
    )


@pytest.fixture
def inactive_plan():
    return PlanDetails(
        plan_id="plan-inactive",
        name="Retired Plan",
        coverage_percent=Decimal("60"),
        is_active=False,
    )


@pytest.fixture
def services():
    """Three eligible services plus one inactive and one deleted."""
    return [
        ServiceInfo(service_id="svc-visit", title="GP Visit", price=Decimal("200000")),
        ServiceInfo(service_id="svc-xray", title="Chest X-Ray", price=Decimal("350000")),
        ServiceInfo(service_id="svc-lab", title="Blood Panel", price=Decimal("120000")),
        ServiceInfo(
            service_id="svc-old", title="Legacy Test", price=Decimal("90000"), is_active=False
        ),
        ServiceInfo(
            service_id="svc-gone", title="Removed", price=Decimal("50000"), is_deleted=True
        ),
    ]


@pytest.fixture
def tariff_store(primary_plan, supplementary_plan, inactive_plan, services):
    """In-memory store seeded with plans and services."""
    return InMemoryTariffStore(
        plans=[primary_plan, supplementary_plan, inactive_plan],
        services=services,
    )


@pytest.fixture
def idempotency_store():
    return InMemoryIdempotencyStore()


@pytest.fixture
def provisioner(tariff_store, idempotency_store, fixed_clock):
    """Bulk provisioner wired to in-memory collaborators."""
    return BulkProvisioner(
        uow_factory=lambda: InMemoryUnitOfWork(tariff_store),
        idempotency_store=idempotency_store,
        plan_lookup=tariff_store,
        clock=fixed_clock,
    )


class FailingUnitOfWork(InMemoryUnitOfWork):
    """Stages the batch like the real unit, then raises at commit."""

    def __init__(self, store: InMemoryTariffStore, error: BaseException):
        super().__init__(store)
        self.error = error

    async def commit(self) -> None:
        raise self.error


@pytest.fixture
def failing_uow(tariff_store):
    """Factory: failing_uow(error) -> unit of work whose commit raises error."""
    def make(error: BaseException) -> FailingUnitOfWork:
        return FailingUnitOfWork(tariff_store, error)

    return make


@pytest.fixture
def mock_redis():
    """Create a mock async Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    return redis


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
