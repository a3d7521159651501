"""
Collaborator Interfaces and Repositories.

The calculation and provisioning services only talk to these protocols:
- PlanLookup: plan deductible/coverage details
- ServiceLookup: service price and eligibility
- TariffRepository: tariff persistence and duplicate-combination check
- DependencyLookup: records referencing a plan

Two implementations are provided: an in-memory store (demo mode and unit
tests) and a SQLAlchemy repository bound to an AsyncSession.
"""

import asyncio
from typing import Iterable, Optional, Protocol, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from coverage_engine.models.insurance import InsurancePlan, InsuranceTariff, MedicalService
from coverage_engine.schemas.coverage import PlanDetails, ServiceInfo
from coverage_engine.schemas.tariff import PlanDependencyCounts, TariffCreate, TariffRecord
from coverage_engine.utils.errors import NotFoundError
from coverage_engine.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class PlanLookup(Protocol):
    async def get_plan_details(self, plan_id: str) -> PlanDetails: ...


@runtime_checkable
class ServiceLookup(Protocol):
    async def get_service(self, service_id: str) -> ServiceInfo: ...

    async def list_active_services(self) -> list[ServiceInfo]: ...


@runtime_checkable
class TariffRepository(Protocol):
    async def add_tariff(self, tariff: TariffCreate) -> TariffRecord: ...

    async def is_duplicate_combination(
        self,
        service_id: str,
        primary_plan_id: str,
        supplementary_plan_id: str,
    ) -> bool: ...


@runtime_checkable
class DependencyLookup(Protocol):
    async def count_plan_dependencies(self, plan_id: str) -> PlanDependencyCounts: ...


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemoryTariffStore:
    """
    Process-local implementation of every collaborator protocol.

    Tariff writes go through ``persist_many`` so a unit of work can stage
    them and apply them only on commit.
    """

    def __init__(
        self,
        plans: Optional[Iterable[PlanDetails]] = None,
        services: Optional[Iterable[ServiceInfo]] = None,
    ):
        self.plans: dict[str, PlanDetails] = {p.plan_id: p for p in plans or []}
        self.services: dict[str, ServiceInfo] = {s.service_id: s for s in services or []}
        self.tariffs: list[TariffRecord] = []
        self.external_dependencies: dict[str, PlanDependencyCounts] = {}
        self.lock = asyncio.Lock()

    def add_plan(self, plan: PlanDetails) -> None:
        self.plans[plan.plan_id] = plan

    def add_service(self, service: ServiceInfo) -> None:
        self.services[service.service_id] = service

    async def get_plan_details(self, plan_id: str) -> PlanDetails:
        plan = self.plans.get(plan_id)
        if plan is None:
            raise NotFoundError("Insurance plan", plan_id)
        return plan

    async def get_service(self, service_id: str) -> ServiceInfo:
        service = self.services.get(service_id)
        if service is None or service.is_deleted:
            raise NotFoundError("Service", service_id)
        return service

    async def list_active_services(self) -> list[ServiceInfo]:
        return [s for s in self.services.values() if s.is_eligible]

    def live_tariffs(self) -> list[TariffRecord]:
        return [t for t in self.tariffs if not t.is_deleted]

    async def has_live_tariff(self, plan_id: str, service_id: str) -> bool:
        return any(
            t.insurance_plan_id == plan_id and t.service_id == service_id
            for t in self.live_tariffs()
        )

    async def is_duplicate_combination(
        self,
        service_id: str,
        primary_plan_id: str,
        supplementary_plan_id: str,
    ) -> bool:
        return any(
            t.service_id == service_id
            and t.primary_plan_id == primary_plan_id
            and t.insurance_plan_id == supplementary_plan_id
            for t in self.live_tariffs()
        )

    def persist_many(self, tariffs: Iterable[TariffCreate]) -> list[TariffRecord]:
        records = [
            TariffRecord(tariff_id=str(uuid4()), **tariff.model_dump()) for tariff in tariffs
        ]
        self.tariffs.extend(records)
        return records

    async def add_tariff(self, tariff: TariffCreate) -> TariffRecord:
        async with self.lock:
            return self.persist_many([tariff])[0]

    async def count_plan_dependencies(self, plan_id: str) -> PlanDependencyCounts:
        external = self.external_dependencies.get(plan_id, PlanDependencyCounts())
        tariff_count = sum(
            1
            for t in self.live_tariffs()
            if plan_id in (t.insurance_plan_id, t.primary_plan_id)
        )
        return external.model_copy(update={"tariffs": tariff_count})


# =============================================================================
# SQLAlchemy Repository
# =============================================================================


def _parse_uuid(value: str, resource: str) -> UUID:
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(resource, value) from None


def tariff_to_record(row: InsuranceTariff) -> TariffRecord:
    return TariffRecord(
        tariff_id=str(row.id),
        service_id=str(row.service_id),
        insurance_plan_id=str(row.insurance_plan_id),
        primary_plan_id=str(row.primary_plan_id) if row.primary_plan_id else None,
        tariff_price=row.tariff_price,
        patient_share=row.patient_share,
        insurer_share=row.insurer_share,
        coverage_type=row.coverage_type,
        priority=row.priority,
        is_active=row.is_active,
        valid_from=row.valid_from,
        valid_to=row.valid_to,
        supplementary_coverage_percent=row.supplementary_coverage_percent,
        supplementary_max_payment=row.supplementary_max_payment,
        notes=row.notes,
        created_at=row.created_at,
        created_by=row.created_by,
        is_deleted=row.is_deleted,
    )


def tariff_to_row(tariff: TariffCreate) -> InsuranceTariff:
    return InsuranceTariff(
        service_id=_parse_uuid(tariff.service_id, "Service"),
        insurance_plan_id=_parse_uuid(tariff.insurance_plan_id, "Insurance plan"),
        primary_plan_id=(
            _parse_uuid(tariff.primary_plan_id, "Insurance plan")
            if tariff.primary_plan_id
            else None
        ),
        tariff_price=tariff.tariff_price,
        patient_share=tariff.patient_share,
        insurer_share=tariff.insurer_share,
        coverage_type=tariff.coverage_type,
        priority=tariff.priority,
        is_active=tariff.is_active,
        valid_from=tariff.valid_from,
        valid_to=tariff.valid_to,
        supplementary_coverage_percent=tariff.supplementary_coverage_percent,
        supplementary_max_payment=tariff.supplementary_max_payment,
        notes=tariff.notes,
        created_at=tariff.created_at,
        created_by=tariff.created_by,
    )


class SqlAlchemyTariffRepository:
    """
    Repository over an AsyncSession.

    Writes are flushed, not committed: the owner of the session (a request
    scope or a unit of work) decides when to commit.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        # AsyncSession does not allow concurrent operations
        self._lock = asyncio.Lock()

    async def get_plan_details(self, plan_id: str) -> PlanDetails:
        async with self._lock:
            plan = await self.session.get(InsurancePlan, _parse_uuid(plan_id, "Insurance plan"))
        if plan is None or plan.is_deleted:
            raise NotFoundError("Insurance plan", plan_id)
        return PlanDetails(
            plan_id=str(plan.id),
            name=plan.name,
            deductible=plan.deductible,
            coverage_percent=plan.coverage_percent,
            is_active=plan.is_active,
            coverage_type=plan.coverage_type,
        )

    async def get_service(self, service_id: str) -> ServiceInfo:
        service = await self.session.get(MedicalService, _parse_uuid(service_id, "Service"))
        if service is None or service.is_deleted:
            raise NotFoundError("Service", service_id)
        return self._service_info(service)

    @staticmethod
    def _service_info(service: MedicalService) -> ServiceInfo:
        return ServiceInfo(
            service_id=str(service.id),
            title=service.title,
            price=service.price,
            is_active=service.is_active,
            is_deleted=service.is_deleted,
        )

    async def list_active_services(self) -> list[ServiceInfo]:
        stmt = (
            select(MedicalService)
            .where(MedicalService.is_active.is_(True), MedicalService.is_deleted.is_(False))
            .order_by(MedicalService.code)
        )
        result = await self.session.execute(stmt)
        return [self._service_info(s) for s in result.scalars().all()]

    async def list_services_without_tariff(self, plan_id: str) -> list[ServiceInfo]:
        """Active services that have no live tariff under ``plan_id``."""
        plan_uuid = _parse_uuid(plan_id, "Insurance plan")
        priced = select(InsuranceTariff.service_id).where(
            InsuranceTariff.insurance_plan_id == plan_uuid,
            InsuranceTariff.is_deleted.is_(False),
        )
        stmt = (
            select(MedicalService)
            .where(
                MedicalService.is_active.is_(True),
                MedicalService.is_deleted.is_(False),
                MedicalService.id.not_in(priced),
            )
            .order_by(MedicalService.code)
        )
        result = await self.session.execute(stmt)
        return [self._service_info(s) for s in result.scalars().all()]

    async def add_tariff(self, tariff: TariffCreate) -> TariffRecord:
        row = tariff_to_row(tariff)
        self.session.add(row)
        await self.session.flush()
        return tariff_to_record(row)

    async def add_many(self, tariffs: list[TariffCreate]) -> list[TariffRecord]:
        rows = [tariff_to_row(t) for t in tariffs]
        self.session.add_all(rows)
        await self.session.flush()
        return [tariff_to_record(r) for r in rows]

    async def is_duplicate_combination(
        self,
        service_id: str,
        primary_plan_id: str,
        supplementary_plan_id: str,
    ) -> bool:
        stmt = select(func.count(InsuranceTariff.id)).where(
            InsuranceTariff.service_id == _parse_uuid(service_id, "Service"),
            InsuranceTariff.primary_plan_id == _parse_uuid(primary_plan_id, "Insurance plan"),
            InsuranceTariff.insurance_plan_id
            == _parse_uuid(supplementary_plan_id, "Insurance plan"),
            InsuranceTariff.is_deleted.is_(False),
        )
        return (await self.session.scalar(stmt) or 0) > 0

    async def count_plan_dependencies(self, plan_id: str) -> PlanDependencyCounts:
        plan_uuid = _parse_uuid(plan_id, "Insurance plan")
        stmt = select(func.count(InsuranceTariff.id)).where(
            or_(
                InsuranceTariff.insurance_plan_id == plan_uuid,
                InsuranceTariff.primary_plan_id == plan_uuid,
            ),
            InsuranceTariff.is_deleted.is_(False),
        )
        return PlanDependencyCounts(tariffs=await self.session.scalar(stmt) or 0)
