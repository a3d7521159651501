"""
Bulk Tariff Provisioner.

Creates one tariff for every eligible service of a plan as a single atomic
unit, guarded by an idempotency token so a retried submission returns the
original count instead of writing a second batch.

Run lifecycle:
    IDLE -> CHECKS_IDEMPOTENCY -> RETURN_CACHED
                               -> FETCH_ELIGIBLE -> FAIL_NO_TARGETS
                                                 -> BUILD_BATCH -> COMMIT -> CACHE_RESULT -> DONE
                                                                          -> COMMIT_FAILED -> ROLLED_BACK

Terminal states: RETURN_CACHED, DONE, FAIL_NO_TARGETS, ROLLED_BACK.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from coverage_engine.api.config import settings
from coverage_engine.core.enums import ProvisioningState
from coverage_engine.schemas.coverage import PlanDetails, ServiceInfo
from coverage_engine.schemas.tariff import BulkTariffRequest, ProvisioningOutcome, TariffCreate
from coverage_engine.services.idempotency import IdempotencyStore
from coverage_engine.services.repositories import PlanLookup
from coverage_engine.services.unit_of_work import UnitOfWorkFactory
from coverage_engine.utils.errors import (
    BulkOperationError,
    IdempotencyConflictError,
    NoEligibleTargetsError,
    ValidationFailure,
)
from coverage_engine.utils.logging import get_logger

logger = get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CACHE_WRITE_ATTEMPTS = 2


# =============================================================================
# Transition Table
# =============================================================================


@dataclass(frozen=True)
class Transition:
    """Represents a valid provisioning state transition."""

    from_state: ProvisioningState
    to_state: ProvisioningState


VALID_TRANSITIONS: list[Transition] = [
    Transition(ProvisioningState.IDLE, ProvisioningState.CHECKS_IDEMPOTENCY),
    # Token lookup
    Transition(ProvisioningState.CHECKS_IDEMPOTENCY, ProvisioningState.RETURN_CACHED),
    Transition(ProvisioningState.CHECKS_IDEMPOTENCY, ProvisioningState.FETCH_ELIGIBLE),
    # Eligible target snapshot
    Transition(ProvisioningState.FETCH_ELIGIBLE, ProvisioningState.FAIL_NO_TARGETS),
    Transition(ProvisioningState.FETCH_ELIGIBLE, ProvisioningState.BUILD_BATCH),
    Transition(ProvisioningState.FETCH_ELIGIBLE, ProvisioningState.COMMIT_FAILED),
    # Batch write
    Transition(ProvisioningState.BUILD_BATCH, ProvisioningState.COMMIT),
    Transition(ProvisioningState.BUILD_BATCH, ProvisioningState.COMMIT_FAILED),
    Transition(ProvisioningState.COMMIT, ProvisioningState.CACHE_RESULT),
    Transition(ProvisioningState.COMMIT, ProvisioningState.COMMIT_FAILED),
    Transition(ProvisioningState.COMMIT_FAILED, ProvisioningState.ROLLED_BACK),
    Transition(ProvisioningState.CACHE_RESULT, ProvisioningState.DONE),
]


def get_next_states(state: ProvisioningState) -> list[ProvisioningState]:
    """Get all possible next states from the current state."""
    return [t.to_state for t in VALID_TRANSITIONS if t.from_state == state]


def can_transition(from_state: ProvisioningState, to_state: ProvisioningState) -> bool:
    """Check if transition from one state to another is valid."""
    return to_state in get_next_states(from_state)


@dataclass
class ProvisioningRun:
    """Tracks the state of one bulk run."""

    plan_id: str
    idempotency_token: Optional[str] = None
    state: ProvisioningState = ProvisioningState.IDLE
    trail: list[ProvisioningState] = field(default_factory=lambda: [ProvisioningState.IDLE])

    def advance(self, to_state: ProvisioningState) -> None:
        if not can_transition(self.state, to_state):
            raise RuntimeError(
                f"Invalid provisioning transition: {self.state.value} -> {to_state.value}"
            )
        logger.debug(
            f"Bulk provisioning {self.plan_id}: {self.state.value} -> {to_state.value}"
        )
        self.state = to_state
        self.trail.append(to_state)

    def fail(self) -> None:
        """Move a non-terminal run through COMMIT_FAILED to ROLLED_BACK."""
        if self.state.is_terminal:
            return
        if self.state != ProvisioningState.COMMIT_FAILED:
            self.advance(ProvisioningState.COMMIT_FAILED)
        self.advance(ProvisioningState.ROLLED_BACK)

    def outcome(self, count: int, replayed: bool = False) -> ProvisioningOutcome:
        return ProvisioningOutcome(
            created_count=count,
            final_state=self.state,
            replayed=replayed,
            idempotency_token=self.idempotency_token,
            state_trail=list(self.trail),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Provisioner
# =============================================================================


class BulkProvisioner:
    """
    Exactly-once, all-or-nothing tariff creation for every eligible service.

    The token is claimed atomically before the unit of work opens, so two
    concurrent submissions of one fresh token cannot both write a batch.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        idempotency_store: IdempotencyStore,
        plan_lookup: Optional[PlanLookup] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_services: Optional[int] = None,
    ):
        """
        Initialize bulk provisioner.

        Args:
            uow_factory: Returns a fresh UnitOfWork per run
            idempotency_store: Token -> committed count store
            plan_lookup: When given, the target plan must exist and be active, and
                its coverage percent fills in unset shares
            clock: Source of creation timestamps (defaults to UTC now)
            max_services: Largest batch one run may write (defaults to settings)
        """
        self.uow_factory = uow_factory
        self.idempotency_store = idempotency_store
        self.plan_lookup = plan_lookup
        self._clock = clock or _utcnow
        self.max_services = (
            max_services if max_services is not None else settings.BULK_MAX_SERVICES
        )
        self.money_precision = settings.MONEY_PRECISION

    async def provision_for_all_eligible_services(
        self,
        request: BulkTariffRequest,
        idempotency_token: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> int:
        """
        Create a tariff for every eligible service and return how many were created.

        Raises:
            ValidationFailure: target plan missing/inactive, or too many services
            NoEligibleTargetsError: nothing to provision, nothing written
            IdempotencyConflictError: the token is held by a run still in flight
            BulkOperationError: the batch failed and was rolled back
        """
        outcome = await self.run(request, idempotency_token=idempotency_token, actor=actor)
        return outcome.created_count

    async def run(
        self,
        request: BulkTariffRequest,
        idempotency_token: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> ProvisioningOutcome:
        """Same as provision_for_all_eligible_services, returning the full outcome."""
        start_time = time.perf_counter()
        plan_id = request.insurance_plan_id
        token = idempotency_token or None
        run = ProvisioningRun(plan_id=plan_id, idempotency_token=token)

        run.advance(ProvisioningState.CHECKS_IDEMPOTENCY)
        claimed = False
        if token:
            cached = await self.idempotency_store.get_cached_count(token)
            if cached is not None:
                run.advance(ProvisioningState.RETURN_CACHED)
                logger.info(f"Bulk provisioning replayed for token {token}: {cached} tariffs")
                return run.outcome(cached, replayed=True)

            claimed = await self.idempotency_store.claim(token)
            if not claimed:
                # The holder may have committed between the lookup and the claim
                cached = await self.idempotency_store.get_cached_count(token)
                if cached is not None:
                    run.advance(ProvisioningState.RETURN_CACHED)
                    return run.outcome(cached, replayed=True)
                raise IdempotencyConflictError(details={"idempotency_token": token})

        try:
            plan = await self._check_plan(plan_id)
        except (Exception, asyncio.CancelledError):
            await self._release(token, claimed)
            raise

        run.advance(ProvisioningState.FETCH_ELIGIBLE)
        try:
            count = await self._provision(run, request, plan, actor)
        except (NoEligibleTargetsError, ValidationFailure):
            run.fail()
            await self._release(token, claimed)
            raise
        except asyncio.CancelledError:
            logger.warning(f"Bulk provisioning for plan {plan_id} cancelled before commit")
            run.fail()
            await self._release(token, claimed)
            raise
        except Exception:
            logger.exception(
                f"Bulk provisioning failed for plan {plan_id} in state {run.state.value}"
            )
            run.fail()
            await self._release(token, claimed)
            raise BulkOperationError(details={"insurance_plan_id": plan_id}) from None

        run.advance(ProvisioningState.CACHE_RESULT)
        if token:
            await self._cache_count(token, count)
        run.advance(ProvisioningState.DONE)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Bulk provisioning created {count} tariffs for plan {plan_id} "
            f"in {elapsed_ms:.1f}ms"
        )
        return run.outcome(count)

    async def preview_eligible_services(self, request: BulkTariffRequest) -> list[ServiceInfo]:
        """Services a run with this request would price; nothing is written."""
        await self._check_plan(request.insurance_plan_id)
        async with self.uow_factory() as uow:
            return await uow.list_eligible_services(
                request.insurance_plan_id, request.skip_existing
            )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _check_plan(self, plan_id: str) -> Optional[PlanDetails]:
        if self.plan_lookup is None:
            return None
        plan = await self.plan_lookup.get_plan_details(plan_id)
        if not plan.is_active:
            raise ValidationFailure(f"Insurance plan is not active: {plan_id}")
        return plan

    async def _provision(
        self,
        run: ProvisioningRun,
        request: BulkTariffRequest,
        plan: Optional[PlanDetails],
        actor: Optional[str],
    ) -> int:
        async with self.uow_factory() as uow:
            services = await uow.list_eligible_services(
                request.insurance_plan_id, request.skip_existing
            )
            if not services:
                run.advance(ProvisioningState.FAIL_NO_TARGETS)
                raise NoEligibleTargetsError(
                    details={"insurance_plan_id": request.insurance_plan_id}
                )
            if len(services) > self.max_services:
                raise ValidationFailure(
                    f"{len(services)} eligible services exceed the bulk limit of "
                    f"{self.max_services}"
                )

            run.advance(ProvisioningState.BUILD_BATCH)
            created_at = self._clock()
            coverage_percent = plan.coverage_percent if plan is not None else ZERO
            tariffs = [
                self._build_tariff(request, s, coverage_percent, created_at, actor)
                for s in services
            ]

            run.advance(ProvisioningState.COMMIT)
            count = await uow.add_many(tariffs)
            await uow.commit()
        return count

    def _build_tariff(
        self,
        request: BulkTariffRequest,
        service: ServiceInfo,
        coverage_percent: Decimal,
        created_at: datetime,
        actor: Optional[str],
    ) -> TariffCreate:
        price = request.tariff_price if request.tariff_price is not None else service.price

        # Unset shares follow the plan: insurer = price * coverage%, patient = the rest
        insurer_share = request.insurer_share
        if insurer_share is None:
            insurer_share = (price * coverage_percent / HUNDRED).quantize(
                self.money_precision, rounding=ROUND_HALF_UP
            )
        patient_share = request.patient_share
        if patient_share is None:
            patient_share = max(ZERO, price - insurer_share)

        return TariffCreate(
            service_id=service.service_id,
            insurance_plan_id=request.insurance_plan_id,
            tariff_price=price,
            patient_share=patient_share,
            insurer_share=insurer_share,
            coverage_type=request.coverage_type,
            priority=request.priority,
            is_active=request.is_active,
            valid_from=request.valid_from,
            valid_to=request.valid_to,
            notes=request.notes,
            created_at=created_at,
            created_by=actor,
        )

    async def _cache_count(self, token: str, count: int) -> None:
        for attempt in range(1, CACHE_WRITE_ATTEMPTS + 1):
            try:
                # Past the commit point: finish the cache write even if the caller is cancelled
                await asyncio.shield(self.idempotency_store.set_cached_count(token, count))
                return
            except Exception:
                logger.exception(
                    f"Tariffs committed but caching count for token {token} failed "
                    f"(attempt {attempt}/{CACHE_WRITE_ATTEMPTS})"
                )
        # No count stored: drop the pending claim so the token can be replayed
        await self._release(token, True)

    async def _release(self, token: Optional[str], claimed: bool) -> None:
        if not (token and claimed):
            return
        try:
            await asyncio.shield(self.idempotency_store.release(token))
        except Exception:
            logger.exception(f"Could not release idempotency token {token}")
