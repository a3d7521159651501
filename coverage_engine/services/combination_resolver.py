"""
Primary + Supplementary Combination Resolver.

Computes the deductible-adjusted primary coverage, then applies the
supplementary percentage to what the patient still owes after the primary
plan (not to the original amount). That remainder rule is what separates
supplementary stacking from two independent parallel coverages.

Calculation:
    coverable      = max(0, amount - deductible)
    primary        = coverable * primary_pct / 100
    post_primary   = amount - primary
    supplementary  = min(post_primary * supp_pct / 100, max_payment)
    patient_share  = max(0, post_primary - supplementary)

Rounding: the two coverage amounts are rounded half-up to the smallest
currency unit; the patient share is the exact remainder, so the three parts
always add back up to the service amount.
"""

import asyncio
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from coverage_engine.api.config import settings
from coverage_engine.core.enums import CoverageType
from coverage_engine.schemas.coverage import CombinationResult, PlanDetails
from coverage_engine.schemas.tariff import TariffCreate, TariffRecord
from coverage_engine.services.repositories import PlanLookup, ServiceLookup, TariffRepository
from coverage_engine.utils.errors import (
    DuplicateCombinationError,
    NotFoundError,
    ValidationFailure,
)
from coverage_engine.utils.logging import get_logger
from coverage_engine.utils.money import to_amount, to_decimal

logger = get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
SUPPLEMENTARY_PRIORITY = 2


class CombinationResolver:
    """
    Resolves one primary plan plus one supplementary plan over a service.

    ``resolve_combination`` is pure; ``create_combination`` wraps it with the
    lookups, duplicate check and persistence needed to store a tariff.
    """

    def __init__(
        self,
        plan_lookup: Optional[PlanLookup] = None,
        service_lookup: Optional[ServiceLookup] = None,
        tariff_repository: Optional[TariffRepository] = None,
        money_precision: Optional[Decimal] = None,
    ):
        self.plan_lookup = plan_lookup
        self.service_lookup = service_lookup
        self.tariff_repository = tariff_repository
        self.money_precision = money_precision or settings.MONEY_PRECISION

    def _round(self, amount: Decimal) -> Decimal:
        return amount.quantize(self.money_precision, rounding=ROUND_HALF_UP)

    # =========================================================================
    # Pure calculation
    # =========================================================================

    def resolve_combination(
        self,
        service_amount: Decimal,
        primary_plan: PlanDetails,
        supplementary_coverage_percent: Decimal,
        supplementary_max_payment: Optional[Decimal] = None,
    ) -> CombinationResult:
        """
        Split ``service_amount`` between the primary plan, the supplementary
        plan and the patient.

        Raises:
            ValidationFailure: on a non-numeric or negative amount, a
                percentage outside [0, 100], or a negative cap
        """
        service_amount = to_amount(service_amount)
        supplementary_coverage_percent = to_decimal(
            supplementary_coverage_percent, "Supplementary coverage percent"
        )
        if not ZERO <= supplementary_coverage_percent <= HUNDRED:
            raise ValidationFailure(
                f"Supplementary coverage percent must be between 0 and 100: "
                f"{supplementary_coverage_percent}"
            )
        if supplementary_max_payment is not None:
            supplementary_max_payment = to_amount(
                supplementary_max_payment, "Supplementary max payment"
            )

        # Step 1-2: Primary coverage after deductible
        coverable = max(ZERO, service_amount - primary_plan.deductible)
        primary_coverage = self._round(coverable * (primary_plan.coverage_percent / HUNDRED))

        # Step 3: What the patient still owes after the primary plan
        post_primary = service_amount - primary_coverage

        # Step 4: Supplementary applies to the post-primary remainder
        supplementary_coverage = self._round(
            post_primary * (supplementary_coverage_percent / HUNDRED)
        )
        if supplementary_max_payment is not None and supplementary_coverage > supplementary_max_payment:
            supplementary_coverage = supplementary_max_payment

        # Step 5: Final patient share
        final_patient_share = max(ZERO, post_primary - supplementary_coverage)

        return CombinationResult(
            service_amount=service_amount,
            primary_coverage=primary_coverage,
            supplementary_coverage=supplementary_coverage,
            final_patient_share=final_patient_share,
            calculation_date=datetime.now(timezone.utc),
        )

    def resolve_for_services(
        self,
        service_amounts: Sequence[Decimal],
        primary_plan: PlanDetails,
        supplementary_coverage_percent: Decimal,
        supplementary_max_payment: Optional[Decimal] = None,
    ) -> list[CombinationResult]:
        """Resolve several service amounts against the same plan pair."""
        return [
            self.resolve_combination(
                amount,
                primary_plan,
                supplementary_coverage_percent,
                supplementary_max_payment,
            )
            for amount in service_amounts
        ]

    # =========================================================================
    # Persisted combinations
    # =========================================================================

    def _require_collaborators(self) -> None:
        if not (self.plan_lookup and self.service_lookup and self.tariff_repository):
            raise RuntimeError(
                "CombinationResolver needs plan_lookup, service_lookup and "
                "tariff_repository to persist combinations"
            )

    async def _load_plans(
        self,
        primary_plan_id: str,
        supplementary_plan_id: str,
    ) -> tuple[PlanDetails, PlanDetails]:
        primary_plan, supplementary_plan = await asyncio.gather(
            self.plan_lookup.get_plan_details(primary_plan_id),
            self.plan_lookup.get_plan_details(supplementary_plan_id),
        )

        if not primary_plan.is_active:
            raise ValidationFailure(f"Primary plan is not active: {primary_plan_id}")
        if not supplementary_plan.is_active:
            raise ValidationFailure(f"Supplementary plan is not active: {supplementary_plan_id}")
        if primary_plan.coverage_type != CoverageType.PRIMARY:
            raise ValidationFailure(f"Plan is not a primary plan: {primary_plan_id}")
        if supplementary_plan.coverage_type != CoverageType.SUPPLEMENTARY:
            raise ValidationFailure(f"Plan is not a supplementary plan: {supplementary_plan_id}")

        return primary_plan, supplementary_plan

    async def validate_combination(self, primary_plan_id: str, supplementary_plan_id: str) -> bool:
        """True when both plans resolve, are active, and have matching roles."""
        self._require_collaborators()
        try:
            await self._load_plans(primary_plan_id, supplementary_plan_id)
        except ValidationFailure as e:
            logger.info(f"Combination rejected: {e.message}")
            return False
        return True

    async def create_combination(
        self,
        service_id: str,
        primary_plan_id: str,
        supplementary_plan_id: str,
        coverage_percent: Decimal,
        max_payment: Optional[Decimal] = None,
        actor: Optional[str] = None,
    ) -> TariffRecord:
        """
        Build and persist a supplementary tariff for a service.

        Args:
            service_id: Service to price
            primary_plan_id: Primary plan the supplementary stacks on
            supplementary_plan_id: Supplementary plan being priced
            coverage_percent: Supplementary share of the post-primary remainder
            max_payment: Supplementary cap; None or <= 0 means no cap
            actor: Identity recorded as creator

        Raises:
            DuplicateCombinationError: combination already exists for the service
            ValidationFailure: missing/inactive plan or service, invalid price
        """
        self._require_collaborators()
        logger.info(
            f"Creating supplementary combination: service_id={service_id}, "
            f"primary_plan_id={primary_plan_id}, supplementary_plan_id={supplementary_plan_id}"
        )

        if await self.tariff_repository.is_duplicate_combination(
            service_id, primary_plan_id, supplementary_plan_id
        ):
            raise DuplicateCombinationError(
                details={
                    "service_id": service_id,
                    "primary_plan_id": primary_plan_id,
                    "supplementary_plan_id": supplementary_plan_id,
                }
            )

        service = await self.service_lookup.get_service(service_id)
        if not service.is_active:
            raise NotFoundError("Active service", service_id)
        if service.price <= 0:
            raise ValidationFailure(f"Service price must be positive: {service.price}")

        primary_plan, supplementary_plan = await self._load_plans(
            primary_plan_id, supplementary_plan_id
        )

        cap = max_payment if max_payment is not None and max_payment > 0 else None
        result = self.resolve_combination(service.price, primary_plan, coverage_percent, cap)

        tariff = TariffCreate(
            service_id=service_id,
            insurance_plan_id=supplementary_plan_id,
            primary_plan_id=primary_plan_id,
            tariff_price=result.service_amount,
            patient_share=result.final_patient_share,
            insurer_share=result.supplementary_coverage,
            coverage_type=CoverageType.SUPPLEMENTARY,
            priority=SUPPLEMENTARY_PRIORITY,
            is_active=True,
            supplementary_coverage_percent=coverage_percent,
            supplementary_max_payment=cap,
            notes=(
                f"Supplementary {supplementary_plan.name}: {coverage_percent}% "
                f"of patient share after {primary_plan.name}"
            ),
            created_at=datetime.now(timezone.utc),
            created_by=actor,
        )

        saved = await self.tariff_repository.add_tariff(tariff)
        logger.info(
            f"Supplementary combination created: tariff_id={saved.tariff_id}, "
            f"primary={result.primary_coverage}, supplementary={result.supplementary_coverage}, "
            f"patient={result.final_patient_share}"
        )
        return saved
