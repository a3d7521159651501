"""
Plan Dependency Check.

Blocks deletion of an insurance plan that is still referenced by plan
services, patient insurances, stored calculations or tariffs.
"""

from typing import Optional

from coverage_engine.schemas.tariff import PlanDependencyInfo
from coverage_engine.services.repositories import DependencyLookup, PlanLookup
from coverage_engine.utils.logging import get_logger

logger = get_logger(__name__)


class PlanDependencyChecker:
    """Referential-integrity check run before a plan is deleted."""

    def __init__(self, dependencies: DependencyLookup, plan_lookup: Optional[PlanLookup] = None):
        self.dependencies = dependencies
        self.plan_lookup = plan_lookup

    async def check_dependencies(self, plan_id: str) -> PlanDependencyInfo:
        """
        Count the records referencing a plan.

        Raises:
            NotFoundError: plan_lookup is configured and the plan does not exist
        """
        plan_name = None
        if self.plan_lookup is not None:
            plan = await self.plan_lookup.get_plan_details(plan_id)
            plan_name = plan.name

        counts = await self.dependencies.count_plan_dependencies(plan_id)
        info = PlanDependencyInfo(plan_id=plan_id, plan_name=plan_name, counts=counts)
        logger.debug(f"Plan {plan_id} dependencies: {info.summary}")
        return info

    async def can_delete_plan(self, plan_id: str) -> bool:
        info = await self.check_dependencies(plan_id)
        if info.has_dependencies:
            logger.info(f"Plan {plan_id} cannot be deleted: {info.summary}")
            return False
        return True
