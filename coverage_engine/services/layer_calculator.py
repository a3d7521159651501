"""
Single Coverage Layer Calculator.

Computes one insurance layer's contribution against the balance still owed
before that layer:
1. Percentage of the remaining balance (0% covers the full remainder)
2. Cap at max_amount
3. Floor at min_amount (after the cap, so the floor wins if floor > cap)
4. Custom adjustments
5. Clamp to the remaining balance, never below zero
"""

from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional, Union

from pydantic import ValidationError

from coverage_engine.core.enums import LayerStatus
from coverage_engine.schemas.coverage import (
    AdjustmentSettings,
    CoverageLayer,
    LayerOutcome,
    LayerResult,
)
from coverage_engine.services.adjustment_engine import AdjustmentEngine, get_adjustment_engine
from coverage_engine.utils.logging import get_logger

logger = get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class LayerCalculator:
    """Evaluates one CoverageLayer; failures are reported, never raised."""

    def __init__(self, adjustment_engine: Optional[AdjustmentEngine] = None):
        self.adjustment_engine = adjustment_engine or get_adjustment_engine()

    def compute_layer(
        self,
        layer: CoverageLayer,
        remaining_balance: Decimal,
        evaluation_time: datetime,
        settings: Union[AdjustmentSettings, Mapping, None] = None,
    ) -> LayerOutcome:
        """
        Compute a layer's coverage.

        Args:
            layer: Coverage rule to evaluate
            remaining_balance: Amount still owed before this layer
            evaluation_time: Calculation timestamp (used by time-decay)
            settings: Fallback adjustment settings when the layer has none

        Returns:
            LayerOutcome with status COMPUTED and a LayerResult, or FAILED
            with a diagnostic message
        """
        try:
            result = self._compute(layer, remaining_balance, evaluation_time, settings)
        except (ArithmeticError, TypeError, ValueError, ValidationError) as e:
            logger.error(
                f"Layer computation failed: insurance_id={layer.insurance_id}, "
                f"priority={layer.priority}, error={e}"
            )
            return LayerOutcome(
                insurance_id=layer.insurance_id,
                status=LayerStatus.FAILED,
                error=f"{type(e).__name__}: {e}",
            )

        return LayerOutcome(
            insurance_id=layer.insurance_id,
            status=LayerStatus.COMPUTED,
            result=result,
        )

    def _compute(
        self,
        layer: CoverageLayer,
        remaining_balance: Decimal,
        evaluation_time: datetime,
        settings: Union[AdjustmentSettings, Mapping, None],
    ) -> LayerResult:
        # Step 1: Percentage of remaining, or the full remainder
        if layer.percentage > 0:
            coverage = remaining_balance * (layer.percentage / HUNDRED)
        else:
            coverage = remaining_balance

        # Step 2: Cap
        if layer.max_amount is not None and coverage > layer.max_amount:
            coverage = layer.max_amount

        # Step 3: Floor (applied after the cap)
        if layer.min_amount is not None:
            if layer.max_amount is not None and layer.min_amount > layer.max_amount:
                logger.warning(
                    f"Layer floor exceeds its cap, floor takes precedence: "
                    f"insurance_id={layer.insurance_id}, min={layer.min_amount}, "
                    f"max={layer.max_amount}"
                )
            if coverage < layer.min_amount:
                coverage = layer.min_amount

        # Step 4: Custom adjustments, layer's own settings first
        adjustment_status = None
        layer_settings = layer.custom_settings if layer.custom_settings is not None else settings
        if layer_settings is not None:
            outcome = self.adjustment_engine.adjust(coverage, layer_settings, evaluation_time)
            coverage = outcome.amount
            adjustment_status = outcome.status

        # Step 5: Clamp to what is still owed
        actual = max(ZERO, min(coverage, remaining_balance))

        return LayerResult(
            insurance_id=layer.insurance_id,
            insurance_name=layer.insurance_name,
            priority=layer.priority,
            percentage=layer.percentage,
            min_amount=layer.min_amount,
            max_amount=layer.max_amount,
            calculated_coverage=coverage,
            actual_coverage=actual,
            is_applied=coverage > 0 and remaining_balance > 0,
            remaining_before=remaining_balance,
            calculation_date=evaluation_time,
            adjustment_status=adjustment_status,
        )


_layer_calculator: Optional[LayerCalculator] = None


def get_layer_calculator() -> LayerCalculator:
    """Get singleton layer calculator instance."""
    global _layer_calculator
    if _layer_calculator is None:
        _layer_calculator = LayerCalculator()
    return _layer_calculator
