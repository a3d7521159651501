"""
Multi-Layer Coverage Waterfall.

Orchestrates an ordered sequence of coverage layers over one service
amount. Layers are evaluated by ascending priority (ties keep input order),
each consuming part of the remaining balance. A layer that fails to compute
is skipped and leaves the balance untouched for the layers after it.

Invariants:
- total_coverage <= service_amount
- remaining balance never increases and never goes negative
- final_patient_share = service_amount - total_coverage
"""

import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Mapping, Optional, Sequence, Union

from coverage_engine.schemas.coverage import (
    AdjustmentSettings,
    CoverageLayer,
    WaterfallResult,
)
from coverage_engine.services.layer_calculator import LayerCalculator, get_layer_calculator
from coverage_engine.utils.logging import get_logger
from coverage_engine.utils.money import to_amount

logger = get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

GlobalSettings = Mapping[str, Union[AdjustmentSettings, Mapping]]


class WaterfallEngine:
    """
    Entry point for general multi-layer coverage calculation.

    Pure with respect to shared state; safe to call concurrently.
    """

    def __init__(self, layer_calculator: Optional[LayerCalculator] = None):
        self.layer_calculator = layer_calculator or get_layer_calculator()

    @staticmethod
    def order_layers(layers: Sequence[CoverageLayer]) -> list[CoverageLayer]:
        """Ascending priority; sorted() is stable so ties keep input order."""
        return sorted(layers, key=lambda layer: layer.priority)

    @staticmethod
    def settings_for(
        layer: CoverageLayer,
        global_settings: Optional[GlobalSettings],
    ) -> Union[AdjustmentSettings, Mapping, None]:
        """Look up a layer's entry in the global map by id or legacy key."""
        if not global_settings:
            return None
        if layer.insurance_id in global_settings:
            return global_settings[layer.insurance_id]
        return global_settings.get(f"coverage_{layer.insurance_id}")

    def compute_waterfall(
        self,
        service_amount: Decimal,
        layers: Sequence[CoverageLayer],
        evaluation_time: Optional[datetime] = None,
        global_adjustment_settings: Optional[GlobalSettings] = None,
    ) -> WaterfallResult:
        """
        Split ``service_amount`` across ``layers``.

        Args:
            service_amount: Total billable amount (>= 0)
            layers: Coverage layers in any order
            evaluation_time: Calculation timestamp (defaults to now, UTC)
            global_adjustment_settings: Per-layer settings keyed by insurance id

        Returns:
            WaterfallResult with per-layer results in evaluation order

        Raises:
            ValidationFailure: if service_amount is negative or not a number
        """
        start_time = time.perf_counter()
        amount = to_amount(service_amount)
        calculation_date = evaluation_time or datetime.now(timezone.utc)

        result = WaterfallResult(service_amount=amount, calculation_date=calculation_date)

        remaining = amount
        total_coverage = ZERO

        for layer in self.order_layers(layers):
            if remaining <= 0:
                break

            outcome = self.layer_calculator.compute_layer(
                layer,
                remaining,
                calculation_date,
                settings=self.settings_for(layer, global_adjustment_settings),
            )

            if not outcome.succeeded:
                logger.warning(
                    f"Skipping coverage layer: insurance_id={layer.insurance_id}, "
                    f"priority={layer.priority}, reason={outcome.error}"
                )
                result.skipped_layers.append(outcome)
                continue

            layer_result = outcome.result
            result.layer_results.append(layer_result)
            total_coverage += layer_result.actual_coverage
            remaining -= layer_result.actual_coverage

            logger.debug(
                f"Layer applied: insurance_id={layer.insurance_id}, "
                f"priority={layer.priority}, actual={layer_result.actual_coverage}, "
                f"remaining={remaining}"
            )

        result.total_coverage = total_coverage
        result.final_patient_share = remaining
        result.coverage_percentage = (
            total_coverage / amount * HUNDRED if amount > 0 else ZERO
        )

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            f"Waterfall complete: amount={amount}, layers={len(layers)}, "
            f"applied={len(result.applied_layers)}, skipped={len(result.skipped_layers)}, "
            f"total_coverage={total_coverage}, patient_share={remaining}, "
            f"time_ms={elapsed_ms}"
        )

        return result


_waterfall_engine: Optional[WaterfallEngine] = None


def get_waterfall_engine() -> WaterfallEngine:
    """Get singleton waterfall engine instance."""
    global _waterfall_engine
    if _waterfall_engine is None:
        _waterfall_engine = WaterfallEngine()
    return _waterfall_engine
