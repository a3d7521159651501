"""
Coverage Adjustment Engine.

Applies per-layer custom modifiers to a coverage amount:
- Multiplier
- Percentage discount
- Time-decay penalty for stale calculations

The options are applied in that fixed order, each one operating on the
output of the previous step. Unreadable settings never fail the caller:
the base amount comes back with a ``fallback`` status and the problem is
logged.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Mapping, Optional, Union

from pydantic import ValidationError

from coverage_engine.api.config import settings
from coverage_engine.core.enums import AdjustmentStatus
from coverage_engine.schemas.coverage import AdjustmentOutcome, AdjustmentSettings
from coverage_engine.utils.logging import get_logger

logger = get_logger(__name__)

SECONDS_PER_HOUR = Decimal("3600")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AdjustmentEngine:
    """
    Applies AdjustmentSettings to a coverage amount.

    Stateless apart from the injected clock, so one instance can be
    shared by concurrent calculations.
    """

    def __init__(
        self,
        now: Optional[Callable[[], datetime]] = None,
        decay_factor: Optional[Decimal] = None,
    ):
        """
        Initialize adjustment engine.

        Args:
            now: Clock used for the time-decay check (defaults to UTC now)
            decay_factor: Multiplier for stale calculations (defaults to settings)
        """
        self._now = now or _utcnow
        self.decay_factor = (
            decay_factor if decay_factor is not None else settings.DEFAULT_TIME_DECAY_FACTOR
        )

    @staticmethod
    def parse_settings(
        raw: Union[AdjustmentSettings, Mapping, None],
    ) -> Optional[AdjustmentSettings]:
        """
        Validate raw settings at the boundary.

        Raises:
            pydantic.ValidationError: when a recognised option cannot be converted
            TypeError: when the settings are neither a mapping nor AdjustmentSettings
        """
        if raw is None or isinstance(raw, AdjustmentSettings):
            return raw
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported adjustment settings type: {type(raw).__name__}")
        return AdjustmentSettings.model_validate(dict(raw))

    def hours_since(self, evaluation_time: datetime) -> Decimal:
        elapsed = _as_aware(self._now()) - _as_aware(evaluation_time)
        return Decimal(str(elapsed.total_seconds())) / SECONDS_PER_HOUR

    def adjust(
        self,
        base_amount: Decimal,
        raw_settings: Union[AdjustmentSettings, Mapping, None],
        evaluation_time: datetime,
    ) -> AdjustmentOutcome:
        """
        Apply multiplier, discount and time-decay to ``base_amount``.

        Args:
            base_amount: Coverage amount before adjustment
            raw_settings: AdjustmentSettings or a raw option mapping
            evaluation_time: When the calculation was made

        Returns:
            AdjustmentOutcome; never raises
        """
        try:
            options = self.parse_settings(raw_settings)
            if options is None or options.is_empty:
                return AdjustmentOutcome(amount=base_amount)

            adjusted = base_amount
            applied: list[str] = []

            if options.multiplier is not None:
                adjusted *= options.multiplier
                applied.append("multiplier")

            if options.discount_percent is not None:
                adjusted *= Decimal("1") - options.discount_percent / Decimal("100")
                applied.append("discount_percent")

            if options.time_limit_hours is not None:
                if self.hours_since(evaluation_time) > options.time_limit_hours:
                    adjusted *= self.decay_factor
                    applied.append("time_decay")

            status = AdjustmentStatus.ADJUSTED if applied else AdjustmentStatus.UNCHANGED
            return AdjustmentOutcome(amount=adjusted, status=status, applied_rules=applied)

        except (ValidationError, TypeError, ValueError, InvalidOperation, OverflowError) as e:
            logger.warning(
                f"Adjustment settings could not be applied, using base amount: "
                f"base={base_amount}, error={e}"
            )
            return AdjustmentOutcome(
                amount=base_amount,
                status=AdjustmentStatus.FALLBACK,
                error=str(e),
            )


# =============================================================================
# Singleton Instances
# =============================================================================


_adjustment_engine: Optional[AdjustmentEngine] = None


def get_adjustment_engine() -> AdjustmentEngine:
    """Get singleton adjustment engine instance."""
    global _adjustment_engine
    if _adjustment_engine is None:
        _adjustment_engine = AdjustmentEngine()
    return _adjustment_engine
