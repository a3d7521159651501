"""
Core Enumerations for the Coverage Engine.
"""

from enum import Enum


# =============================================================================
# Insurance Enums
# =============================================================================


class CoverageType(str, Enum):
    """Role a plan or tariff plays in a coverage stack."""

    PRIMARY = "primary"
    SUPPLEMENTARY = "supplementary"


# =============================================================================
# Calculation Outcome Enums
# =============================================================================


class LayerStatus(str, Enum):
    """Outcome of evaluating a single coverage layer."""

    COMPUTED = "computed"
    FAILED = "failed"  # Skipped by the waterfall, balance untouched


class AdjustmentStatus(str, Enum):
    """Outcome of applying custom adjustment settings."""

    UNCHANGED = "unchanged"  # No recognised option present
    ADJUSTED = "adjusted"
    FALLBACK = "fallback"  # Settings unreadable, base amount returned


# =============================================================================
# Bulk Provisioning Enums
# =============================================================================


class ProvisioningState(str, Enum):
    """States of a bulk tariff provisioning run."""

    IDLE = "idle"
    CHECKS_IDEMPOTENCY = "checks_idempotency"
    RETURN_CACHED = "return_cached"
    FETCH_ELIGIBLE = "fetch_eligible"
    FAIL_NO_TARGETS = "fail_no_targets"
    BUILD_BATCH = "build_batch"
    COMMIT = "commit"
    CACHE_RESULT = "cache_result"
    DONE = "done"
    COMMIT_FAILED = "commit_failed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PROVISIONING_STATES


TERMINAL_PROVISIONING_STATES = frozenset(
    {
        ProvisioningState.RETURN_CACHED,
        ProvisioningState.DONE,
        ProvisioningState.FAIL_NO_TARGETS,
        ProvisioningState.ROLLED_BACK,
    }
)
