"""
Custom Exceptions
Error taxonomy for coverage calculation and tariff provisioning.

Layer and adjustment failures are not exceptions: they are reported through
the ``failed`` / ``fallback`` statuses of the result schemas so a single bad
insurance configuration never aborts a whole calculation.
"""

from typing import Optional


class CoverageEngineError(Exception):
    """Base error carrying a stable machine-readable code."""

    code = "COVERAGE_ENGINE_ERROR"
    default_message = "Coverage engine error"

    def __init__(self, message: Optional[str] = None, details: Optional[dict] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationFailure(CoverageEngineError):
    """Raised when a plan, service, or amount is missing or invalid"""

    code = "VALIDATION_FAILED"
    default_message = "Validation failed"


class NotFoundError(ValidationFailure):
    """Raised when a referenced plan or service cannot be resolved"""

    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message += f" (id: {identifier})"
        super().__init__(message, details={"resource": resource, "id": identifier})


class DuplicateCombinationError(CoverageEngineError):
    """Raised when the service already has this primary/supplementary pair"""

    code = "DUPLICATE_COMBINATION"
    default_message = "Insurance combination already exists for this service"


class NoEligibleTargetsError(CoverageEngineError):
    """Raised when a bulk run finds nothing to provision"""

    code = "NO_ELIGIBLE_TARGETS"
    default_message = "No eligible services found for bulk tariff creation"


class BulkOperationError(CoverageEngineError):
    """Raised after a bulk run was rolled back; the cause is only logged"""

    code = "BULK_OPERATION_FAILED"
    default_message = "Bulk operation failed"


class IdempotencyConflictError(CoverageEngineError):
    """Raised when another run currently holds the same idempotency token"""

    code = "IDEMPOTENCY_CONFLICT"
    default_message = "A request with this idempotency token is already in progress"
