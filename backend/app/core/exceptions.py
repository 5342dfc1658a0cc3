"""Domain errors shared by services, routers and worker tasks.

Every error carries a stable ``code`` so API clients can tell apart two
errors that share an HTTP status (both balance and calendar conflicts
are 409).
"""

from datetime import datetime
from typing import Any, Optional


class ServiceError(Exception):
    """Base class for domain errors."""

    code = "service_error"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ValidationError(ServiceError):
    """Input failed a domain rule (bad duration, past date, unknown option)."""

    code = "validation_error"
    status_code = 400


class NotFoundError(ServiceError):
    """Referenced entity does not exist or is not visible to the caller."""

    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class InsufficientTokensError(ServiceError):
    """Raised when user doesn't have enough tokens for an operation."""

    code = "insufficient_tokens"
    status_code = 409

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient tokens: required {required}, available {available}"
        )

    @property
    def shortfall(self) -> int:
        return max(0, self.required - self.available)

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update(
            required=self.required,
            available=self.available,
            shortfall=self.shortfall,
        )
        return detail


class SlotConflictError(ServiceError):
    """Requested session overlaps an existing confirmed booking."""

    code = "slot_conflict"
    status_code = 409

    def __init__(
        self,
        coach_id: str,
        start: datetime,
        end: datetime,
        conflicts: Optional[list[tuple[datetime, datetime]]] = None,
    ):
        self.coach_id = coach_id
        self.start = start
        self.end = end
        self.conflicts = conflicts or []
        super().__init__(
            f"Coach {coach_id} is already booked between "
            f"{start.isoformat()} and {end.isoformat()}"
        )

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update(
            coach_id=self.coach_id,
            requested={"start": self.start.isoformat(), "end": self.end.isoformat()},
            conflicts=[
                {"start": start.isoformat(), "end": end.isoformat()}
                for start, end in self.conflicts
            ],
        )
        return detail


class GenerationFailure(ServiceError):
    """Content or course generation failed.

    Worker tasks retry it and finally record it on the coach request or
    course; it never reaches an HTTP response.
    """

    code = "generation_failed"
    status_code = 502
