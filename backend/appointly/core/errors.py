"""Domain errors raised by the booking core.

Every rejection path raises one of these; the API layer maps them to HTTP
responses in ``appointly.main``.
"""

from __future__ import annotations

from typing import Any, Optional


class AppointlyError(Exception):
    code = "error"

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AppointlyError):
    """Malformed or missing input, or a reference that does not resolve."""

    code = "validation_error"


class NotFoundError(AppointlyError):
    code = "not_found"


class ConflictError(AppointlyError):
    code = "conflict"


class SlotNoLongerAvailable(ConflictError):
    """Another booking took the interval between availability and commit."""

    code = "slot_no_longer_available"


class BusinessRuleError(AppointlyError):
    code = "business_rule"


class InsufficientCreditsError(BusinessRuleError):
    code = "insufficient_credits"


class InactiveError(BusinessRuleError):
    code = "inactive"


class LimitExceededError(BusinessRuleError):
    code = "limit_exceeded"


class InvalidStateTransition(AppointlyError):
    """A state change was requested out of order (caller defect)."""

    code = "invalid_state_transition"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Cannot move {entity} from '{current}' to '{target}'",
            details={"entity": entity, "current": current, "target": target},
        )
        self.entity = entity
        self.current = current
        self.target = target
