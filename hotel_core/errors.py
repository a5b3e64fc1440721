"""
Core error kinds

ValidationError    - rejected before any mutation, safe to retry after correction
ConflictError      - surfaced to the caller for resolution, never coerced
ConsistencyError   - found and repaired by the reconciliation pass, not user-facing
NotFoundError      - unknown id (or an id outside the caller's property)
"""
from typing import Optional


class CoreError(Exception):
    """Base class of all booking / ledger errors"""

    code = "core_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ValidationError(CoreError):
    code = "validation_error"


class ConflictError(CoreError):
    code = "conflict"


class InvalidStateTransition(ConflictError):
    code = "invalid_state_transition"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"{entity} cannot transition from {current} to {target}")
        self.entity = entity
        self.current = current
        self.target = target


class ConsistencyError(CoreError):
    code = "consistency_error"


class NotFoundError(CoreError):
    code = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id
