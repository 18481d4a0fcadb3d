"""Errors raised by the recurrence services."""
from typing import Any, Dict, List, Optional


class RecurrenceError(Exception):
    """Base exception for recurrence errors."""

    code = "RECURRENCE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidRule(RecurrenceError):
    """A recurrence rule is malformed (unknown type, frequency < 1, ...)."""

    code = "INVALID_RULE"

    def __init__(self, errors: List[str], details: Optional[Dict[str, Any]] = None):
        self.errors = list(errors)
        super().__init__("Invalid recurrence rule: " + "; ".join(self.errors), details)


class NotFound(RecurrenceError):
    """A referenced task or recurrence rule does not exist."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, entity_id: Any):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} not found", {"kind": kind, "id": entity_id})


class NotRecurring(RecurrenceError):
    """A task expected to belong to a recurrence series does not."""

    code = "NOT_RECURRING"


class StoreFailure(RecurrenceError):
    """The underlying task or rule store failed."""

    code = "STORE_FAILURE"
