"""
Analytics Exceptions

Errors raised by the capacity and OEE analytics core. Every error carries a
human-readable message plus a details dict so report callers can surface it
without parsing strings.
"""

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base class for analytics errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for report responses."""
        return {
            'error': type(self).__name__,
            'message': self.message,
            'details': self.details,
        }


class NotFoundError(AnalyticsError):
    """Raised when a referenced entity (shift, plan) does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} not found: {entity_id}",
            {'entity': entity, 'id': str(entity_id)}
        )


class DuplicateSequenceError(AnalyticsError):
    """Raised when a sequence is already taken for a (date, line, shift)."""

    def __init__(self, plan_date, line_id, shift_id, sequence: int):
        super().__init__(
            f"A production plan with sequence {sequence} already exists for "
            f"{plan_date} on line {line_id}, shift {shift_id}",
            {
                'plan_date': str(plan_date),
                'line_id': str(line_id),
                'shift_id': str(shift_id),
                'sequence': sequence,
            }
        )


class MissingLossTimeError(AnalyticsError):
    """Raised in strict mode when OEE is requested without loss-time data."""

    def __init__(self, plan_id: Any = None):
        super().__init__(
            f"No loss-time summary available for plan {plan_id}",
            {'plan_id': str(plan_id) if plan_id is not None else None}
        )
