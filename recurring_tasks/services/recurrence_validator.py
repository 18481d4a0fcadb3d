"""Recurrence Validator."""
from typing import Any, Dict

from recurring_tasks.schemas.recurrence import RECURRENCE_TYPES, AfterCount, UntilDate
from recurring_tasks.services.errors import InvalidRule
from recurring_tasks.utils.timeutils import ensure_utc, utc_now


class RecurrenceValidator:
    """Validate recurrence rules and recurring task templates."""

    @staticmethod
    def _new_result() -> Dict[str, Any]:
        return {
            "valid": True,
            "errors": [],
            "warnings": []
        }

    @staticmethod
    def validate_recurrence_options(rule) -> Dict[str, Any]:
        """
        Validate a recurrence rule or an unsaved set of recurrence options.

        Args:
            rule: Object exposing ``type``, ``frequency`` and ``end_condition``

        Returns:
            Dict with validation result
        """
        result = RecurrenceValidator._new_result()

        if rule.type not in RECURRENCE_TYPES:
            result["errors"].append(
                f"Recurrence type must be one of: {', '.join(RECURRENCE_TYPES)}, got: {rule.type}"
            )

        frequency = rule.frequency
        if isinstance(frequency, bool) or not isinstance(frequency, int):
            result["errors"].append(f"Frequency must be an integer, got: {frequency!r}")
        elif frequency < 1:
            result["errors"].append(f"Frequency must be at least 1, got: {frequency}")

        end_condition = rule.end_condition
        if isinstance(end_condition, AfterCount) and end_condition.count < 1:
            result["errors"].append(
                f"Occurrence count must be at least 1, got: {end_condition.count}"
            )
        elif isinstance(end_condition, UntilDate) and ensure_utc(end_condition.until) < utc_now():
            # Accepted; such a series simply never produces another occurrence
            result["warnings"].append("End date is in the past")

        result["valid"] = not result["errors"]
        return result

    @staticmethod
    def ensure_valid(rule) -> None:
        """
        Raise ``InvalidRule`` unless the rule is well formed.

        Raises:
            InvalidRule: With every validation error found
        """
        result = RecurrenceValidator.validate_recurrence_options(rule)
        if not result["valid"]:
            raise InvalidRule(result["errors"], {"type": rule.type, "frequency": rule.frequency})

    @staticmethod
    def validate_series_template(template) -> Dict[str, Any]:
        """
        Validate the first occurrence of a recurring series.

        Args:
            template: Task template with an optional ``due_date``

        Returns:
            Dict with validation result
        """
        result = RecurrenceValidator._new_result()

        if template.due_date is None:
            result["warnings"].append(
                "Recurring task has no due date; the completion date will anchor the series"
            )

        return result
