"""Gamification error taxonomy.

Each error carries a machine-readable ``code`` and the HTTP status the API
layer maps it to. Business-rule errors are raised before any write.
"""

from __future__ import annotations

from typing import Any


class GamificationError(Exception):
    """Base class for all gamification errors."""

    code = "GAMIFICATION_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details is not None:
            body["errors"] = self.details
        return body


class ValidationError(GamificationError):
    """A stats update would violate an invariant or range constraint."""

    code = "VALIDATION_ERROR"
    status_code = 400


class RequirementConfigError(GamificationError):
    """Malformed requirement data in the achievement catalog."""

    code = "REQUIREMENT_CONFIG_ERROR"
    status_code = 500


class UnknownMetricError(RequirementConfigError):
    code = "UNKNOWN_METRIC"

    def __init__(self, metric: str) -> None:
        super().__init__(f"Unknown requirement metric: {metric}")
        self.metric = metric


class UnknownOperatorError(RequirementConfigError):
    code = "UNKNOWN_OPERATOR"

    def __init__(self, operator: str) -> None:
        super().__init__(f"Unknown requirement operator: {operator}")
        self.operator = operator


class InvalidAmountError(GamificationError):
    """Negative or non-numeric point credit."""

    code = "INVALID_AMOUNT"
    status_code = 400

    def __init__(self, amount: Any) -> None:
        super().__init__(f"Invalid points amount: {amount!r}")
        self.amount = amount


class NotFoundError(GamificationError):
    """A record that must exist for the operation does not."""

    code = "NOT_FOUND"
    status_code = 404
