"""Custom exceptions and helpers for consistent error responses."""

import json
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for application errors."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code

    def details(self) -> Dict[str, Any]:
        """Extra fields merged into the error response body."""
        return {}


class NotFoundError(AppError):
    """Raised when a requested resource is missing."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ValidationError(AppError):
    """Raised when input validation fails."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=422)


class HealthScoreCalculationError(AppError):
    """
    Raised when a health score cannot be produced.

    Either the input failed validation (``validation`` is set) or a factor
    computation broke unexpectedly (``cause`` is set).
    """

    def __init__(
        self,
        message: str,
        factor: Optional[str] = None,
        cause: Optional[BaseException] = None,
        validation: Optional[Any] = None,
    ):
        super().__init__(message, status_code=422)
        self.factor = factor
        self.cause = cause
        self.validation = validation

    def details(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if self.factor:
            body["factor"] = self.factor
        if self.validation is not None:
            body["errors"] = list(self.validation.errors)
            body["warnings"] = list(self.validation.warnings)
            body["confidence"] = self.validation.confidence
        return body


class AlertSystemError(AppError):
    """Raised when an alert rule fails while evaluating a customer."""

    def __init__(
        self,
        message: str,
        alert_type: Optional[str] = None,
        customer_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, status_code=500)
        self.alert_type = alert_type
        self.customer_id = customer_id
        self.cause = cause

    def details(self) -> Dict[str, Any]:
        return {"alert_type": self.alert_type, "customer_id": self.customer_id}


def to_response(error: AppError, correlation_id: Optional[str] = None) -> Dict[str, Any]:
    """Convert an AppError into a Lambda proxy integration response."""
    body: Dict[str, Any] = {"message": str(error), "status": "error"}
    body.update(error.details())
    if correlation_id:
        body["correlation_id"] = correlation_id
    return {
        "statusCode": error.status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }
