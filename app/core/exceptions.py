"""Custom exception types for domain and API layers."""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base app exception."""

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str = "", *, details: Any = None):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    """Missing or invalid required field."""

    status_code = 400
    error = "validation_error"


class UnknownConfigKey(ValidationError):
    """Config key outside the allow-list."""

    error = "Unknown config key"

    def __init__(self, key: str):
        super().__init__("Unknown config key")
        self.key = key


class NotFoundError(AppError):
    status_code = 404
    error = "not_found"


class ConflictError(AppError):
    """A workflow is already running for the requested app."""

    status_code = 409
    error = "already_running"

    def __init__(self, app_name: str, workflow_id: str | None):
        super().__init__(f"A workflow is already running for {app_name}")
        self.app_name = app_name
        self.workflow_id = workflow_id

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "message": self.message,
            "workflow_id": self.workflow_id,
        }


class UpstreamFailure(AppError):
    """Integrator API transport failure, non-2xx, or missing workflow id."""

    status_code = 500
    error = "upstream_failure"

    def __init__(
        self,
        details: str,
        *,
        api_response: Any = None,
        http_status: int | None = None,
        message: str = "Failed to trigger workflow",
    ):
        super().__init__(message, details=details)
        self.api_response = api_response
        self.http_status = http_status

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "details": self.details,
            "api_response": self.api_response,
            "http_status": self.http_status,
        }


class StoreFailure(AppError):
    """Bookkeeping read or write against the store failed."""

    status_code = 500
    error = "store_failure"


class StoreConflict(StoreFailure):
    """Write rejected by a unique constraint."""
