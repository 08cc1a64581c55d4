from typing import Any


class APIError(Exception):
    """Base exception for all API errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {"detail": str(self)}


class ValidationError(APIError):
    """Raised for malformed or oversized synthesis requests - maps to HTTP 422."""

    status_code = 422

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        return {"detail": str(self), "errors": self.errors}


class ResourceNotFoundError(APIError):
    """Raised when a required resource is not found - maps to HTTP 404."""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any, *, message: str | None = None):
        super().__init__(message or f"{resource_type} {resource_id!r} not found")
        self.resource_type = resource_type
        self.resource_id = resource_id

    def to_dict(self) -> dict[str, Any]:
        return {"detail": str(self), "resource_type": self.resource_type, "resource_id": str(self.resource_id)}


class JobNotFoundError(ResourceNotFoundError):
    """Unknown or expired job id. Both cases look the same to the caller."""

    def __init__(self, job_id: str):
        super().__init__("Job", job_id)


class InvalidJobTransitionError(APIError):
    """Raised when an update would move a job backwards or touch a terminal job - maps to HTTP 409."""

    status_code = 409

    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(f"Job {job_id!r} cannot move from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class ProviderError(APIError):
    """Base for failures reported by a synthesis provider."""

    status_code = 502

    def __init__(self, message: str, *, provider: str):
        super().__init__(message)
        self.provider = provider


class ProviderTransientError(ProviderError):
    """Rate limit or warm-up condition. Retried once by the provider call path."""

    status_code = 503


class ProviderFatalError(ProviderError):
    """Any other provider failure, including an empty result."""

    status_code = 502


class CacheUnavailableError(APIError):
    """The cache backing store cannot be reached. Only raised by explicit health checks."""

    status_code = 503
