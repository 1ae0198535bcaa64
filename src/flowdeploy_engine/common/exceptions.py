"""FlowDeploy-Engine exception hierarchy."""

from typing import Optional


class FlowDeployError(Exception):
    """Base exception for all FlowDeploy errors."""

    def __init__(self, message: str = "", code: str = "FLOWDEPLOY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(FlowDeployError):
    """Raised when a request is missing required fields or is malformed."""

    def __init__(self, message: str = "Invalid request", code: str = "VALIDATION"):
        super().__init__(message, code=code)


class TenantNotFoundError(ValidationError):
    """Raised when no profile exists for the requested tenant."""

    def __init__(self, message: str = "Client configuration not found"):
        super().__init__(message, code="NOT_FOUND")


class ConfigurationError(FlowDeployError):
    """Raised when a required secret or credential is missing.

    Fatal: retrying cannot fix missing configuration.
    """

    def __init__(self, message: str = "Missing configuration", code: str = "CONFIGURATION"):
        super().__init__(message, code=code)


class InjectionError(ConfigurationError):
    """Raised when a workflow template cannot be turned into a valid document."""

    def __init__(self, message: str = "Template injection failed"):
        super().__init__(message, code="INJECTION_FAILED")


class ExternalServiceError(FlowDeployError):
    """Non-retryable error answered by a remote dependency (4xx)."""

    def __init__(
        self,
        message: str = "External service rejected the request",
        status_code: Optional[int] = None,
        code: str = "EXTERNAL_ERROR",
    ):
        self.status_code = status_code
        super().__init__(message, code=code)


class RemoteNotFoundError(ExternalServiceError):
    """The remote resource does not exist (HTTP 404)."""

    def __init__(self, message: str = "Remote resource not found"):
        super().__init__(message, status_code=404, code="REMOTE_NOT_FOUND")


class ListingNotSupportedError(ExternalServiceError):
    """The remote engine refuses to list a resource collection."""

    def __init__(self, message: str = "Listing not supported", status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, code="LISTING_UNSUPPORTED")


class RetryableExternalError(FlowDeployError):
    """Network failure, timeout, 5xx or 429 from a remote dependency."""

    def __init__(
        self,
        message: str = "External service unavailable",
        status_code: Optional[int] = None,
        code: str = "EXTERNAL_RETRYABLE",
    ):
        self.status_code = status_code
        super().__init__(message, code=code)


class CircuitOpenError(RetryableExternalError):
    """Raised without a network call while a dependency's breaker is open."""

    def __init__(self, name: str, retry_after: float):
        self.breaker = name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker '{name}' is open, retry after {retry_after:.1f}s",
            code="CIRCUIT_OPEN",
        )


class DriftError(FlowDeployError):
    """Remote state does not match local bookkeeping.

    Raised and handled inside reconciliation; never surfaced to callers.
    """

    def __init__(self, message: str = "Remote state drifted", kind: str = "drift"):
        self.kind = kind
        super().__init__(message, code="DRIFT")
