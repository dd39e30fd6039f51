"""Domain-specific exceptions: transport-independent."""

from typing import Any


class CloudDataError(Exception):
    """Base class for every error raised by the cloud data client."""


class DuplicateIdentityError(CloudDataError):
    """Raised when an APPEND insert collides with an identity already in a table."""

    def __init__(self, table_name: str, identity: str):
        self.table_name = table_name
        self.identity = identity
        super().__init__(f"Record with identity '{identity}' already exists in table '{table_name}'")


class InvalidOperationError(CloudDataError):
    """Raised when a resource has no operation matching the requested type or name."""

    def __init__(self, resource: str, operation_type: str, operation_name: str | None = None):
        self.resource = resource
        self.operation_type = operation_type
        self.operation_name = operation_name
        detail = f" '{operation_name}'" if operation_name else ""
        super().__init__(f"Invalid {operation_type} operation{detail} for resource '{resource}'")


class NoSessionError(CloudDataError):
    """Raised when no session was supplied and no default session is initialised."""

    def __init__(self, message: str = "No session available"):
        super().__init__(message)


class AuthenticationError(NoSessionError):
    """Raised when a request is attempted on a session that failed to log in."""

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Session is not authenticated ({status})")


class TransportError(CloudDataError):
    """Raised when the service answers with a non-success status or the network fails.

    Carries the originating request so callers can inspect the raw response.
    """

    def __init__(
        self,
        method: str,
        url: str,
        status_code: int | None = None,
        message: str = "",
        request: Any = None,
    ):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.message = message
        self.request = request
        status = status_code if status_code is not None else "network error"
        super().__init__(f"{method} {url} failed: {status} {message}".rstrip())


class ServerError(CloudDataError):
    """Raised when a response body carries a service error envelope."""

    def __init__(self, code: str, message: str, scope: str | None = None):
        self.code = code
        self.message = message
        self.scope = scope
        super().__init__(f"{code}: {message}")


class CorrelationError(CloudDataError):
    """Raised when a created row cannot be matched to its server response row."""

    def __init__(self, client_id: str, reason: str):
        self.client_id = client_id
        self.reason = reason
        super().__init__(f"Could not correlate row '{client_id}': {reason}")


class OperationCancelledError(CloudDataError):
    """Raised when an operation is entered with its cancel signal already set."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Operation '{operation}' was cancelled")
