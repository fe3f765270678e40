class MetricsCollectorError(Exception):
    pass


class UnauthorizedError(MetricsCollectorError):
    """The caller could not be identified (HTTP 401)."""


class AuthDecodeError(UnauthorizedError):
    """Credentials are absent or not a well-formed Basic presentation."""


class AuthenticationError(UnauthorizedError):
    """Unknown client identifier or wrong secret."""


class AuthorizationError(MetricsCollectorError):
    """The client is known but lacks the capability (HTTP 403)."""

    def __init__(self, client_id: str, capability: str) -> None:
        super().__init__(f'client {client_id!r} lacks capability {capability!r}')
        self.client_id = client_id
        self.capability = capability


class EventValidationError(MetricsCollectorError):
    """The event body is malformed or of an unrecognized type (HTTP 400)."""


class StorageError(MetricsCollectorError):
    """The storage adapter failed to read or write."""


class StateDecodeError(StorageError):
    """Persisted bytes do not decode into a valid histogram state."""
