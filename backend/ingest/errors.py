"""Errors raised while talking to the game service or downloading payloads."""


class ServiceError(Exception):
    """Base error for game service calls."""


class ServiceTransportError(ServiceError):
    """The connection to the game service failed or was closed mid-call."""


class ServiceCallError(ServiceError):
    """The game service answered a call with a non-zero error code.

    Attributes:
        method: Fully qualified RPC method name.
        code: Error code reported by the service.

    """

    def __init__(self, *, method: str, code: int) -> None:
        self.method = method
        self.code = code
        super().__init__(f"{method} failed with error code {code}")


class RetryExhaustedError(Exception):
    """A retried operation failed on every allowed attempt."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"gave up after {attempts} attempts: {last_error}")


class PayloadDownloadError(Exception):
    """A match payload could not be downloaded from its secondary URL."""
