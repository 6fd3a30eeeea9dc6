from __future__ import annotations


class HubError(RuntimeError):
    """Raised when a hub operation fails."""

    code = "HUB_ERROR"

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class InvalidTimeError(HubError):
    """Raised when a time cannot be represented as a hub timestamp."""

    code = "INVALID_TIME"


class UnavailableError(HubError):
    """Raised when a trie node or hub resource is missing or unreachable."""

    code = "UNAVAILABLE"


class RpcTimeoutError(HubError):
    """Raised when a remote call exceeds its deadline."""

    code = "TIMEOUT"


class ConnectionFailedError(HubError):
    """Raised when neither secure nor insecure transport becomes ready."""

    code = "CONNECTION_FAILED"


class SubmissionFailedError(HubError):
    """Raised when a hub rejects a submitted message."""

    code = "SUBMISSION_FAILED"
