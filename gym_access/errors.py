from __future__ import annotations

from typing import Optional


class GymAccessError(Exception):
    """Base class for domain errors mapped to HTTP responses in observability."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(GymAccessError):
    status_code = 404


class TokenInvalidError(NotFoundError):
    """The presented QR code does not match any issued token.

    There is no member to log against, so the attempt is reported but not logged.
    """

    def __init__(self) -> None:
        super().__init__("Invalid QR code")


class InvalidTransitionError(GymAccessError):
    status_code = 409


class StorageUnavailableError(GymAccessError):
    """Storage round trip failed or timed out. Safe to retry for reads."""

    status_code = 503
    retryable = True

    def __init__(self, message: str = "Storage temporarily unavailable", cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class TokenConsumeError(StorageUnavailableError):
    """Storage failed while consuming a QR token.

    Not retried automatically: the outcome of the conditional update is unknown, and the
    caller must present the code again to start a fresh validation.
    """

    retryable = False

    def __init__(self, cause: Optional[BaseException] = None) -> None:
        super().__init__("Could not confirm QR code; scan again", cause=cause)
