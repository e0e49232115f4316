"""Boundary errors raised before any model or tool work.

These are surfaced immediately as HTTP errors by the service layer and never
reach the model.
"""


class RequestRejectedError(Exception):
    """Base class for requests refused at the boundary.

    Attributes:
        status_code: HTTP status the service maps this error to.
    """

    status_code = 400

    def __init__(self, message: str) -> None:  # noqa: D107
        super().__init__(message)
        self.message = message


class MalformedRequestError(RequestRejectedError):
    """The conversation or caller context is structurally invalid."""

    status_code = 400


class AuthenticationError(RequestRejectedError):
    """Missing or wrong service credentials."""

    status_code = 401


class ForbiddenError(RequestRejectedError):
    """The caller's role is not known to the permission matrix."""

    status_code = 403


class RateLimitedError(RequestRejectedError):
    """The caller exceeded the request rate for the current window."""

    status_code = 429

    def __init__(self, retry_after_seconds: int, remaining: int = 0) -> None:  # noqa: D107
        super().__init__(
            f"Rate limit exceeded. Please wait {retry_after_seconds} seconds before trying again."
        )
        self.retry_after_seconds = retry_after_seconds
        self.remaining = remaining
