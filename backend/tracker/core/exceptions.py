class TrackerError(Exception):
    """Base error for tracker service operations."""


class NotFoundError(TrackerError):
    """Raised when a user or task cannot be found."""


class ForbiddenError(TrackerError):
    """Raised when the caller lacks the capability or ownership required."""


class InvalidInputError(TrackerError):
    """Raised when the payload is inconsistent with the stored data."""


class ChannelFailure(TrackerError):
    """Base error for email/push delivery failures."""


class TransientChannelFailure(ChannelFailure):
    """Delivery failed but may succeed later. Logged, never surfaced."""


class PermanentChannelFailure(ChannelFailure):
    """The delivery endpoint is invalid and should be removed."""

    def __init__(self, message: str, *, token: str | None = None) -> None:
        super().__init__(message)
        self.token = token
