"""Error taxonomy shared by the collection, scoring and notification layers."""

from __future__ import annotations


class TenderwatchError(Exception):
    """Base class for all domain errors."""


class TransientNetworkError(TenderwatchError):
    """Retryable upstream failure (5xx, 429, connection/timeout)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PermanentRequestError(TenderwatchError):
    """Upstream rejected the request (4xx other than 429); never retried."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(TenderwatchError):
    """A response body could not be decoded into the expected shape."""


class BudgetExceededError(TenderwatchError):
    """A daily or per-cycle quota for paid external calls has been reached."""


class ChannelDeliveryError(TenderwatchError):
    """A notification transport failed to deliver a message."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel
