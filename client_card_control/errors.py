"""
Error kinds raised by the card control client.

None of these are fatal to the process. Each is recoverable locally and is
surfaced to the user as status text.
"""

from typing import Optional


class GameClientError(Exception):
    """Base class for all client errors."""


class TransportUnavailable(GameClientError):
    """A publish was attempted while the pub/sub transport is disconnected."""


class UpstreamServiceError(GameClientError):
    """The request/response game service returned a non-success result."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedInboundMessage(GameClientError):
    """An inbound payload was missing required fields or failed to parse."""


class ModelUnavailable(GameClientError):
    """The hand pose model is not initialized yet."""


class ObservationSourceUnavailable(GameClientError):
    """No frames are arriving from the camera / observation source."""
