"""Error taxonomy for the live sensing pipeline."""

from __future__ import annotations


class ResQEyeError(Exception):
    """Base class for all live sensing errors."""


class CaptureError(ResQEyeError):
    """Raised when a capture device cannot be opened or read."""


class DeviceUnavailable(CaptureError):
    """No capture hardware, or the operator denied access to it."""


class TransportFailure(CaptureError):
    """Unexpected device or network failure that the operator must see."""


class InferenceError(ResQEyeError):
    """The inference service could not be reached or returned garbage."""


class RateLimited(InferenceError):
    """The inference service asked the client to slow down."""


class StreamingSessionError(ResQEyeError):
    """A voice streaming session failed and was closed."""


class InvalidTransition(ResQEyeError):
    """A mode or session transition was requested from the wrong state."""
