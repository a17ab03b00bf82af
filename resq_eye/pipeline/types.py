"""Shared data structures for the live sensing pipeline."""

from __future__ import annotations

import base64
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Union


if TYPE_CHECKING:
    import numpy as np


class Facing(Enum):
    """Which way a physical camera points."""

    FRONT = "front"
    REAR = "rear"

    def flipped(self) -> Facing:
        """Return the opposite facing."""
        return Facing.REAR if self is Facing.FRONT else Facing.FRONT


class SensingMode(Enum):
    """Operator-facing mode of the sensing loop."""

    LIVE_FEED = "live-feed"
    SIMULATION = "simulation"
    VOICE_STREAMING = "voice-streaming"
    SIGNAL_LOST = "signal-lost"


class SessionState(Enum):
    """Lifecycle of a voice streaming session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class InferenceVerdict(Enum):
    """Structured classification of a snapshot inference response."""

    SAFE = "safe"
    ALERT = "alert"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class PhysicalDevice:
    """A real camera opened through the device provider."""

    device_id: str | None = None
    facing: Facing | None = None


@dataclass(frozen=True)
class SyntheticSource:
    """The procedural frame generator."""

    width: int = 640
    height: int = 360


CaptureSource = Union[PhysicalDevice, SyntheticSource]


@dataclass(frozen=True)
class FrameSnapshot:
    """An encoded image taken from the active capture source."""

    data: bytes
    width: int
    height: int
    mime_type: str = "image/jpeg"
    captured_at: float = field(default_factory=time.time)

    def to_base64(self) -> str:
        """Return the encoded image as base64 text."""
        return base64.b64encode(self.data).decode("ascii")


@dataclass
class PollState:
    """Adaptive delay between snapshot inference requests."""

    current_delay_ms: float = 6000.0
    min_delay_ms: float = 6000.0
    max_delay_ms: float = 30000.0
    backoff_factor: float = 1.5
    recovery_factor: float = 0.8

    def __post_init__(self) -> None:
        """Validate the bounds and clamp the starting delay into them."""
        if self.min_delay_ms <= 0 or self.min_delay_ms > self.max_delay_ms:
            message = (
                f"Invalid delay bounds: min={self.min_delay_ms} max={self.max_delay_ms}"
            )
            raise ValueError(message)
        self.current_delay_ms = self._clamp(self.current_delay_ms)

    def _clamp(self, value: float) -> float:
        return min(max(value, self.min_delay_ms), self.max_delay_ms)

    def back_off(self) -> float:
        """Grow the delay after a rate-limited response."""
        self.current_delay_ms = self._clamp(
            self.current_delay_ms * self.backoff_factor
        )
        return self.current_delay_ms

    def recover(self) -> float:
        """Shrink the delay after a healthy response."""
        if self.current_delay_ms > self.min_delay_ms:
            self.current_delay_ms = self._clamp(
                self.current_delay_ms * self.recovery_factor
            )
        return self.current_delay_ms

    @property
    def current_delay_s(self) -> float:
        """Current delay in seconds, as the sleep call expects it."""
        return self.current_delay_ms / 1000.0


@dataclass(frozen=True)
class InferenceResult:
    """Classified response from the snapshot inference service."""

    verdict: InferenceVerdict
    text: str = ""

    @property
    def is_rate_limited(self) -> bool:
        """Return True when the service refused the request for quota."""
        return self.verdict is InferenceVerdict.RATE_LIMITED

    @classmethod
    def from_text(cls, text: str | None) -> InferenceResult:
        """Classify free text returned by the model."""
        clean = (text or "").strip() or "SAFE"
        verdict = (
            InferenceVerdict.SAFE if "SAFE" in clean.upper() else InferenceVerdict.ALERT
        )
        return cls(verdict=verdict, text=clean)

    @classmethod
    def rate_limited(cls) -> InferenceResult:
        return cls(verdict=InferenceVerdict.RATE_LIMITED, text="RATE_LIMIT")


@dataclass(frozen=True)
class AudioSegment:
    """A block of mono PCM16 audio received from the streaming service."""

    sequence: int
    samples: np.ndarray
    sample_rate: int = 24000

    @property
    def duration(self) -> float:
        """Length of the segment in seconds."""
        return len(self.samples) / float(self.sample_rate)


@dataclass
class AlertState:
    """Latest alert classification shown to the operator."""

    is_danger: bool = False
    status_text: str = "INITIALIZING LINK..."
    last_spoken_text: str | None = None


@dataclass
class InferenceMetrics:
    """Container for snapshot inference statistics."""

    requests: int = 0
    rate_limited: int = 0
    failures: int = 0
    skipped: int = 0
    mean_latency_ms: float = 0.0


@dataclass
class SensingStatus:
    """Snapshot of everything the operator surface renders."""

    mode: SensingMode
    is_busy: bool
    is_danger: bool
    status_text: str
    facing: Facing | None
    audio_enabled: bool
    has_multiple_cameras: bool = False
    error: str | None = None
    poll_delay_ms: float = 0.0
    session_state: SessionState = SessionState.IDLE
    metrics: InferenceMetrics = field(default_factory=InferenceMetrics)

    def to_dict(self) -> dict:
        """Return a JSON-serialisable representation."""
        payload = asdict(self)
        payload["mode"] = self.mode.value
        payload["facing"] = self.facing.value if self.facing else None
        payload["session_state"] = self.session_state.value
        return payload
