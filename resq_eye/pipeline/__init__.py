"""Capture, polling and streaming pipeline."""

from __future__ import annotations

from resq_eye.pipeline.capture import CaptureSourceManager, SyntheticFrameGenerator
from resq_eye.pipeline.lease import CaptureLease
from resq_eye.pipeline.metrics import InferenceStats
from resq_eye.pipeline.polling import AdaptivePollingScheduler, PollRun
from resq_eye.pipeline.streaming import StreamingSession, StreamingSessionManager
from resq_eye.pipeline.types import (
    AlertState,
    AudioSegment,
    Facing,
    FrameSnapshot,
    InferenceResult,
    InferenceVerdict,
    PhysicalDevice,
    PollState,
    SensingMode,
    SensingStatus,
    SessionState,
    SyntheticSource,
)


__all__ = [
    "AdaptivePollingScheduler",
    "AlertState",
    "AudioSegment",
    "CaptureLease",
    "CaptureSourceManager",
    "Facing",
    "FrameSnapshot",
    "InferenceResult",
    "InferenceStats",
    "InferenceVerdict",
    "PhysicalDevice",
    "PollRun",
    "PollState",
    "SensingMode",
    "SensingStatus",
    "SessionState",
    "StreamingSession",
    "StreamingSessionManager",
    "SyntheticSource",
]
