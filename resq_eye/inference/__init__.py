"""Clients for the remote vision/language service."""

from __future__ import annotations

from resq_eye.inference.client import (
    GeminiInferenceClient,
    InferenceClient,
    classify_api_error,
)
from resq_eye.inference.live import (
    AudioChunk,
    GeminiLiveConnector,
    StreamingChannel,
    StreamingConnector,
    TurnComplete,
)


__all__ = [
    "AudioChunk",
    "GeminiInferenceClient",
    "GeminiLiveConnector",
    "InferenceClient",
    "StreamingChannel",
    "StreamingConnector",
    "TurnComplete",
    "classify_api_error",
]
