"""Capture backends and the capture source manager."""

from __future__ import annotations

from resq_eye.pipeline.capture.core import (
    CaptureSourceManager,
    DeviceHandle,
    DeviceInfo,
    DeviceProvider,
    encode_jpeg,
)
from resq_eye.pipeline.capture.opencv import OpenCVCapture, OpenCVDeviceProvider
from resq_eye.pipeline.capture.synthetic import SyntheticFrameGenerator


__all__ = [
    "CaptureSourceManager",
    "DeviceHandle",
    "DeviceInfo",
    "DeviceProvider",
    "OpenCVCapture",
    "OpenCVDeviceProvider",
    "SyntheticFrameGenerator",
    "encode_jpeg",
]
