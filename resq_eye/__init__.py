"""ResQ-Eye live sensing client."""

from resq_eye.config import AppConfig
from resq_eye.controller import LiveSensingController
from resq_eye.pipeline.types import SensingMode, SensingStatus


__all__ = [
    "AppConfig",
    "LiveSensingController",
    "SensingMode",
    "SensingStatus",
]
