"""OpenCV capture backend."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import TYPE_CHECKING

import cv2
from loguru import logger

from resq_eye.errors import DeviceUnavailable, TransportFailure
from resq_eye.pipeline.capture.core import DeviceInfo


if TYPE_CHECKING:
    import numpy as np

    from resq_eye.config import CameraConfig
    from resq_eye.pipeline.types import Facing


class OpenCVCapture:
    """OpenCV video capture wrapper."""

    def __init__(self, config: CameraConfig, device_index: int) -> None:
        """Create an OpenCV capture instance."""
        self.config = config
        self.device_index = device_index
        self.cap: cv2.VideoCapture | None = None
        self.actual_width = 0
        self.actual_height = 0
        self.actual_fps = 0.0

    @property
    def device_id(self) -> str:
        return str(self.device_index)

    def open(self) -> bool:
        """Open the camera device and configure capture settings."""
        logger.info("Opening camera {} with OpenCV...", self.device_index)

        self.cap = cv2.VideoCapture(self.device_index)
        if not self.cap.isOpened():
            logger.warning("Cannot open camera {} with OpenCV", self.device_index)
            self.cap.release()
            self.cap = None
            return False

        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        self.cap.set(cv2.CAP_PROP_FPS, self.config.fps)
        with suppress(Exception):
            self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        self.actual_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.actual_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.actual_fps = float(self.cap.get(cv2.CAP_PROP_FPS))

        logger.success(
            "Camera opened: {}x{} @ {:.1f} FPS",
            self.actual_width,
            self.actual_height,
            self.actual_fps,
        )
        return True

    def read(self) -> np.ndarray | None:
        """Read a frame from the camera, or None when none is ready."""
        if self.cap is None:
            return None
        ok, frame = self.cap.read()
        if not ok or frame is None or frame.size == 0:
            return None
        return frame

    def release(self) -> None:
        """Release the OpenCV capture handle."""
        if self.cap:
            self.cap.release()
            self.cap = None

    def is_opened(self) -> bool:
        """Return True if the camera is open."""
        return self.cap is not None and self.cap.isOpened()

    def get_info(self) -> dict:
        """Return backend metadata for diagnostics."""
        return {
            "backend": "OpenCV",
            "device": self.device_index,
            "width": self.actual_width,
            "height": self.actual_height,
            "fps": self.actual_fps,
        }


class OpenCVDeviceProvider:
    """Open cameras by index, mapping front/rear facing onto configured indices."""

    def __init__(self, config: CameraConfig) -> None:
        self.config = config

    def is_supported(self) -> bool:
        """Return True when this OpenCV build can talk to capture devices."""
        return hasattr(cv2, "VideoCapture")

    async def list_devices(self, held: str | None = None) -> list[DeviceInfo]:
        """Probe the first few device indices, skipping the one already held."""
        return await asyncio.to_thread(self._probe, held)

    def _probe(self, held: str | None = None) -> list[DeviceInfo]:
        found = []
        for index in range(self.config.probe_limit):
            if str(index) == held:
                found.append(DeviceInfo(device_id=held, label=f"camera {index}"))
                continue
            cap = cv2.VideoCapture(index)
            try:
                if cap.isOpened():
                    found.append(DeviceInfo(device_id=str(index), label=f"camera {index}"))
            finally:
                cap.release()
        logger.debug("Probed {} video device(s)", len(found))
        return found

    async def open(self, facing: Facing | None) -> OpenCVCapture:
        """Open the device for ``facing`` (or the default device)."""
        index = self.config.index_for(facing)
        capture = OpenCVCapture(self.config, index)
        try:
            opened = await asyncio.to_thread(capture.open)
        except cv2.error as exc:
            capture.release()
            message = f"Camera {index} failed: {exc}"
            raise TransportFailure(message) from exc
        if not opened:
            message = f"Camera {index} not found or access denied"
            raise DeviceUnavailable(message)
        return capture
