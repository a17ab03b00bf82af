"""Capture source orchestration with a camera-to-simulation fallback ladder."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import cv2
from loguru import logger

from resq_eye.errors import CaptureError, DeviceUnavailable, TransportFailure
from resq_eye.pipeline.types import (
    FrameSnapshot,
    PhysicalDevice,
    SyntheticSource,
)


if TYPE_CHECKING:
    import numpy as np

    from resq_eye.config import CameraConfig
    from resq_eye.pipeline.capture.synthetic import SyntheticFrameGenerator
    from resq_eye.pipeline.types import CaptureSource, Facing


@dataclass(frozen=True)
class DeviceInfo:
    """A video input reported by device enumeration."""

    device_id: str
    label: str = ""


class DeviceHandle(Protocol):
    """An opened physical capture device."""

    device_id: str

    def read(self) -> np.ndarray | None:
        """Return the current frame, or None when none is ready."""
        ...

    def release(self) -> None:
        """Stop the device and free its resources."""
        ...


class DeviceProvider(Protocol):
    """Host capture API."""

    def is_supported(self) -> bool:
        """Return True when the host exposes a capture API at all."""
        ...

    async def list_devices(self, held: str | None = None) -> list[DeviceInfo]:
        """Enumerate available video inputs.

        ``held`` names a device this process already has open; it is
        reported as present without being opened again.
        """
        ...

    async def open(self, facing: Facing | None) -> DeviceHandle:
        """Open a device matching ``facing``, or any device when None.

        Raises DeviceUnavailable when no matching device exists or access is
        denied, TransportFailure for anything unexpected.
        """
        ...


def encode_jpeg(
    frame: np.ndarray,
    quality: int = 80,
    max_width: int | None = None,
) -> FrameSnapshot | None:
    """Encode a BGR frame as a JPEG snapshot, downscaling wide frames."""
    height, width = frame.shape[:2]
    if max_width is not None and width > max_width:
        scale = max_width / float(width)
        width, height = max_width, max(1, int(round(height * scale)))
        frame = cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)

    ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        logger.warning("Frame encoding failed; skipping frame.")
        return None
    return FrameSnapshot(data=buffer.tobytes(), width=width, height=height)


class CaptureSourceManager:
    """Own the single active capture source.

    Acquisition walks a fallback ladder: the camera with the preferred
    facing, then any camera, then the synthetic generator. Permission and
    not-found failures fall through silently; anything else is raised as
    TransportFailure and leaves no source active.
    """

    def __init__(
        self,
        provider: DeviceProvider,
        generator: SyntheticFrameGenerator,
        config: CameraConfig,
    ) -> None:
        self.provider = provider
        self.generator = generator
        self.config = config
        self._source: CaptureSource | None = None
        self._device: DeviceHandle | None = None
        self._devices: list[DeviceInfo] = []
        self._enumeration: asyncio.Task | None = None
        self._io_lock = asyncio.Lock()

    @property
    def source(self) -> CaptureSource | None:
        return self._source

    @property
    def is_active(self) -> bool:
        return self._source is not None

    @property
    def is_synthetic(self) -> bool:
        return isinstance(self._source, SyntheticSource)

    @property
    def facing(self) -> Facing | None:
        if isinstance(self._source, PhysicalDevice):
            return self._source.facing
        return None

    @property
    def has_multiple_devices(self) -> bool:
        return len(self._devices) > 1

    async def acquire(
        self,
        preferred_facing: Facing | None = None,
        *,
        force_synthetic: bool = False,
    ) -> CaptureSource:
        """Tear down the current source and bring up a new one."""
        await self.release()

        if force_synthetic:
            return self._start_synthetic("simulation requested by operator")
        if not self.provider.is_supported():
            return self._start_synthetic("capture API not supported on this host")

        facing = preferred_facing
        try:
            try:
                handle = await self.provider.open(preferred_facing)
            except CaptureError as first_err:
                if preferred_facing is None:
                    raise
                logger.warning(
                    "Camera start failed with facing {}, attempting fallback: {}",
                    preferred_facing.value,
                    first_err,
                )
                handle = await self.provider.open(None)
                facing = None
        except DeviceUnavailable as exc:
            logger.warning("Camera unavailable ({}). Defaulting to simulation.", exc)
            return self._start_synthetic(str(exc))
        except TransportFailure:
            logger.error("Error accessing camera; no capture source is active")
            raise

        self._device = handle
        self._source = PhysicalDevice(device_id=handle.device_id, facing=facing)
        self._start_enumeration(handle.device_id)
        logger.success(
            "Live feed acquired (device {}, facing {})",
            handle.device_id,
            facing.value if facing else "unknown",
        )
        return self._source

    async def release(self) -> None:
        """Stop whatever source is active. Safe to call repeatedly."""
        if self._enumeration is not None:
            self._enumeration.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._enumeration
            self._enumeration = None

        async with self._io_lock:
            device, self._device = self._device, None
            if device is not None:
                await asyncio.to_thread(device.release)
                logger.info("Camera {} released", device.device_id)

        await self.generator.stop()
        self._source = None

    async def read_frame(self) -> np.ndarray | None:
        """Return the current raw frame of the active source."""
        async with self._io_lock:
            if self._device is not None:
                return await asyncio.to_thread(self._device.read)
            if self.is_synthetic:
                return self.generator.latest_frame()
            return None

    async def snapshot(
        self,
        *,
        max_width: int | None = None,
        quality: int | None = None,
    ) -> FrameSnapshot | None:
        """Encode the current frame, or return None when none is ready."""
        frame = await self.read_frame()
        if frame is None:
            return None
        return await asyncio.to_thread(
            encode_jpeg,
            frame,
            quality if quality is not None else self.config.jpeg_quality,
            max_width,
        )

    def _start_synthetic(self, reason: str) -> SyntheticSource:
        logger.info("Switching to synthetic feed: {}", reason)
        self.generator.start()
        self._source = SyntheticSource(
            width=self.generator.width, height=self.generator.height
        )
        return self._source

    def _start_enumeration(self, held: str) -> None:
        self._enumeration = asyncio.create_task(
            self._enumerate(held), name="device-enumeration"
        )

    async def _enumerate(self, held: str) -> None:
        try:
            self._devices = await self.provider.list_devices(held)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Device enumeration failed: {}", exc)
            self._devices = []
