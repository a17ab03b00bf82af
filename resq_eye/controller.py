"""Operator-facing controller tying capture, polling, streaming and alerts together."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

from resq_eye.alerts import AlertDispatcher, Pyttsx3Speech
from resq_eye.audio.devices import MicrophoneStream, SoundDeviceSink
from resq_eye.errors import (
    InvalidTransition,
    ResQEyeError,
    TransportFailure,
)
from resq_eye.inference.client import GeminiInferenceClient
from resq_eye.inference.live import GeminiLiveConnector
from resq_eye.pipeline.capture import (
    CaptureSourceManager,
    OpenCVDeviceProvider,
    SyntheticFrameGenerator,
)
from resq_eye.pipeline.lease import CaptureLease
from resq_eye.pipeline.polling import AdaptivePollingScheduler
from resq_eye.pipeline.streaming import StreamingSessionManager
from resq_eye.pipeline.types import (
    Facing,
    SensingMode,
    SensingStatus,
    SessionState,
)


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from resq_eye.alerts import SpeechOutput
    from resq_eye.config import AppConfig
    from resq_eye.inference.client import InferenceClient
    from resq_eye.inference.live import StreamingConnector
    from resq_eye.pipeline.streaming import AudioInput, AudioOutput


SIMULATION_STATUS = "SIMULATION ACTIVE // SCANNING SYNTHETIC FEED"
LIVE_STATUS = "LIVE FEED ACQUIRED // SCANNING"
SIGNAL_LOST_STATUS = "SIGNAL LOST"
VOICE_CONNECTING_STATUS = "VOICE LINK CONNECTING..."
VOICE_OPEN_STATUS = "VOICE LINK OPEN // LISTENING"
VOICE_CLOSED_STATUS = "VOICE LINK CLOSED // SNAPSHOT MODE RESUMED"
VOICE_REVERTED_STATUS = "VOICE LINK LOST // SNAPSHOT MODE RESUMED"

COMMANDS = (
    "switch_camera",
    "toggle_audio",
    "toggle_voice_mode",
    "force_simulation",
    "simulate_disconnect",
    "retry_live",
)


class LiveSensingController:
    """The single owned state object behind the operator surface.

    Snapshot polling is the default consumer of the capture source. Voice
    streaming replaces it on request and hands the source back when the
    session closes for any reason, so one of the two is always running
    while a source is active.
    """

    def __init__(
        self,
        config: AppConfig,
        capture: CaptureSourceManager,
        client: InferenceClient,
        connector: StreamingConnector,
        speech: SpeechOutput | None,
        *,
        microphone_factory: Callable[[], AudioInput] | None = None,
        speaker_factory: Callable[[], AudioOutput] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.capture = capture
        self.lease = CaptureLease()
        self.audio_enabled = config.audio_alerts
        self.alerts = AlertDispatcher(speech, lambda: self.audio_enabled)
        self.polling = AdaptivePollingScheduler(
            capture,
            client,
            self.lease,
            config.poll,
            on_result=self.alerts.dispatch,
            sleep=sleep,
        )
        self.streaming = StreamingSessionManager(
            connector,
            capture,
            self.lease,
            config.streaming,
            microphone_factory or (lambda: MicrophoneStream(config.audio)),
            speaker_factory or (lambda: SoundDeviceSink(config.audio)),
            on_closed=self._on_streaming_closed,
            sleep=sleep,
        )
        self.requested_facing = config.camera.preferred_facing
        self.error: str | None = None
        self.polling_resumes = 0
        self._resume_on_close = True
        self._shutting_down = False
        self._command_lock = asyncio.Lock()
        self._activation: asyncio.Task | None = None

    @classmethod
    def from_config(cls, config: AppConfig) -> LiveSensingController:
        """Wire up the OpenCV, Gemini, sounddevice and pyttsx3 backends."""
        capture = CaptureSourceManager(
            OpenCVDeviceProvider(config.camera),
            SyntheticFrameGenerator(config.synthetic),
            config.camera,
        )
        return cls(
            config,
            capture,
            GeminiInferenceClient(config.inference),
            GeminiLiveConnector(config.inference, config.audio),
            Pyttsx3Speech(),
        )

    @property
    def mode(self) -> SensingMode:
        if self.streaming.is_active:
            return SensingMode.VOICE_STREAMING
        if not self.capture.is_active:
            return SensingMode.SIGNAL_LOST
        if self.capture.is_synthetic:
            return SensingMode.SIMULATION
        return SensingMode.LIVE_FEED

    def status(self) -> SensingStatus:
        """Return everything the operator surface renders."""
        return SensingStatus(
            mode=self.mode,
            is_busy=self.polling.is_busy
            or self.streaming.state is SessionState.CONNECTING,
            is_danger=self.alerts.state.is_danger,
            status_text=self.alerts.state.status_text,
            facing=self.capture.facing,
            audio_enabled=self.audio_enabled,
            has_multiple_cameras=self.capture.has_multiple_devices,
            error=self.error,
            poll_delay_ms=self.polling.state.current_delay_ms,
            session_state=self.streaming.state,
            metrics=self.polling.stats.get_metrics(),
        )

    async def start(self) -> None:
        """Acquire the configured source and begin snapshot polling."""
        await self._start_source(
            self.requested_facing,
            force_synthetic=self.config.camera.force_simulation,
        )

    async def shutdown(self) -> None:
        """Stop every consumer and release the capture source."""
        self._shutting_down = True
        await self._teardown()
        logger.info("Live sensing controller shut down")

    async def execute(self, name: str) -> None:
        """Run one operator command by name.

        Voice activation continues outside the command lock, so a stalled
        connect never blocks the commands that would cancel it.
        """
        if name not in COMMANDS:
            raise KeyError(name)
        async with self._command_lock:
            await getattr(self, name)()
        activation = self._activation
        if name == "toggle_voice_mode" and activation is not None:
            await asyncio.wait({activation})

    async def switch_camera(self) -> None:
        """Flip between the front and rear camera; ignored in simulation."""
        if self.capture.is_synthetic:
            logger.debug("Camera switch ignored in simulation mode")
            return
        current = self.capture.facing or self.requested_facing
        self.requested_facing = current.flipped() if current else Facing.FRONT
        await self._start_source(self.requested_facing)

    async def toggle_audio(self) -> None:
        self.audio_enabled = not self.audio_enabled
        logger.info("Audio alerts {}", "enabled" if self.audio_enabled else "muted")

    async def toggle_voice_mode(self) -> None:
        """Start connecting a voice session, or close the live one."""
        if self.streaming.is_active:
            await self.streaming.deactivate("deactivated by operator")
            return
        if self.capture.is_synthetic:
            message = "Voice mode needs a live camera, not the synthetic feed"
            raise InvalidTransition(message)
        if not self.capture.is_active:
            message = "Voice mode needs an active camera; retry the live feed first"
            raise InvalidTransition(message)

        self.alerts.set_status(VOICE_CONNECTING_STATUS)
        self._activation = asyncio.create_task(
            self._activate_voice(), name="voice-activation"
        )
        await asyncio.sleep(0)

    async def _activate_voice(self) -> None:
        try:
            await self.streaming.activate()
        except ResQEyeError as exc:
            logger.warning("Voice mode unavailable: {}", exc)
            return
        if self.streaming.state is SessionState.OPEN:
            self.alerts.set_status(VOICE_OPEN_STATUS)

    async def force_simulation(self) -> None:
        await self._start_source(None, force_synthetic=True)

    async def retry_live(self) -> None:
        await self._start_source(self.requested_facing)

    async def simulate_disconnect(self) -> None:
        """Drop the feed as if the link failed, leaving the recovery actions."""
        await self._teardown()
        self.error = "Camera Error: link severed (simulated disconnect)"
        self.alerts.set_status(SIGNAL_LOST_STATUS)
        logger.warning("Simulated disconnect; awaiting retry or simulation")

    async def _start_source(
        self,
        facing: Facing | None,
        *,
        force_synthetic: bool = False,
    ) -> None:
        await self._teardown()
        self.error = None
        try:
            await self.capture.acquire(facing, force_synthetic=force_synthetic)
        except TransportFailure as exc:
            self.error = f"Camera Error: {exc}"
            self.alerts.set_status(SIGNAL_LOST_STATUS)
            return

        if self.capture.is_synthetic:
            self.alerts.set_status(SIMULATION_STATUS)
        else:
            self.alerts.set_status(LIVE_STATUS)
        await self.polling.start()

    async def _teardown(self) -> None:
        self._resume_on_close = False
        try:
            await self.streaming.deactivate("capture source changing")
            activation, self._activation = self._activation, None
            if activation is not None:
                await asyncio.wait({activation})
            await self.polling.stop()
            await self.capture.release()
        finally:
            self._resume_on_close = True

    async def _on_streaming_closed(self, reason: str, error: Exception | None) -> None:
        if self._shutting_down or not self._resume_on_close:
            return
        self.alerts.set_status(VOICE_REVERTED_STATUS if error else VOICE_CLOSED_STATUS)
        if self.polling.running:
            return
        try:
            await self.polling.start()
        except ResQEyeError as exc:
            self.error = f"Could not resume snapshot mode: {exc}"
            logger.error(self.error)
            return
        self.polling_resumes += 1
        logger.info("Snapshot polling resumed after voice session ({})", reason)
