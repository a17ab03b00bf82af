"""Voice + vision streaming session, mutually exclusive with snapshot polling."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import numpy as np
from loguru import logger

from resq_eye.audio.playback import AudioPlaybackScheduler
from resq_eye.errors import InvalidTransition, StreamingSessionError
from resq_eye.inference.live import AudioChunk, TurnComplete
from resq_eye.pipeline.types import AudioSegment, SessionState


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from resq_eye.config import StreamingConfig
    from resq_eye.inference.live import StreamingChannel, StreamingConnector
    from resq_eye.pipeline.capture.core import CaptureSourceManager
    from resq_eye.pipeline.lease import CaptureLease


TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.CONNECTING}),
    SessionState.CONNECTING: frozenset({SessionState.OPEN, SessionState.CLOSED}),
    SessionState.OPEN: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


class AudioInput(Protocol):
    """Microphone that yields fixed-size PCM16 chunks."""

    sample_rate: int

    async def open(self) -> None: ...

    def chunks(self) -> AsyncIterator[bytes]: ...

    def close(self) -> None: ...


class AudioOutput(Protocol):
    """Speaker sink usable by the playback scheduler."""

    def now(self) -> float: ...

    def play_at(self, segment: AudioSegment, start_time: float) -> None: ...

    def stop_all(self) -> None: ...

    async def open(self) -> None: ...

    def close(self) -> None: ...


@dataclass
class StreamingSession:
    """Everything owned by one connect-to-disconnect cycle."""

    session_id: int
    state: SessionState = SessionState.IDLE
    channel: StreamingChannel | None = None
    microphone: AudioInput | None = None
    speaker: AudioOutput | None = None
    playback: AudioPlaybackScheduler | None = None
    connect_task: asyncio.Task | None = None
    tasks: list[asyncio.Task] = field(default_factory=list)
    segments_received: int = 0
    frames_sent: int = 0
    chunks_sent: int = 0
    close_reason: str | None = None

    def transition(self, target: SessionState) -> None:
        """Move to ``target`` or raise InvalidTransition."""
        if target not in TRANSITIONS[self.state]:
            message = f"Session {self.session_id}: {self.state.value} -> {target.value} not allowed"
            raise InvalidTransition(message)
        logger.debug(
            "Session {}: {} -> {}", self.session_id, self.state.value, target.value
        )
        self.state = target

    @property
    def is_live(self) -> bool:
        return self.state in (SessionState.CONNECTING, SessionState.OPEN)


class StreamingSessionManager:
    """Own the single realtime session with the inference service.

    Activation takes the capture lease (stopping snapshot polling) and then
    connects. Once open, microphone audio and downsampled frames are
    forwarded on independent tasks while remote audio is handed to the
    playback scheduler. Every close path funnels through ``_close`` which
    releases devices and the lease and fires ``on_closed`` exactly once.
    """

    OWNER = "streaming"

    def __init__(
        self,
        connector: StreamingConnector,
        capture: CaptureSourceManager,
        lease: CaptureLease,
        config: StreamingConfig,
        microphone_factory: Callable[[], AudioInput],
        speaker_factory: Callable[[], AudioOutput],
        on_closed: Callable[[str, Exception | None], Awaitable[None]] | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.on_closed = on_closed
        self._connector = connector
        self._capture = capture
        self._lease = lease
        self._microphone_factory = microphone_factory
        self._speaker_factory = speaker_factory
        self._sleep = sleep
        self._session: StreamingSession | None = None
        self._session_count = 0

    @property
    def session(self) -> StreamingSession | None:
        return self._session

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.IDLE
        return self._session.state

    @property
    def is_active(self) -> bool:
        return self._session is not None and self._session.is_live

    async def activate(self) -> StreamingSession:
        """Connect a new session; polling is stopped through the lease first."""
        if self._capture.is_synthetic:
            message = "Voice streaming requires a physical capture device"
            raise InvalidTransition(message)
        if not self._capture.is_active:
            message = "Voice streaming requires an active capture source"
            raise InvalidTransition(message)
        if self.is_active:
            message = f"Streaming session already {self.state.value}"
            raise InvalidTransition(message)

        self._session_count += 1
        session = StreamingSession(session_id=self._session_count)
        self._session = session
        session.transition(SessionState.CONNECTING)

        await self._lease.acquire(self.OWNER, self.deactivate)
        if session.state is not SessionState.CONNECTING:
            self._lease.release(self.OWNER)
            return session

        session.connect_task = asyncio.create_task(
            asyncio.wait_for(
                self._connector.connect(), self.config.connect_timeout_s
            ),
            name=f"stream-connect-{session.session_id}",
        )
        try:
            channel = await session.connect_task
        except asyncio.CancelledError:
            if session.state is SessionState.CLOSED:
                logger.info("Session {}: connect abandoned", session.session_id)
                return session
            await self._close(session, "activation cancelled")
            raise
        except asyncio.TimeoutError as exc:
            error = StreamingSessionError(
                f"Voice session did not connect within {self.config.connect_timeout_s:g}s"
            )
            await self._close(session, "connect timed out", error)
            raise error from exc
        except Exception as exc:
            error = StreamingSessionError(f"Could not open voice session: {exc}")
            await self._close(session, "connect failed", error)
            raise error from exc

        if session.state is not SessionState.CONNECTING:
            await channel.close()
            return session

        session.channel = channel
        try:
            await self._open_audio(session)
        except Exception as exc:
            error = StreamingSessionError(f"Audio devices unavailable: {exc}")
            await self._close(session, "audio device failure", error)
            raise error from exc

        if session.state is not SessionState.CONNECTING:
            # Closed while the devices were opening.
            for device in (session.microphone, session.speaker):
                if device is not None:
                    device.close()
            return session

        session.transition(SessionState.OPEN)
        session.tasks = [
            asyncio.create_task(self._forward_audio(session), name="stream-audio"),
            asyncio.create_task(self._forward_video(session), name="stream-video"),
            asyncio.create_task(self._receive(session), name="stream-receive"),
        ]
        logger.success("Voice session {} open", session.session_id)
        return session

    async def deactivate(self, reason: str = "deactivated by operator") -> None:
        """Close the current session, if any."""
        session = self._session
        if session is None or not session.is_live:
            return
        await self._close(session, reason)

    async def _open_audio(self, session: StreamingSession) -> None:
        session.speaker = self._speaker_factory()
        await session.speaker.open()
        session.playback = AudioPlaybackScheduler(session.speaker)
        session.playback.start()
        session.microphone = self._microphone_factory()
        await session.microphone.open()

    async def _forward_audio(self, session: StreamingSession) -> None:
        microphone = session.microphone
        try:
            async for chunk in microphone.chunks():
                if session.state is not SessionState.OPEN:
                    return
                await session.channel.send_audio(chunk, microphone.sample_rate)
                session.chunks_sent += 1
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._fail(session, "audio uplink failed", exc)

    async def _forward_video(self, session: StreamingSession) -> None:
        interval = 1.0 / self.config.video_fps
        try:
            while session.state is SessionState.OPEN:
                snapshot = await self._capture.snapshot(
                    max_width=self.config.video_max_width,
                    quality=self.config.video_jpeg_quality,
                )
                if snapshot is not None and session.state is SessionState.OPEN:
                    await session.channel.send_image(snapshot)
                    session.frames_sent += 1
                await self._sleep(interval)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._fail(session, "video uplink failed", exc)

    async def _receive(self, session: StreamingSession) -> None:
        try:
            async for event in session.channel.events():
                if session.state is not SessionState.OPEN:
                    return
                if isinstance(event, AudioChunk):
                    session.segments_received += 1
                    segment = AudioSegment(
                        sequence=session.segments_received,
                        samples=np.frombuffer(event.data, dtype=np.int16),
                        sample_rate=event.sample_rate,
                    )
                    session.playback.schedule(segment)
                elif isinstance(event, TurnComplete):
                    logger.debug("Session {}: turn complete", session.session_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._fail(session, "downlink failed", exc)
            return
        await self._close(session, "closed by remote")

    async def _fail(self, session: StreamingSession, reason: str, exc: Exception) -> None:
        logger.warning("Session {}: {}: {}", session.session_id, reason, exc)
        error = StreamingSessionError(f"{reason}: {exc}")
        error.__cause__ = exc
        await self._close(session, reason, error)

    async def _close(
        self,
        session: StreamingSession,
        reason: str,
        error: Exception | None = None,
    ) -> None:
        if session.state is SessionState.CLOSED:
            return
        session.transition(SessionState.CLOSED)
        session.close_reason = reason

        connect = session.connect_task
        if connect is not None and not connect.done():
            connect.cancel()

        current = asyncio.current_task()
        others = [task for task in session.tasks if task is not current]
        for task in others:
            task.cancel()
        for task in others:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if session.microphone is not None:
            session.microphone.close()
        if session.playback is not None:
            session.playback.halt()
        if session.speaker is not None:
            session.speaker.close()
        if session.channel is not None:
            try:
                await session.channel.close()
            except Exception as exc:
                logger.warning("Session {}: channel close failed: {}", session.session_id, exc)

        self._lease.release(self.OWNER)
        logger.info("Voice session {} closed ({})", session.session_id, reason)
        if self.on_closed is not None:
            await self.on_closed(reason, error)
