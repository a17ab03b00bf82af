"""Unit tests for the voice streaming session manager."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from resq_eye.config import PollConfig, StreamingConfig
from resq_eye.errors import InvalidTransition, StreamingSessionError
from resq_eye.pipeline.lease import CaptureLease
from resq_eye.pipeline.polling import AdaptivePollingScheduler
from resq_eye.pipeline.streaming import StreamingSession, StreamingSessionManager
from resq_eye.pipeline.types import SessionState
from tests.fakes import (
    FakeCapture,
    FakeClock,
    FakeConnector,
    FakeInferenceClient,
    FakeMicrophone,
    FakeSpeaker,
    ManualSleep,
    settle,
)


class Harness:
    """A streaming manager wired to fakes, with a polling scheduler sharing the lease."""

    def __init__(self, *, synthetic=False, connect_error=None, mic_error=None):
        self.capture = FakeCapture(synthetic=synthetic)
        self.lease = CaptureLease()
        self.sleep = ManualSleep()
        self.clock = FakeClock()
        self.connector = FakeConnector(connect_error)
        self.microphones: list[FakeMicrophone] = []
        self.speakers: list[FakeSpeaker] = []
        self.mic_error = mic_error
        self.on_closed = AsyncMock()
        self.polling = AdaptivePollingScheduler(
            self.capture,
            FakeInferenceClient(),
            self.lease,
            PollConfig(),
            sleep=self.sleep,
        )
        self.manager = StreamingSessionManager(
            self.connector,
            self.capture,
            self.lease,
            StreamingConfig(),
            self._microphone,
            self._speaker,
            on_closed=self.on_closed,
            sleep=self.sleep,
        )

    def _microphone(self):
        mic = FakeMicrophone(self.mic_error)
        self.microphones.append(mic)
        return mic

    def _speaker(self):
        speaker = FakeSpeaker(self.clock)
        self.speakers.append(speaker)
        return speaker

    @property
    def channel(self):
        return self.connector.channels[-1]


class TestSessionTransitions:
    """Tests for the session state machine."""

    def test_legal_path(self):
        session = StreamingSession(session_id=1)

        session.transition(SessionState.CONNECTING)
        session.transition(SessionState.OPEN)
        session.transition(SessionState.CLOSED)

        assert session.state is SessionState.CLOSED
        assert not session.is_live

    def test_idle_cannot_open_directly(self):
        session = StreamingSession(session_id=1)

        with pytest.raises(InvalidTransition):
            session.transition(SessionState.OPEN)

    def test_closed_is_terminal(self):
        session = StreamingSession(session_id=1, state=SessionState.CLOSED)

        with pytest.raises(InvalidTransition):
            session.transition(SessionState.CONNECTING)


class TestActivation:
    """Tests for opening a session."""

    @pytest.mark.asyncio
    async def test_activation_stops_polling(self):
        h = Harness()
        await h.polling.start()
        await settle()

        session = await h.manager.activate()

        assert session.state is SessionState.OPEN
        assert not h.polling.running
        assert h.lease.holder == StreamingSessionManager.OWNER
        assert h.microphones[0].opened
        assert h.speakers[0].opened
        await h.manager.deactivate()

    @pytest.mark.asyncio
    async def test_rejected_on_synthetic_source(self):
        h = Harness(synthetic=True)

        with pytest.raises(InvalidTransition):
            await h.manager.activate()

        assert h.manager.state is SessionState.IDLE
        assert h.lease.holder is None
        assert h.connector.channels == []

    @pytest.mark.asyncio
    async def test_rejected_while_active(self):
        h = Harness()
        await h.manager.activate()

        with pytest.raises(InvalidTransition):
            await h.manager.activate()

        assert len(h.connector.channels) == 1
        await h.manager.deactivate()

    @pytest.mark.asyncio
    async def test_connect_failure_closes_session(self):
        h = Harness(connect_error=ConnectionError("handshake refused"))

        with pytest.raises(StreamingSessionError):
            await h.manager.activate()

        assert h.manager.state is SessionState.CLOSED
        assert h.lease.holder is None
        h.on_closed.assert_awaited_once()
        reason, error = h.on_closed.await_args.args
        assert reason == "connect failed"
        assert isinstance(error, StreamingSessionError)

    @pytest.mark.asyncio
    async def test_deactivate_while_connecting_abandons_connect(self):
        h = Harness()
        h.connector.hang = True

        activation = asyncio.create_task(h.manager.activate())
        await settle()
        assert h.manager.state is SessionState.CONNECTING

        await h.manager.deactivate("operator cancel")
        session = await asyncio.wait_for(activation, 1.0)

        assert session.state is SessionState.CLOSED
        assert session.close_reason == "operator cancel"
        assert h.connector.cancelled
        assert h.lease.holder is None
        assert h.microphones == []
        h.on_closed.assert_awaited_once_with("operator cancel", None)

    @pytest.mark.asyncio
    async def test_connect_timeout_closes_session(self):
        h = Harness()
        h.connector.hang = True
        h.manager.config = StreamingConfig(connect_timeout_s=0.01)

        with pytest.raises(StreamingSessionError, match="did not connect"):
            await h.manager.activate()

        assert h.manager.state is SessionState.CLOSED
        assert h.connector.cancelled
        reason, error = h.on_closed.await_args.args
        assert reason == "connect timed out"
        assert isinstance(error, StreamingSessionError)

    @pytest.mark.asyncio
    async def test_audio_device_failure_closes_channel(self):
        h = Harness(mic_error=OSError("no input device"))

        with pytest.raises(StreamingSessionError):
            await h.manager.activate()

        assert h.channel.closed
        assert h.speakers[0].closed
        assert h.manager.state is SessionState.CLOSED
        h.on_closed.assert_awaited_once()


class TestOpenSession:
    """Tests for traffic on an open session."""

    @pytest.mark.asyncio
    async def test_microphone_audio_is_forwarded(self):
        h = Harness()
        await h.manager.activate()

        h.microphones[0].push(b"\x00\x01" * 4096)
        await settle()

        assert h.channel.audio_sent == [(b"\x00\x01" * 4096, 16000)]
        assert h.manager.session.chunks_sent == 1
        await h.manager.deactivate()

    @pytest.mark.asyncio
    async def test_video_is_downsampled_and_throttled(self):
        h = Harness()
        await h.manager.activate()
        await settle()

        assert len(h.channel.images_sent) == 1
        assert h.capture.snapshot_calls[-1] == (480, 60)
        assert h.sleep.calls[-1] == pytest.approx(0.5)

        h.sleep.release()
        await settle()

        assert len(h.channel.images_sent) == 2
        await h.manager.deactivate()

    @pytest.mark.asyncio
    async def test_received_audio_plays_back_to_back(self):
        h = Harness()
        await h.manager.activate()

        h.channel.push_audio(2400)
        h.channel.push_turn_complete()
        h.channel.push_audio(4800)
        await settle()

        played = h.speakers[0].played
        assert [seq for seq, _ in played] == [1, 2]
        assert played[0][1] == pytest.approx(100.0)
        assert played[1][1] == pytest.approx(100.1)
        await h.manager.deactivate()


class TestClosing:
    """Tests for the close paths."""

    @pytest.mark.asyncio
    async def test_deactivate_releases_everything_once(self):
        h = Harness()
        session = await h.manager.activate()

        await h.manager.deactivate()
        await h.manager.deactivate()

        assert session.state is SessionState.CLOSED
        assert session.close_reason == "deactivated by operator"
        assert h.microphones[0].closed
        assert h.speakers[0].closed
        assert h.speakers[0].stopped == 1
        assert h.channel.closed
        assert h.lease.holder is None
        h.on_closed.assert_awaited_once_with("deactivated by operator", None)

    @pytest.mark.asyncio
    async def test_remote_close(self):
        h = Harness()
        session = await h.manager.activate()

        h.channel.finish()
        await settle()

        assert session.state is SessionState.CLOSED
        assert not h.manager.is_active
        h.on_closed.assert_awaited_once_with("closed by remote", None)

    @pytest.mark.asyncio
    async def test_uplink_failure_closes_with_error(self):
        h = Harness()
        session = await h.manager.activate()
        h.channel.send_error = ConnectionResetError("socket closed")

        h.microphones[0].push(b"\x00\x00")
        await settle()

        assert session.state is SessionState.CLOSED
        h.on_closed.assert_awaited_once()
        reason, error = h.on_closed.await_args.args
        assert reason == "audio uplink failed"
        assert isinstance(error, StreamingSessionError)

    @pytest.mark.asyncio
    async def test_polling_start_revokes_session(self):
        h = Harness()
        session = await h.manager.activate()

        await h.polling.start()

        assert session.state is SessionState.CLOSED
        assert h.lease.holder == AdaptivePollingScheduler.OWNER
        assert h.polling.running
        await h.polling.stop()
