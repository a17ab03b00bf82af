"""Bidirectional voice + vision channel backed by the Gemini Live API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Union

from google import genai
from google.genai import types
from loguru import logger


if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from resq_eye.config import AudioConfig, InferenceConfig
    from resq_eye.pipeline.types import FrameSnapshot


@dataclass(frozen=True)
class AudioChunk:
    """Raw PCM16 audio emitted by the remote model."""

    data: bytes
    sample_rate: int


@dataclass(frozen=True)
class TurnComplete:
    """The remote model finished speaking for this turn."""


StreamEvent = Union[AudioChunk, TurnComplete]


class StreamingChannel(Protocol):
    """An open duplex session."""

    async def send_audio(self, pcm: bytes, sample_rate: int) -> None: ...

    async def send_image(self, snapshot: FrameSnapshot) -> None: ...

    def events(self) -> AsyncIterator[StreamEvent]:
        """Yield remote events until the remote side closes."""
        ...

    async def close(self) -> None: ...


class StreamingConnector(Protocol):
    """Factory for streaming channels."""

    async def connect(self) -> StreamingChannel:
        """Open a session; returns once the remote side acknowledged it."""
        ...


class GeminiLiveChannel:
    """Adapter over an entered ``client.aio.live.connect`` session."""

    def __init__(self, session_cm, session, output_rate: int) -> None:
        self._session_cm = session_cm
        self._session = session
        self._output_rate = output_rate
        self._closed = False

    async def send_audio(self, pcm: bytes, sample_rate: int) -> None:
        await self._session.send_realtime_input(
            audio=types.Blob(data=pcm, mime_type=f"audio/pcm;rate={sample_rate}")
        )

    async def send_image(self, snapshot: FrameSnapshot) -> None:
        await self._session.send_realtime_input(
            video=types.Blob(data=snapshot.data, mime_type=snapshot.mime_type)
        )

    async def events(self) -> AsyncIterator[StreamEvent]:
        # receive() ends after every turn; an empty turn means the socket closed.
        while not self._closed:
            received = False
            async for message in self._session.receive():
                received = True
                if message.data:
                    yield AudioChunk(data=message.data, sample_rate=self._output_rate)
                content = message.server_content
                if content is not None and content.turn_complete:
                    yield TurnComplete()
            if not received:
                logger.info("Gemini Live session closed by remote")
                return

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._session_cm.__aexit__(None, None, None)
        logger.info("Gemini Live session closed")


class GeminiLiveConnector:
    """Open Gemini Live sessions answering in audio."""

    def __init__(
        self,
        config: InferenceConfig,
        audio: AudioConfig,
        client: genai.Client | None = None,
    ) -> None:
        if client is None:
            if not config.api_key:
                message = "API key missing. Set GEMINI_API_KEY or GOOGLE_API_KEY."
                raise ValueError(message)
            client = genai.Client(api_key=config.api_key)
        self.config = config
        self.audio = audio
        self._client = client

    async def connect(self) -> GeminiLiveChannel:
        logger.info("Connecting Live session (model={})", self.config.live_model)
        live_config = types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            system_instruction=self.config.voice_prompt,
        )
        session_cm = self._client.aio.live.connect(
            model=self.config.live_model, config=live_config
        )
        session = await session_cm.__aenter__()
        logger.success("Live session open")
        return GeminiLiveChannel(session_cm, session, self.audio.output_rate)
