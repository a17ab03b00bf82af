"""Microphone capture and speaker output through sounddevice."""

from __future__ import annotations

import asyncio
import contextlib
import threading
from collections import deque
from typing import TYPE_CHECKING

import numpy as np
from loguru import logger


try:
    import sounddevice as sd

    SOUNDDEVICE_AVAILABLE = True
except (ImportError, OSError):
    sd = None
    SOUNDDEVICE_AVAILABLE = False
    logger.warning("PortAudio not available - voice streaming disabled")


if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from resq_eye.config import AudioConfig
    from resq_eye.pipeline.types import AudioSegment


def _require_portaudio() -> None:
    if not SOUNDDEVICE_AVAILABLE:
        message = "PortAudio is not available on this host"
        raise RuntimeError(message)


def resample_i16(samples: np.ndarray, src_hz: int, dst_hz: int) -> np.ndarray:
    """Linearly resample mono int16 audio."""
    if samples.size == 0 or src_hz == dst_hz:
        return samples.astype(np.int16, copy=False)
    n_out = int(round(len(samples) * dst_hz / float(src_hz)))
    if n_out <= 0:
        return np.zeros((0,), dtype=np.int16)
    xi = np.linspace(0.0, 1.0, num=len(samples), endpoint=False)
    xo = np.linspace(0.0, 1.0, num=n_out, endpoint=False)
    resampled = np.interp(xo, xi, samples.astype(np.float64))
    return np.clip(resampled, -32768, 32767).astype(np.int16)


class MicrophoneStream:
    """Capture mono PCM16 in fixed-size blocks and hand them to the event loop.

    The PortAudio callback runs on its own thread; blocks are pushed into an
    asyncio queue with ``call_soon_threadsafe``, dropping the oldest block
    when the consumer falls behind.
    """

    def __init__(self, config: AudioConfig) -> None:
        self.config = config
        self.sample_rate = config.input_rate
        self._stream: sd.RawInputStream | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[bytes] | None = None
        self.dropped = 0

    async def open(self) -> None:
        _require_portaudio()
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.config.input_queue_size)
        self._stream = sd.RawInputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="int16",
            blocksize=self.config.chunk_samples,
            device=self.config.input_device,
            callback=self._callback,
        )
        await asyncio.to_thread(self._stream.start)
        logger.info(
            "Microphone open ({} Hz, {} samples per chunk)",
            self.sample_rate,
            self.config.chunk_samples,
        )

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("Microphone status: {}", status)
        loop = self._loop
        if loop is None:
            return
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(self._put_drop_oldest, bytes(indata))

    def _put_drop_oldest(self, chunk: bytes) -> None:
        if self._queue is None:
            return
        if self._queue.full():
            with contextlib.suppress(asyncio.QueueEmpty):
                self._queue.get_nowait()
                self.dropped += 1
        self._queue.put_nowait(chunk)

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield captured blocks until the stream is closed."""
        while self._queue is not None:
            yield await self._queue.get()

    def close(self) -> None:
        stream, self._stream = self._stream, None
        self._loop = None
        self._queue = None
        if stream is not None:
            stream.stop()
            stream.close()
            logger.info("Microphone closed")


class SoundDeviceSink:
    """Speaker output that honours absolute start times.

    The sink keeps its own clock: the number of samples already handed to
    the device, in seconds. Segments are placed on that sample timeline,
    the output callback mixes whatever overlaps the block being rendered and
    drops segments once they have been played.
    """

    def __init__(self, config: AudioConfig) -> None:
        self.config = config
        self.sample_rate = config.output_rate
        self._lock = threading.Lock()
        self._segments: deque[tuple[int, np.ndarray]] = deque()
        self._cursor = 0
        self._stream: sd.OutputStream | None = None

    def now(self) -> float:
        """Return the stream time up to which audio has been rendered."""
        with self._lock:
            return self._cursor / self.sample_rate

    async def open(self) -> None:
        _require_portaudio()
        self._stream = sd.OutputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="int16",
            device=self.config.output_device,
            callback=self._callback,
        )
        with self._lock:
            self._cursor = 0
        await asyncio.to_thread(self._stream.start)
        logger.info("Speaker open ({} Hz)", self.sample_rate)

    def play_at(self, segment: AudioSegment, start_time: float) -> None:
        samples = resample_i16(segment.samples, segment.sample_rate, self.sample_rate)
        start = int(round(start_time * self.sample_rate))
        with self._lock:
            self._segments.append((start, samples))

    def _callback(self, outdata, frames, time_info, status) -> None:
        block = np.zeros(frames, dtype=np.int16)
        with self._lock:
            begin = self._cursor
            end = begin + frames
            for start, samples in self._segments:
                if start >= end:
                    break
                seg_end = start + len(samples)
                if seg_end <= begin:
                    continue
                lo, hi = max(begin, start), min(end, seg_end)
                block[lo - begin : hi - begin] = samples[lo - start : hi - start]
            while self._segments and self._segments[0][0] + len(self._segments[0][1]) <= end:
                self._segments.popleft()
            self._cursor = end
        outdata[:, 0] = block

    def stop_all(self) -> None:
        with self._lock:
            self._segments.clear()

    def close(self) -> None:
        self.stop_all()
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()
            logger.info("Speaker closed")
