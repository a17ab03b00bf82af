"""Gap-free, order-preserving scheduling of received audio segments."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from loguru import logger


if TYPE_CHECKING:
    from resq_eye.pipeline.types import AudioSegment


class AudioSink(Protocol):
    """Output device that can start a segment at an absolute clock time."""

    def now(self) -> float:
        """Current time on the clock used for ``play_at``."""
        ...

    def play_at(self, segment: AudioSegment, start_time: float) -> None: ...

    def stop_all(self) -> None:
        """Silence every queued or playing segment immediately."""
        ...


@dataclass(frozen=True)
class ScheduledSegment:
    """A segment with the start time it was given."""

    segment: AudioSegment
    start_time: float

    @property
    def end_time(self) -> float:
        return self.start_time + self.segment.duration


class AudioPlaybackScheduler:
    """Lay received segments back to back on the sink's clock.

    ``next_playback_time`` only moves forward by each segment's duration.
    When the stream has fallen behind real time it restarts at ``now``
    instead of compressing the gap.
    """

    def __init__(self, sink: AudioSink) -> None:
        self._sink = sink
        self._pending: deque[ScheduledSegment] = deque()
        self.next_playback_time = 0.0
        self.resyncs = 0

    @property
    def pending(self) -> tuple[ScheduledSegment, ...]:
        return tuple(self._pending)

    def start(self) -> None:
        """Reset the timeline to the sink's current time."""
        self._pending.clear()
        self.next_playback_time = self._sink.now()

    def schedule(self, segment: AudioSegment) -> ScheduledSegment:
        """Queue ``segment`` directly after the previously scheduled one."""
        now = self._sink.now()
        self.prune(now)
        if self.next_playback_time < now:
            logger.debug(
                "Playback behind by {:.0f} ms; resuming at now",
                (now - self.next_playback_time) * 1000.0,
            )
            self.next_playback_time = now
            self.resyncs += 1

        scheduled = ScheduledSegment(segment=segment, start_time=self.next_playback_time)
        self.next_playback_time += segment.duration
        self._pending.append(scheduled)
        self._sink.play_at(segment, scheduled.start_time)
        return scheduled

    def prune(self, now: float | None = None) -> int:
        """Forget segments that finished playing; returns how many."""
        if now is None:
            now = self._sink.now()
        released = 0
        while self._pending and self._pending[0].end_time <= now:
            self._pending.popleft()
            released += 1
        return released

    def halt(self) -> None:
        """Stop all audio regardless of playback position."""
        self._sink.stop_all()
        dropped = len(self._pending)
        self._pending.clear()
        if dropped:
            logger.debug("Halted playback with {} segment(s) queued", dropped)
