"""Unit tests for audio playback scheduling and the sounddevice helpers."""

from __future__ import annotations

import asyncio

import numpy as np
import pytest

from resq_eye.audio.devices import MicrophoneStream, SoundDeviceSink, resample_i16
from resq_eye.audio.playback import AudioPlaybackScheduler
from resq_eye.config import AudioConfig
from resq_eye.pipeline.types import AudioSegment
from tests.fakes import FakeClock, FakeSpeaker


def segment(sequence: int, seconds: float, rate: int = 24000) -> AudioSegment:
    return AudioSegment(
        sequence=sequence,
        samples=np.ones(int(seconds * rate), dtype=np.int16),
        sample_rate=rate,
    )


class TestAudioPlaybackScheduler:
    """Tests for gap-free ordered playback."""

    def test_segments_play_back_to_back(self):
        clock = FakeClock(100.0)
        speaker = FakeSpeaker(clock)
        scheduler = AudioPlaybackScheduler(speaker)
        scheduler.start()

        starts = [scheduler.schedule(segment(i, 0.5)).start_time for i in range(3)]

        assert starts == pytest.approx([100.0, 100.5, 101.0])
        assert scheduler.next_playback_time == pytest.approx(101.5)
        assert [seq for seq, _ in speaker.played] == [0, 1, 2]

    def test_arrival_while_playing_queues_after_current(self):
        clock = FakeClock(0.0)
        scheduler = AudioPlaybackScheduler(FakeSpeaker(clock))
        scheduler.start()
        scheduler.schedule(segment(1, 1.0))

        clock.advance(0.4)
        second = scheduler.schedule(segment(2, 0.25))

        assert second.start_time == pytest.approx(1.0)

    def test_late_arrival_resyncs_to_now(self):
        clock = FakeClock(0.0)
        scheduler = AudioPlaybackScheduler(FakeSpeaker(clock))
        scheduler.start()
        scheduler.schedule(segment(1, 0.5))

        clock.advance(3.0)
        late = scheduler.schedule(segment(2, 0.5))

        assert late.start_time == pytest.approx(3.0)
        assert scheduler.resyncs == 1

    def test_no_overlap_under_jittery_arrivals(self):
        clock = FakeClock(0.0)
        scheduler = AudioPlaybackScheduler(FakeSpeaker(clock))
        scheduler.start()
        scheduled = []
        for i, (gap, length) in enumerate(
            [(0.0, 0.2), (0.05, 0.3), (0.6, 0.1), (0.0, 0.4), (1.2, 0.2)]
        ):
            clock.advance(gap)
            scheduled.append(scheduler.schedule(segment(i, length)))

        for earlier, later in zip(scheduled, scheduled[1:]):
            assert later.start_time >= earlier.end_time - 1e-9
        assert all(s.start_time >= 0.0 for s in scheduled)

    def test_prune_forgets_finished_segments(self):
        clock = FakeClock(0.0)
        scheduler = AudioPlaybackScheduler(FakeSpeaker(clock))
        scheduler.start()
        scheduler.schedule(segment(1, 0.5))
        scheduler.schedule(segment(2, 0.5))

        assert scheduler.prune(0.75) == 1
        assert len(scheduler.pending) == 1

    def test_halt_silences_sink(self):
        speaker = FakeSpeaker(FakeClock(0.0))
        scheduler = AudioPlaybackScheduler(speaker)
        scheduler.start()
        scheduler.schedule(segment(1, 0.5))

        scheduler.halt()

        assert speaker.stopped == 1
        assert scheduler.pending == ()


class TestResample:
    """Tests for linear resampling."""

    def test_upsample_length(self):
        out = resample_i16(np.ones(160, np.int16), 16000, 24000)

        assert len(out) == 240
        assert out.dtype == np.int16

    def test_same_rate_is_passthrough(self):
        samples = np.arange(10, dtype=np.int16)

        assert np.array_equal(resample_i16(samples, 24000, 24000), samples)


class TestSoundDeviceSink:
    """Tests for the output callback timeline."""

    def test_callback_renders_segment_at_its_start(self):
        sink = SoundDeviceSink(AudioConfig())
        samples = np.arange(1, 101, dtype=np.int16)
        sink.play_at(AudioSegment(1, samples, 24000), 0.0)

        first = np.zeros((50, 1), dtype=np.int16)
        second = np.zeros((50, 1), dtype=np.int16)
        sink._callback(first, 50, None, None)
        sink._callback(second, 50, None, None)

        assert np.array_equal(first[:, 0], samples[:50])
        assert np.array_equal(second[:, 0], samples[50:])
        assert len(sink._segments) == 0

    def test_future_segment_waits_for_its_slot(self):
        sink = SoundDeviceSink(AudioConfig())
        start_time = 40 / 24000.0
        sink.play_at(AudioSegment(1, np.full(20, 7, np.int16), 24000), start_time)

        out = np.zeros((50, 1), dtype=np.int16)
        sink._callback(out, 50, None, None)

        assert not out[:40, 0].any()
        assert (out[40:50, 0] == 7).all()

    def test_stop_all_clears_timeline(self):
        sink = SoundDeviceSink(AudioConfig())
        sink.play_at(AudioSegment(1, np.ones(10, np.int16), 24000), 0.0)

        sink.stop_all()

        assert len(sink._segments) == 0

    def test_clock_follows_rendered_samples(self):
        sink = SoundDeviceSink(AudioConfig())
        out = np.zeros((240, 1), dtype=np.int16)

        for _ in range(5):
            sink._callback(out, 240, None, None)

        assert sink.now() == pytest.approx(1200 / 24000.0)

    def test_segment_scheduled_at_now_is_not_clipped(self):
        sink = SoundDeviceSink(AudioConfig())
        scheduler = AudioPlaybackScheduler(sink)
        scheduler.start()
        out = np.zeros((50, 1), dtype=np.int16)
        for _ in range(4):
            sink._callback(out, 50, None, None)

        samples = np.arange(1, 31, dtype=np.int16)
        scheduler.schedule(AudioSegment(1, samples, 24000))
        sink._callback(out, 50, None, None)

        assert np.array_equal(out[:30, 0], samples)
        assert not out[30:, 0].any()


class TestMicrophoneStream:
    """Tests for the thread-to-loop chunk handoff."""

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        mic = MicrophoneStream(AudioConfig())
        mic._queue = asyncio.Queue(maxsize=2)

        for chunk in (b"a", b"b", b"c"):
            mic._put_drop_oldest(chunk)

        assert mic.dropped == 1
        assert mic._queue.get_nowait() == b"b"
        assert mic._queue.get_nowait() == b"c"
