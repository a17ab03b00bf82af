"""Audio capture, playback scheduling and output devices."""

from __future__ import annotations

from resq_eye.audio.devices import MicrophoneStream, SoundDeviceSink, resample_i16
from resq_eye.audio.playback import AudioPlaybackScheduler, AudioSink, ScheduledSegment


__all__ = [
    "AudioPlaybackScheduler",
    "AudioSink",
    "MicrophoneStream",
    "ScheduledSegment",
    "SoundDeviceSink",
    "resample_i16",
]
