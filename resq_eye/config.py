"""Configuration dataclasses for the live sensing client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from resq_eye.pipeline.types import Facing


LIVE_PROMPT = (
    "You are ResQ-Eye. Scan this frame for IMMEDIATE DANGER (Fire, Collapse, "
    "Weapons) or SURVIVORS. If Safe, output 'SAFE'. If Danger, output a 3-word "
    "alert like 'ALERT: FIRE DETECTED' or 'ALERT: SURVIVOR SEEN'."
)

VOICE_PROMPT = (
    "You are ResQ-Eye, a rescue operations assistant watching a live camera "
    "feed. Answer the operator briefly and call out fire, structural collapse, "
    "weapons or survivors as soon as you see them."
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass
class CameraConfig:
    """Camera configuration settings."""

    device_index: int = 0
    front_index: int = 0
    rear_index: int = 1
    width: int = 1280
    height: int = 720
    fps: int = 30
    probe_limit: int = 4
    jpeg_quality: int = 80
    preferred_facing: Facing | None = None
    force_simulation: bool = False

    def index_for(self, facing: Facing | None) -> int:
        """Map a facing onto a device index."""
        if facing is Facing.FRONT:
            return self.front_index
        if facing is Facing.REAR:
            return self.rear_index
        return self.device_index


@dataclass
class SyntheticConfig:
    """Procedural frame generator settings."""

    width: int = 640
    height: int = 360
    fps: float = 30.0
    grid_size: int = 40
    marker_probability: float = 0.05


@dataclass
class PollConfig:
    """Adaptive polling cadence."""

    warmup_s: float = 1.5
    min_delay_ms: float = 6000.0
    max_delay_ms: float = 30000.0
    backoff_factor: float = 1.5
    recovery_factor: float = 0.8


@dataclass
class AudioConfig:
    """Microphone and speaker settings for voice streaming."""

    input_rate: int = 16000
    output_rate: int = 24000
    chunk_samples: int = 4096
    input_device: int | None = None
    output_device: int | None = None
    input_queue_size: int = 16


@dataclass
class StreamingConfig:
    """Voice streaming session settings."""

    video_fps: float = 2.0
    video_max_width: int = 480
    video_jpeg_quality: int = 60
    connect_timeout_s: float = 8.0


@dataclass
class InferenceConfig:
    """Remote model settings."""

    api_key: str = ""
    model: str = "gemini-3-pro-preview"
    live_model: str = "gemini-live-2.5-flash-preview"
    temperature: float = 0.7
    prompt: str = LIVE_PROMPT
    voice_prompt: str = VOICE_PROMPT


@dataclass
class ServerConfig:
    """HTTP operator surface settings."""

    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False
    mjpeg_quality: int = 30


@dataclass
class AppConfig:
    """Top level configuration for the live sensing client."""

    camera: CameraConfig = field(default_factory=CameraConfig)
    synthetic: SyntheticConfig = field(default_factory=SyntheticConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    audio_alerts: bool = True
    log_file: str = "logs/resq_eye.log"

    @classmethod
    def from_env(cls) -> AppConfig:
        """Build a configuration from RESQ_EYE_* environment variables."""
        config = cls()
        facing = os.getenv("RESQ_EYE_FACING", "").strip().lower()
        config.camera.preferred_facing = Facing(facing) if facing else None
        config.camera.device_index = _env_int(
            "RESQ_EYE_CAMERA", config.camera.device_index
        )
        config.camera.force_simulation = _env_bool("RESQ_EYE_SIMULATE", False)
        config.poll.min_delay_ms = _env_float(
            "RESQ_EYE_MIN_DELAY_MS", config.poll.min_delay_ms
        )
        config.poll.max_delay_ms = _env_float(
            "RESQ_EYE_MAX_DELAY_MS", config.poll.max_delay_ms
        )
        config.inference.api_key = (
            os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or ""
        ).strip()
        config.inference.model = os.getenv("RESQ_EYE_MODEL", config.inference.model)
        config.inference.live_model = os.getenv(
            "RESQ_EYE_LIVE_MODEL", config.inference.live_model
        )
        config.server.host = os.getenv("RESQ_EYE_HOST", config.server.host)
        config.server.port = _env_int("RESQ_EYE_PORT", config.server.port)
        config.server.debug = _env_bool("RESQ_EYE_DEBUG", False)
        config.audio_alerts = not _env_bool("RESQ_EYE_MUTE", False)
        config.log_file = os.getenv("RESQ_EYE_LOG_FILE", config.log_file)
        return config
