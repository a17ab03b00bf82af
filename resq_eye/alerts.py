"""Turn inference text into operator alerts and spoken warnings."""

from __future__ import annotations

import re
import threading
from typing import TYPE_CHECKING, Protocol

import pyttsx3
from loguru import logger

from resq_eye.pipeline.types import AlertState, InferenceResult


if TYPE_CHECKING:
    from collections.abc import Callable


COOLDOWN_STATUS = "SYSTEM COOLDOWN // RETRYING..."
STANDBY_MARKERS = ("RATE_LIMIT", "COOLDOWN", "STANDBY")
ALERT_PREFIX = re.compile(r"^\s*ALERT:", re.IGNORECASE)


def is_standby_message(text: str) -> bool:
    """Return True for rate-limit or standby chatter that must stay silent."""
    upper = text.upper()
    return any(marker in upper for marker in STANDBY_MARKERS)


def strip_alert_marker(text: str) -> str:
    """Drop a leading ``ALERT:`` marker."""
    return ALERT_PREFIX.sub("", text, count=1).strip()


class SpeechOutput(Protocol):
    """Text-to-speech provider."""

    @property
    def is_speaking(self) -> bool: ...

    def speak(self, text: str) -> None: ...


class Pyttsx3Speech:
    """Speak on a worker thread so the event loop never waits on the engine."""

    def __init__(self, rate_factor: float = 1.1) -> None:
        self.rate_factor = rate_factor
        self._speaking = threading.Event()

    @property
    def is_speaking(self) -> bool:
        return self._speaking.is_set()

    def speak(self, text: str) -> None:
        if self._speaking.is_set():
            return
        self._speaking.set()
        threading.Thread(
            target=self._run, args=(text,), name="speech", daemon=True
        ).start()

    def _run(self, text: str) -> None:
        try:
            engine = pyttsx3.init()
            engine.setProperty("rate", int(engine.getProperty("rate") * self.rate_factor))
            engine.say(text)
            engine.runAndWait()
        except (RuntimeError, OSError) as exc:
            logger.warning("Speech output failed: {}", exc)
        finally:
            self._speaking.clear()


class AlertDispatcher:
    """Classify results as SAFE or danger, speak danger, publish status.

    The audio flag is read through ``audio_enabled`` on every dispatch so a
    mute toggled by the operator applies to the very next result.
    """

    def __init__(
        self,
        speech: SpeechOutput | None,
        audio_enabled: Callable[[], bool],
    ) -> None:
        self.speech = speech
        self.state = AlertState()
        self._audio_enabled = audio_enabled

    def dispatch_text(self, text: str) -> AlertState:
        """Dispatch raw text as returned by the snapshot service."""
        if text.strip().upper() == "RATE_LIMIT":
            return self.dispatch(InferenceResult.rate_limited())
        return self.dispatch(InferenceResult.from_text(text))

    def dispatch(self, result: InferenceResult) -> AlertState:
        if result.is_rate_limited:
            self.state.status_text = COOLDOWN_STATUS
            self.state.is_danger = False
            return self.state

        text = result.text.strip()
        self.state.status_text = text
        is_safe = "SAFE" in text.upper()
        self.state.is_danger = not is_safe

        if not is_safe:
            logger.warning("Threat reported: {}", text)
            if self._audio_enabled():
                self._speak(text)
        return self.state

    def set_status(self, text: str, *, is_danger: bool = False) -> None:
        """Publish a status line that did not come from the model."""
        self.state.status_text = text
        self.state.is_danger = is_danger

    def _speak(self, text: str) -> None:
        if self.speech is None or is_standby_message(text):
            return
        if self.speech.is_speaking:
            logger.debug("Alert already being spoken; suppressing {!r}", text)
            return
        spoken = strip_alert_marker(text)
        self.speech.speak(spoken)
        self.state.last_spoken_text = spoken
