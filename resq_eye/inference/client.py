"""Snapshot inference client backed by Gemini."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import httpx
from google import genai
from google.genai import errors, types
from loguru import logger

from resq_eye.errors import InferenceError, RateLimited
from resq_eye.pipeline.types import InferenceResult


if TYPE_CHECKING:
    from resq_eye.config import InferenceConfig
    from resq_eye.pipeline.types import FrameSnapshot


RATE_LIMIT_CODES = frozenset({429})
RATE_LIMIT_STATUSES = frozenset({"RESOURCE_EXHAUSTED"})


class InferenceClient(Protocol):
    """Request/response inference over single frames."""

    async def analyze_frame(self, snapshot: FrameSnapshot) -> InferenceResult:
        """Classify one frame.

        Returns a RATE_LIMITED result when the service pushes back and
        raises InferenceError for any other failure.
        """
        ...


def classify_api_error(exc: errors.APIError) -> InferenceError:
    """Map a Gemini API error onto the client error taxonomy."""
    status = (exc.status or "").upper()
    if exc.code in RATE_LIMIT_CODES or status in RATE_LIMIT_STATUSES:
        return RateLimited(f"Gemini rate limit ({exc.code} {status})")
    return InferenceError(f"Gemini request failed ({exc.code} {status}): {exc.message}")


class GeminiInferenceClient:
    """Send a JPEG frame plus the live-scan instruction to Gemini."""

    def __init__(
        self,
        config: InferenceConfig,
        client: genai.Client | None = None,
    ) -> None:
        if client is None:
            if not config.api_key:
                message = "API key missing. Set GEMINI_API_KEY or GOOGLE_API_KEY."
                raise ValueError(message)
            client = genai.Client(api_key=config.api_key)
        self.config = config
        self._client = client

    async def analyze_frame(self, snapshot: FrameSnapshot) -> InferenceResult:
        """Ask the model whether the frame shows immediate danger."""
        try:
            response = await self._client.aio.models.generate_content(
                model=self.config.model,
                contents=[
                    types.Part.from_bytes(
                        data=snapshot.data, mime_type=snapshot.mime_type
                    ),
                    self.config.prompt,
                ],
                config=types.GenerateContentConfig(
                    temperature=self.config.temperature
                ),
            )
        except errors.APIError as exc:
            error = classify_api_error(exc)
            if isinstance(error, RateLimited):
                logger.warning("Gemini rate limit hit ({}); skipping frame", exc.code)
                return InferenceResult.rate_limited()
            raise error from exc
        except (httpx.HTTPError, TimeoutError, OSError) as exc:
            message = f"Gemini transport error: {exc}"
            raise InferenceError(message) from exc
        except Exception as exc:
            message = f"Gemini request failed: {type(exc).__name__}: {exc}"
            raise InferenceError(message) from exc

        return InferenceResult.from_text(response.text)
