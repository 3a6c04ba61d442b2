import base64
import logging
from typing import Optional

import requests

from .errors import EmptyResult, ProviderError, TransportFailure

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"


# =========================================================
# REQUEST ENVELOPE
# =========================================================
def build_request_body(prompt: str, image_bytes: bytes) -> dict:
    """Gemini generateContent body: prompt + jpeg inline data, JSON output."""

    return {
        "contents": [
            {
                "parts": [
                    {"text": prompt},
                    {
                        "inline_data": {
                            "mime_type": "image/jpeg",
                            "data": base64.b64encode(image_bytes).decode(),
                        }
                    },
                ]
            }
        ],
        "generationConfig": {
            "response_mime_type": "application/json",
        },
    }


# =========================================================
# RESPONSE ENVELOPE
# =========================================================
def _field(data: dict, key: str, kind: type, default):
    """Envelope field of the expected type; absent or null gives the default."""

    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise TransportFailure("AI service returned an unexpected response.")
    return value


def extract_text(data) -> str:
    """
    Pull the answer text out of a decoded response envelope.

    An ``error`` field wins over any candidate content.
    """

    if not isinstance(data, dict):
        raise TransportFailure("AI service returned an unexpected response.")

    error = data.get("error")
    if error:
        if isinstance(error, dict):
            message = error.get("message") or error.get("status") or "Unknown error"
        else:
            message = str(error)
        logger.warning("VISION ERROR: %s", error)
        raise ProviderError(f"AI Error: {message}")

    candidates = _field(data, "candidates", list, [])

    if not candidates:
        feedback = _field(data, "promptFeedback", dict, {})
        block_reason = feedback.get("blockReason")
        message = (
            "AI failed to generate a response. "
            "The image might be unclear or violate safety guidelines."
        )
        if block_reason:
            message = f"{message} (blocked: {block_reason})"
        raise EmptyResult(message)

    first = candidates[0]
    if not isinstance(first, dict):
        raise TransportFailure("AI service returned an unexpected response.")

    content = _field(first, "content", dict, {})
    parts = _field(content, "parts", list, [])
    if not parts:
        raise EmptyResult("AI returned an empty response.")

    if not isinstance(parts[0], dict):
        raise TransportFailure("AI service returned an unexpected response.")
    text = parts[0].get("text")

    if not isinstance(text, str) or not text.strip():
        raise EmptyResult("AI returned an empty response.")

    return text


# =========================================================
# CLIENT
# =========================================================
class GeminiVisionClient:
    """
    Sends one cover image + prompt to Gemini and returns the raw answer text.

    Exactly one HTTP round trip per call. Failures are raised, never retried.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def analyze(self, image_bytes: bytes, prompt: str) -> str:

        if not self.api_key:
            raise ProviderError("AI Error: API key is not configured.")

        body = build_request_body(prompt, image_bytes)

        try:
            res = self.session.post(
                self.url,
                params={"key": self.api_key},
                headers={"Content-Type": "application/json"},
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("VISION REQUEST FAIL: %s", e)
            raise TransportFailure(
                "Could not reach the AI service. Check your connection and try again."
            ) from e

        try:
            data = res.json()
        except ValueError as e:
            logger.warning("VISION BAD BODY (%s): %.200s", res.status_code, res.text)
            raise TransportFailure("AI service returned an unreadable response.") from e

        # provider error payload beats HTTP status
        if isinstance(data, dict) and data.get("error"):
            return extract_text(data)

        if not 200 <= res.status_code < 300:
            logger.warning("VISION HTTP %s", res.status_code)
            raise ProviderError(f"AI Error: HTTP {res.status_code}")

        text = extract_text(data)
        logger.debug("VISION RAW: %s", text)

        return text
