"""
Generative AI client used by the integration pipeline.

``TextGenerator`` is the contract the pipeline depends on; ``GeminiService``
implements it over the Gemini REST ``generateContent`` endpoint.  A service
instance is built per request with the caller's own API key, so nothing
holds a credential at module level.

Failures are translated into the errors of ``app.services.errors``:

    overloaded / 503      -> AIServiceOverloadedError
    quota / 429           -> AIQuotaExceededError
    bad API key / 401/403 -> InvalidCredentialError
    timeout               -> AIServiceTimeoutError
    anything else         -> AIServiceError (raw message kept)

No automatic retry: retrying is left to the user.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from app.config import settings
from app.services.errors import (
    AIQuotaExceededError,
    AIServiceError,
    AIServiceOverloadedError,
    AIServiceTimeoutError,
    InvalidCredentialError,
)
from app.utils.helpers import mask_secret

logger = logging.getLogger(__name__)


class TextGenerator(ABC):
    """Anything that turns a prompt into free-form text."""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Return the model's text answer for *prompt*."""


class GeminiService(TextGenerator):
    """
    Gemini ``generateContent`` over httpx.

    One request per call, fixed temperature, bounded by GEMINI_TIMEOUT.
    """

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise InvalidCredentialError(
                "API Key chưa được cung cấp. Vui lòng nhập Key trong phần Cấu hình."
            )
        self.api_key = api_key
        self.base_url = settings.GEMINI_BASE_URL.rstrip("/")
        self.model = model or settings.GEMINI_MODEL
        self.temperature = (
            settings.GEMINI_TEMPERATURE if temperature is None else temperature
        )
        self.timeout_seconds = float(timeout or settings.GEMINI_TIMEOUT)
        self.timeout = httpx.Timeout(self.timeout_seconds, connect=10.0)
        self._transport = transport

    async def generate(self, prompt: str) -> str:
        """
        POST the prompt and return the concatenated candidate text.

        Raises:
            AIServiceError (or a subclass) on any failure or empty answer.
        """
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": self.temperature},
        }
        logger.info(
            "Calling Gemini model=%s key=%s prompt=%d chars",
            self.model,
            mask_secret(self.api_key),
            len(prompt),
        )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    url,
                    json=payload,
                    headers={"x-goog-api-key": self.api_key},
                )
        except httpx.TimeoutException as exc:
            logger.error("Gemini request timed out after %.0f s", self.timeout_seconds)
            raise AIServiceTimeoutError(
                f"AI không phản hồi sau {self.timeout_seconds:.0f} giây. "
                "Vui lòng thử lại sau."
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Gemini connection error: %s", exc)
            raise AIServiceError(f"Lỗi khi gọi Gemini API: {exc}") from exc

        if resp.status_code != 200:
            raise self._error_from_response(resp)

        text = _candidate_text(_safe_json(resp))
        if not text.strip():
            raise AIServiceError("Không nhận được phản hồi từ Gemini.")
        return text

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _error_from_response(resp: httpx.Response) -> AIServiceError:
        body = _safe_json(resp)
        error = body.get("error") if isinstance(body.get("error"), dict) else {}
        message = str(error.get("message") or resp.text[:300] or resp.reason_phrase)
        api_status = str(error.get("status") or "")
        code = resp.status_code

        logger.error("Gemini returned HTTP %d (%s): %s", code, api_status, message[:300])

        lowered = message.lower()
        if code == 503 or api_status == "UNAVAILABLE" or "overloaded" in lowered:
            return AIServiceOverloadedError(
                "Máy chủ AI đang quá tải. Vui lòng thử lại sau ít phút."
            )
        if code == 429 or api_status == "RESOURCE_EXHAUSTED" or "quota" in lowered:
            return AIQuotaExceededError(
                "API Key đã hết hạn mức sử dụng. Vui lòng dùng Key khác hoặc thử lại sau."
            )
        if code in (401, 403) or "api key not valid" in lowered:
            return InvalidCredentialError("API Key không hợp lệ. Vui lòng kiểm tra lại.")
        return AIServiceError(f"Lỗi khi gọi Gemini API: {message}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _safe_json(resp: httpx.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _candidate_text(body: Dict[str, Any]) -> str:
    """Join the text parts of the first candidate."""
    candidates = body.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))
