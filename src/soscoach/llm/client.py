"""
HTTP wrapper for OpenAI-compatible /v1/chat/completions endpoints.

Any compatible provider works. When the primary provider returns 429 and a
fallback provider is configured, the request is retried there.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..config import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4.1-mini"


class LLMAPIError(Exception):
    """Raised when the LLM API returns an error."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"LLM API error {status_code}: {message}")


@dataclass
class ChatClient:
    """
    Client for OpenAI-compatible chat completions.

    Configure via environment variables:
        LLM_API_KEY / OPENAI_API_KEY: API key
        LLM_BASE_URL: API base URL (default: OpenAI)
        LLM_MODEL: default model name
        LLM_FALLBACK_BASE_URL / LLM_FALLBACK_API_KEY / LLM_FALLBACK_MODEL:
            optional provider used when the primary is rate-limited
    """

    api_key: str = ""
    model: str = ""
    base_url: str = ""
    timeout: float = 30.0
    max_retries: int = 2
    _fallback: Optional[Tuple[str, str, str]] = field(default=None, repr=False)

    def __post_init__(self):
        load_dotenv()
        if not self.base_url:
            self.base_url = os.environ.get("LLM_BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/")
        if not self.model:
            self.model = os.environ.get("LLM_MODEL", DEFAULT_MODEL).strip()
        if not self.api_key:
            self.api_key = self._load_api_key()
        self._fallback = self._load_fallback()

    def _load_api_key(self) -> str:
        for env_var in ("LLM_API_KEY", "OPENAI_API_KEY"):
            key = os.environ.get(env_var, "").strip()
            if key:
                return key
        logger.warning("[LLMClient] No LLM_API_KEY or OPENAI_API_KEY found; coach lines will use templates")
        return ""

    def _load_fallback(self) -> Optional[Tuple[str, str, str]]:
        """Load fallback provider if a second endpoint is configured."""
        fb_url = os.environ.get("LLM_FALLBACK_BASE_URL", "").strip().rstrip("/")
        fb_key = os.environ.get("LLM_FALLBACK_API_KEY", "").strip()
        if not fb_url or not fb_key or fb_url == self.base_url:
            return None
        fb_model = os.environ.get("LLM_FALLBACK_MODEL", self.model).strip()
        logger.info(f"[LLMClient] Fallback provider: {fb_url}")
        return (fb_url, fb_model, fb_key)

    def _headers(self, api_key: Optional[str] = None) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key or self.api_key}",
            "Content-Type": "application/json",
        }

    def _do_request(
        self,
        url: str,
        body: Dict[str, Any],
        api_key: Optional[str] = None,
    ) -> str:
        """Make a single chat completion request. Returns content or raises."""
        resp = requests.post(
            url,
            headers=self._headers(api_key),
            json=body,
            timeout=self.timeout,
        )

        if resp.status_code == 200:
            try:
                message = resp.json()["choices"][0]["message"]
                return message.get("content") or ""
            except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
                raise LLMAPIError(502, f"Malformed completion body: {e!r}")

        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After", "?")
            raise LLMAPIError(429, f"Rate limited (Retry-After: {retry_after}s)")

        raise LLMAPIError(resp.status_code, resp.text)

    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 256,
        response_format: Optional[Dict[str, str]] = None,
        model_override: Optional[str] = None,
    ) -> str:
        """
        Call /chat/completions on the primary provider.
        On 429, tries the fallback provider if configured.

        Returns the assistant's response content as a string.
        Raises LLMAPIError on failure.
        """
        if not self.api_key:
            raise LLMAPIError(401, "No API key configured")

        body: Dict[str, Any] = {
            "model": model_override or self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format is not None:
            body["response_format"] = response_format

        url = f"{self.base_url}/chat/completions"

        last_error: Optional[LLMAPIError] = None
        for attempt in range(self.max_retries + 1):
            try:
                return self._do_request(url, body)
            except LLMAPIError as e:
                if e.status_code == 429 and self._fallback:
                    fb_url, fb_model, fb_key = self._fallback
                    fb_body = {**body, "model": fb_model}
                    logger.info(f"[LLMClient] Primary rate-limited, trying fallback ({fb_url})")
                    try:
                        return self._do_request(
                            f"{fb_url}/chat/completions", fb_body, api_key=fb_key
                        )
                    except LLMAPIError as fb_e:
                        logger.warning(f"[LLMClient] Fallback also failed: {fb_e}")
                        last_error = e
                        break
                elif e.status_code == 429:
                    logger.warning("[LLMClient] Rate limited (429), no fallback; failing fast")
                    raise
                elif e.status_code in (400, 401, 403, 404):
                    raise
                else:
                    last_error = e
            except requests.exceptions.Timeout:
                logger.warning(f"[LLMClient] Request timed out (attempt {attempt + 1}/{self.max_retries + 1})")
                last_error = LLMAPIError(408, "Request timed out")
            except requests.exceptions.ConnectionError as e:
                logger.warning(f"[LLMClient] Connection error: {e}")
                last_error = LLMAPIError(0, f"Connection error: {e}")
            except requests.exceptions.RequestException as e:
                logger.warning(f"[LLMClient] Request failed: {e}")
                last_error = LLMAPIError(0, f"Request failed: {e}")

            if attempt < self.max_retries:
                time.sleep(2 ** attempt)

        raise last_error  # type: ignore[misc]

    @property
    def is_available(self) -> bool:
        """Check if the client has an API key configured."""
        return bool(self.api_key)
