"""
ResponseGenerator: phrases one coach line per conversation step.

Returns an ``Outcome`` so the caller picks the failure policy. An empty
reply from the model counts as a failure.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..core.errors import GenerationFailed
from ..core.utils import Outcome
from .client import ChatClient
from .prompts import TEMPERATURE, PromptContext, build_prompt

logger = logging.getLogger(__name__)


class ResponseGenerator:
    def __init__(self, client: Optional[ChatClient] = None):
        self.client = client
        self._available: Optional[bool] = None

    @property
    def is_available(self) -> bool:
        """Check if LLM generation is available."""
        if self._available is not None:
            return self._available
        if self.client is None:
            self._available = False
            return False
        self._available = self.client.is_available
        return self._available

    def generate(self, ctx: PromptContext) -> Outcome[str]:
        if not self.is_available:
            logger.warning("[ResponseGenerator] Not available, no API key")
            return Outcome.failure(GenerationFailed("LLM client not configured"))

        system_prompt, user_prompt, max_tokens = build_prompt(ctx)
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        logger.info(f"[ResponseGenerator] {ctx.kind}/{ctx.prompt_key} (max_tokens={max_tokens})")

        try:
            response = self.client.chat_completion(
                messages=messages,
                temperature=TEMPERATURE,
                max_tokens=max_tokens,
            )
        except Exception as e:
            logger.warning(f"[ResponseGenerator] Exception: {e}")
            return Outcome.failure(GenerationFailed(str(e)))

        if response and response.strip():
            return Outcome.success(response.strip())
        logger.warning("[ResponseGenerator] Empty response from LLM")
        return Outcome.failure(GenerationFailed("No response generated"))
