from __future__ import annotations

import logging
from typing import Protocol

from openai import OpenAI, OpenAIError

from schedule_engine.core.config import Settings
from schedule_engine.core.exceptions import ConfigurationError, ReasoningServiceError

logger = logging.getLogger(__name__)


class Reasoner(Protocol):
    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the raw text answer, expected to be a JSON object."""


class OpenAIReasoningClient:
    def __init__(self, settings: Settings):
        if not settings.reasoning_configured:
            raise ConfigurationError("Reasoning service is not configured: set REASONING_API_KEY")
        self.model = settings.reasoning_model
        self.temperature = settings.reasoning_temperature
        self.max_output_tokens = settings.reasoning_max_output_tokens
        self.client = OpenAI(
            api_key=settings.reasoning_api_key,
            base_url=settings.reasoning_base_url,
            timeout=settings.reasoning_timeout_seconds,
        )

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        try:
            response = self.client.responses.create(
                model=self.model,
                input=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
                text={"format": {"type": "json_object"}},
            )
        except OpenAIError as exc:
            logger.warning("Reasoning service call failed: %s", exc)
            raise ReasoningServiceError(f"Reasoning service call failed: {exc}") from exc

        text = response.output_text
        if not text:
            raise ReasoningServiceError("Reasoning service returned an empty answer")
        logger.info("Reasoning service answered with %d characters", len(text))
        return text
