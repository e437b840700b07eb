"""AI reply generation via the OpenAI chat completions API."""

from __future__ import annotations

import os
from typing import Any, Sequence

import openai
from openai import OpenAI

from plantvision.config import BotConfig
from plantvision.domain.errors import (
    CollaboratorUnavailable,
    ConfigurationError,
    GenerationError,
)
from plantvision.observability.logging import get_logger
from plantvision.observability.redaction import safe_log_context
from plantvision.whatsapp.models import PromptPart

logger = get_logger(__name__)


class OpenAIResponder:
    """Responder that sends the system prompt plus one multi-part user message.

    Usage:
        responder = OpenAIResponder(BotConfig.from_env())  # reads OPENAI_API_KEY
        reply = responder.generate([PromptPart.of_text("Hi")])
    """

    def __init__(
        self,
        config: BotConfig,
        api_key: str | None = None,
        *,
        client: Any = None,
    ) -> None:
        self._config = config
        if client is None:
            api_key = api_key or os.environ.get("OPENAI_API_KEY")
            if not api_key:
                raise ConfigurationError(
                    "OpenAI API key not provided. "
                    "Set OPENAI_API_KEY or pass api_key parameter."
                )
            client = OpenAI(
                api_key=api_key,
                timeout=config.openai_timeout_seconds,
                max_retries=1,
            )
        self._client = client

    def build_messages(self, prompt_parts: Sequence[PromptPart]) -> list[dict[str, Any]]:
        return [
            {"role": "system", "content": self._config.system_prompt},
            {"role": "user", "content": [part.to_openai() for part in prompt_parts]},
        ]

    def generate(self, prompt_parts: Sequence[PromptPart]) -> str:
        """Return the assistant reply text.

        Raises:
            CollaboratorUnavailable: Network failure or timeout.
            GenerationError: Provider error response or empty completion.
        """
        log_ctx = safe_log_context(
            model=self._config.openai_model,
            parts=len(prompt_parts),
        )
        try:
            response = self._client.chat.completions.create(
                model=self._config.openai_model,
                messages=self.build_messages(prompt_parts),
                temperature=self._config.openai_temperature,
                max_tokens=self._config.openai_max_tokens,
            )
        except openai.APIConnectionError as e:
            # Also covers APITimeoutError
            logger.warning(
                "openai unreachable",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
            raise CollaboratorUnavailable(f"openai unreachable: {type(e).__name__}") from e
        except openai.APIError as e:
            logger.error(
                "openai request failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
            raise GenerationError(f"openai request failed: {type(e).__name__}") from e

        if not response.choices:
            raise GenerationError("openai returned no choices")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise GenerationError("openai returned an empty reply")

        return content.strip()
