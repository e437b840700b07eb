"""Inbound WhatsApp event models."""

from dataclasses import dataclass, field
from typing import Any, Literal

MessageType = Literal["text", "audio", "image"]


@dataclass(frozen=True)
class PromptPart:
    """One content part of a chat completion prompt.

    ``kind`` is "text" or "image_url"; exactly one of ``text``/``image_url`` is set.
    """

    kind: Literal["text", "image_url"]
    text: str | None = None
    image_url: str | None = None

    @classmethod
    def of_text(cls, text: str) -> "PromptPart":
        return cls(kind="text", text=text)

    @classmethod
    def of_image(cls, url: str) -> "PromptPart":
        return cls(kind="image_url", image_url=url)

    def to_openai(self) -> dict[str, Any]:
        """Serialize to the chat completions content-part format."""
        if self.kind == "image_url":
            return {"type": "image_url", "image_url": {"url": self.image_url}}
        return {"type": "text", "text": self.text or ""}


@dataclass(frozen=True)
class InboundEvent:
    """Normalized inbound message, consumed exactly once by the pipeline.

    PII: ``sender_id`` (phone number) and ``text_payload`` are never logged.
    """

    sender_id: str
    message_type: MessageType
    text_payload: str
    ai_prompt_parts: tuple[PromptPart, ...] = field(default_factory=tuple)
    message_id: str = ""
