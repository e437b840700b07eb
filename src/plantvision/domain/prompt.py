"""Completion prompt construction for one inbound event."""

from typing import Sequence

from plantvision.domain.models import ConversationTurn
from plantvision.whatsapp.models import InboundEvent, PromptPart


def render_transcript(turns: Sequence[ConversationTurn]) -> str:
    """Render turns as ``role: content`` lines, oldest first."""
    return "\n".join(f"{turn.role}: {turn.content}" for turn in turns)


def build_prompt(
    event: InboundEvent,
    turns: Sequence[ConversationTurn],
) -> tuple[PromptPart, ...]:
    """Build the prompt parts sent to the responder.

    Media events (image, audio) use the parts built at ingestion unchanged.
    Text events get a single text part holding the prior conversation and the
    new utterance, ending with an open ``Assistant:`` line.
    """
    if event.message_type != "text" and event.ai_prompt_parts:
        return event.ai_prompt_parts

    transcript = render_transcript(turns)
    return (
        PromptPart.of_text(
            f"Previous conversation:\n{transcript}\n\n"
            f"User: {event.text_payload}\nAssistant:"
        ),
    )
