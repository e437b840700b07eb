"""Meta Cloud API adapter - verify and normalize webhook payloads.

Turns the first message of a WhatsApp Business webhook into an
``InboundEvent``. Text is supported directly; audio and image need a
``MediaResolver`` to turn the media id into a transcription or an image URL.
"""

import hashlib
import hmac
from typing import Any, Protocol

from plantvision.domain.errors import UnsupportedMessageError
from plantvision.whatsapp.models import InboundEvent, PromptPart

IMAGE_PROMPT_WITH_CAPTION = (
    "Please analyze this image, say which plant it is and check for any "
    'health issues.: "{caption}" in {context}.'
)
IMAGE_PROMPT_WITHOUT_CAPTION = "Please analyze this image in {context}."


class InvalidPayloadError(Exception):
    """Raised when Meta payload has invalid shape."""

    pass


class SignatureVerificationError(Exception):
    """Raised when HMAC signature verification fails."""

    pass


class MediaResolver(Protocol):
    """Resolves WhatsApp media ids for prompt construction."""

    def image_url(self, media_id: str) -> str:
        """Return a URL (or data URL) the AI provider can read."""
        ...

    def transcribe(self, media_id: str) -> str:
        """Return the transcription of a voice message."""
        ...


def verify_signature(payload_bytes: bytes, signature_header: str, app_secret: str) -> None:
    """Verify Meta webhook signature (``X-Hub-Signature-256: sha256=<hex>``).

    Raises:
        SignatureVerificationError: If signature is invalid or missing.
    """
    if not signature_header:
        raise SignatureVerificationError("missing signature header")

    if not signature_header.startswith("sha256="):
        raise SignatureVerificationError("invalid signature format")

    expected_sig = signature_header[len("sha256="):]

    computed_sig = hmac.new(
        key=app_secret.encode("utf-8"),
        msg=payload_bytes,
        digestmod=hashlib.sha256,
    ).hexdigest()

    if not hmac.compare_digest(computed_sig, expected_sig):
        raise SignatureVerificationError("signature mismatch")


def extract_message(payload: dict[str, Any]) -> dict[str, Any] | None:
    """Extract the first message from a Meta webhook payload.

    Payload structure:
    {
      "object": "whatsapp_business_account",
      "entry": [{
        "changes": [{
          "value": {
            "metadata": {"phone_number_id": "..."},
            "messages": [{"from": "PHONE", "id": "MSG_ID", "type": "text", ...}]
          },
          "field": "messages"
        }]
      }]
    }

    Returns:
        First message dict, or None for status updates and other events.
    """
    try:
        entry = payload.get("entry", [])
        if not entry:
            return None

        changes = entry[0].get("changes", [])
        if not changes:
            return None

        value = changes[0].get("value", {})
        messages = value.get("messages", [])
        if not messages:
            return None

        message = messages[0]
        return message if isinstance(message, dict) else None
    except (AttributeError, IndexError, KeyError, TypeError):
        return None


def get_sender(message: dict[str, Any]) -> str:
    """Return the sender phone number of a message.

    Raises:
        InvalidPayloadError: If the ``from`` field is missing.
    """
    sender = message.get("from")
    if not sender or not isinstance(sender, str):
        raise InvalidPayloadError("missing sender phone number")
    return sender


def normalize_message(
    message: dict[str, Any],
    *,
    media_resolver: MediaResolver | None = None,
    image_context: str = "plant health doctor",
) -> InboundEvent:
    """Build an ``InboundEvent`` from one Meta message object.

    Raises:
        InvalidPayloadError: Missing sender or malformed body.
        UnsupportedMessageError: Type other than text/audio/image, or media
            without a resolver.
    """
    sender = get_sender(message)
    message_id = str(message.get("id", ""))
    message_type = message.get("type", "unknown")

    if message_type == "text":
        body = (message.get("text") or {}).get("body")
        if not isinstance(body, str):
            raise InvalidPayloadError("text message without body")
        return InboundEvent(
            sender_id=sender,
            message_type="text",
            text_payload=body,
            ai_prompt_parts=(PromptPart.of_text(body),),
            message_id=message_id,
        )

    if message_type not in ("audio", "image") or media_resolver is None:
        raise UnsupportedMessageError(str(message_type))

    media = message.get(message_type) or {}
    media_id = media.get("id")
    if not media_id:
        raise InvalidPayloadError(f"{message_type} message without media id")

    if message_type == "audio":
        transcription = media_resolver.transcribe(media_id)
        return InboundEvent(
            sender_id=sender,
            message_type="audio",
            text_payload=transcription,
            ai_prompt_parts=(PromptPart.of_text(transcription),),
            message_id=message_id,
        )

    caption = media.get("caption") or ""
    if caption:
        instruction = IMAGE_PROMPT_WITH_CAPTION.format(caption=caption, context=image_context)
        text_payload = f"Image with caption: {caption}"
    else:
        instruction = IMAGE_PROMPT_WITHOUT_CAPTION.format(context=image_context)
        text_payload = "Image sent by user"

    return InboundEvent(
        sender_id=sender,
        message_type="image",
        text_payload=text_payload,
        ai_prompt_parts=(
            PromptPart.of_text(instruction),
            PromptPart.of_image(media_resolver.image_url(media_id)),
        ),
        message_id=message_id,
    )
