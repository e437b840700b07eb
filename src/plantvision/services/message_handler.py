"""Inbound webhook handling: payload -> InboundEvent -> admission queue.

Runs after the webhook has already answered 200 to Meta, so every failure
here is logged and, where a sender is known, answered with a short message.
"""

from __future__ import annotations

from typing import Any

from plantvision.config import BotConfig
from plantvision.domain.access import is_blocked_country
from plantvision.domain.admission import AdmissionQueue
from plantvision.domain.errors import UnsupportedMessageError
from plantvision.domain.models import PipelineOutcome
from plantvision.domain.ports import OutboundMessenger
from plantvision.observability.logging import get_logger
from plantvision.observability.redaction import hash_identifier, safe_log_context
from plantvision.whatsapp.meta_adapter import (
    InvalidPayloadError,
    MediaResolver,
    extract_message,
    get_sender,
    normalize_message,
)

logger = get_logger(__name__)


class MessageHandler:
    """Turns a verified webhook payload into at most one queue submission."""

    def __init__(
        self,
        queue: AdmissionQueue,
        messenger: OutboundMessenger,
        config: BotConfig,
        media_resolver: MediaResolver | None = None,
    ) -> None:
        self._queue = queue
        self._messenger = messenger
        self._config = config
        self._media_resolver = media_resolver

    def handle(self, payload: dict[str, Any]) -> PipelineOutcome | None:
        """Handle one webhook payload.

        Returns:
            The admission outcome, or None when nothing was submitted
            (status update, blocked sender, unsupported type, bad payload).
        """
        message = extract_message(payload)
        if message is None:
            logger.info("no message in webhook payload")
            return None

        try:
            sender = get_sender(message)
        except InvalidPayloadError as e:
            logger.warning(
                "invalid message payload",
                extra={"extra_fields": safe_log_context(error=str(e))},
            )
            return None

        sender_hash = hash_identifier(sender)
        message_type = str(message.get("type", "unknown"))

        if is_blocked_country(sender, self._config.blocked_country_codes):
            logger.info(
                "message from blocked country",
                extra={"extra_fields": safe_log_context(sender_hash=sender_hash)},
            )
            self._reply(sender, self._config.blocked_country_message)
            return None

        try:
            event = normalize_message(
                message,
                media_resolver=self._media_resolver,
                image_context=self._config.image_context,
            )
        except UnsupportedMessageError:
            logger.info(
                "unsupported message type",
                extra={
                    "extra_fields": safe_log_context(
                        sender_hash=sender_hash, message_type=message_type
                    )
                },
            )
            self._reply(sender, self._config.unsupported_type_message)
            return None
        except InvalidPayloadError as e:
            logger.warning(
                "invalid message payload",
                extra={
                    "extra_fields": safe_log_context(
                        sender_hash=sender_hash, message_type=message_type, error=str(e)
                    )
                },
            )
            return None
        except Exception:
            # Media resolution goes over the network
            logger.exception(
                "message normalization failed",
                extra={
                    "extra_fields": safe_log_context(
                        sender_hash=sender_hash, message_type=message_type
                    )
                },
            )
            self._reply(sender, self._config.error_message)
            return None

        logger.info(
            "processing message",
            extra={
                "extra_fields": safe_log_context(
                    sender_hash=sender_hash,
                    message_type=event.message_type,
                    text_len=len(event.text_payload),
                )
            },
        )

        outcome = self._queue.submit(event)

        logger.info(
            "message handled",
            extra={
                "extra_fields": safe_log_context(
                    sender_hash=sender_hash, status=outcome.status
                )
            },
        )
        return outcome

    def _reply(self, sender: str, text: str) -> None:
        try:
            self._messenger.send(sender, text)
        except Exception as e:
            logger.error(
                "failed to send reply",
                extra={
                    "extra_fields": safe_log_context(
                        sender_hash=hash_identifier(sender), error_type=type(e).__name__
                    )
                },
            )
