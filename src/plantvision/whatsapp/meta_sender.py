"""Outbound WhatsApp messaging via Meta Cloud API.

Security: NEVER log the recipient number or the text. Only hashes and lengths.
"""

import json
import os
import time
import urllib.error
import urllib.request
from typing import Any

from plantvision.domain.errors import ConfigurationError, DeliveryError
from plantvision.observability.correlation import get_correlation_id
from plantvision.observability.logging import get_logger
from plantvision.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 5

MAX_RETRIES = 1
RETRY_DELAY = 0.2

DEFAULT_GRAPH_API_VERSION = "v20.0"


def _do_request(url: str, data: bytes, headers: dict[str, str]) -> dict[str, Any]:
    """Execute HTTP POST request. Raises on error."""
    req = urllib.request.Request(url, data=data, headers=headers, method="POST")
    with urllib.request.urlopen(req, timeout=HTTP_TIMEOUT) as resp:
        return json.loads(resp.read().decode())


class MetaMessenger:
    """Sends text replies through the WhatsApp Cloud API.

    Usage:
        messenger = MetaMessenger()  # reads META_PHONE_NUMBER_ID / META_ACCESS_TOKEN
        messenger.send("31612345678", "Hello!")
    """

    def __init__(
        self,
        phone_number_id: str | None = None,
        access_token: str | None = None,
        api_version: str | None = None,
    ) -> None:
        """Resolve Graph API config from arguments or environment.

        Raises:
            ConfigurationError: If phone number id or access token is missing.
        """
        self._phone_number_id = phone_number_id or os.environ.get("META_PHONE_NUMBER_ID", "")
        self._access_token = access_token or os.environ.get("META_ACCESS_TOKEN", "")
        if not self._phone_number_id or not self._access_token:
            raise ConfigurationError(
                "Missing Meta config: META_PHONE_NUMBER_ID and META_ACCESS_TOKEN required"
            )
        self._api_version = api_version or os.environ.get(
            "META_GRAPH_API_VERSION", DEFAULT_GRAPH_API_VERSION
        )

    @property
    def url(self) -> str:
        return (
            f"https://graph.facebook.com/{self._api_version}/"
            f"{self._phone_number_id}/messages"
        )

    def send(self, user_id: str, text: str) -> None:
        """Send a text message, retrying once on network errors and 5xx.

        Raises:
            DeliveryError: When the send still fails after the retry, or on 4xx.
        """
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": user_id,
            "type": "text",
            "text": {"body": text},
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._access_token}",
        }
        data = json.dumps(payload).encode("utf-8")

        log_ctx = safe_log_context(
            correlationId=get_correlation_id(),
            to_hash=hash_identifier(user_id),
            text_len=len(text),
        )

        for attempt in range(MAX_RETRIES + 1):
            try:
                _do_request(self.url, data, headers)
                logger.info(
                    "outbound message sent",
                    extra={"extra_fields": {**log_ctx, "attempt": str(attempt)}},
                )
                return
            except (urllib.error.URLError, TimeoutError) as e:
                # HTTPError is a URLError subclass; only 5xx is worth retrying
                is_4xx = isinstance(e, urllib.error.HTTPError) and e.code < 500
                error_ctx = {
                    **log_ctx,
                    "attempt": str(attempt),
                    "error_type": type(e).__name__,
                }

                if attempt < MAX_RETRIES and not is_4xx:
                    logger.warning(
                        "outbound send failed, retrying",
                        extra={"extra_fields": error_ctx},
                    )
                    time.sleep(RETRY_DELAY)
                    continue

                logger.error("outbound send failed", extra={"extra_fields": error_ctx})
                raise DeliveryError(f"whatsapp send failed: {type(e).__name__}") from e
