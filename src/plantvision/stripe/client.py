"""Subscription entitlement lookup against Stripe.

Purpose:
- Keep stripe.* imports out of the domain code.
- Answer "is this WhatsApp sender entitled to unlimited usage?".
- Never log phone numbers or full Stripe payloads (only customer ids).

A sender is entitled when the Stripe customer registered with their phone
number has an active or trialing subscription (or a trial that has not
ended), a payment that succeeded in the last 30 days, or a paid invoice.
"""

from __future__ import annotations

import os
import re
import time
from typing import Any

import stripe

from plantvision.domain.errors import CollaboratorUnavailable, ConfigurationError
from plantvision.observability.logging import get_logger
from plantvision.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

ACTIVE_STATUSES = ("active", "trialing")

PAYMENT_LOOKBACK_SECONDS = 30 * 24 * 60 * 60

DEFAULT_TIMEOUT_SECONDS = 10.0


# E.164: up to 15 digits, optional leading +
_PHONE_PATTERN = re.compile(r"\+?[0-9]{5,15}")


def is_valid_phone(phone_number: str) -> bool:
    return _PHONE_PATTERN.fullmatch(phone_number) is not None


def phone_queries(phone_number: str) -> list[str]:
    """Customer search queries for a phone with and without a leading ``+``.

    Raises:
        ValueError: If ``phone_number`` is not an E.164 number. Only digits
            ever reach the search query string.
    """
    if not is_valid_phone(phone_number):
        raise ValueError("phone number must be 5-15 digits with an optional leading +")
    with_plus = phone_number if phone_number.startswith("+") else f"+{phone_number}"
    without_plus = with_plus[1:]
    return [f"phone:'{with_plus}'", f"phone:'{without_plus}'"]


class StripeSubscriptionOracle:
    """SubscriptionOracle over the Stripe API.

    Usage:
        oracle = StripeSubscriptionOracle()  # reads STRIPE_SECRET_KEY from env
        oracle.is_entitled("31612345678")
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: Any = None,
    ) -> None:
        """Initialize the oracle.

        Args:
            api_key: Stripe secret key. Defaults to STRIPE_SECRET_KEY env var.
            timeout_seconds: Per-request network timeout.
            client: Prebuilt ``stripe.StripeClient`` (tests).

        Raises:
            ConfigurationError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or os.environ.get("STRIPE_SECRET_KEY")
        if not self._api_key and client is None:
            raise ConfigurationError(
                "Stripe API key not provided. "
                "Set STRIPE_SECRET_KEY or pass api_key parameter."
            )
        self._timeout_seconds = timeout_seconds
        self._client = client

    def _get_client(self) -> Any:
        """Lazily build the Stripe client so import and construction stay offline."""
        if self._client is None:
            self._client = stripe.StripeClient(
                self._api_key,
                http_client=stripe.RequestsClient(timeout=self._timeout_seconds),
                max_network_retries=1,
            )
        return self._client

    def is_entitled(self, user_id: str) -> bool:
        """Return True if the sender currently has a paid entitlement.

        Unknown customers are not entitled. Stripe failures are not treated
        as "not entitled": they raise so the message is not processed on a
        stale answer.

        Raises:
            CollaboratorUnavailable: On any Stripe API or network error.
        """
        log_ctx = safe_log_context(user_hash=hash_identifier(user_id))
        if not is_valid_phone(user_id):
            # No customer can be registered under it
            logger.warning("entitlement check for non-phone id", extra={"extra_fields": log_ctx})
            return False

        try:
            for customer_id in self._find_customers(user_id):
                source = self._entitlement_source(customer_id)
                if source:
                    logger.info(
                        "stripe entitlement found",
                        extra={
                            "extra_fields": {
                                **log_ctx,
                                "customer_id": customer_id,
                                "source": source,
                            }
                        },
                    )
                    return True
        except stripe.StripeError as e:
            logger.warning(
                "stripe entitlement check failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
            raise CollaboratorUnavailable(f"stripe lookup failed: {type(e).__name__}") from e

        logger.info("no stripe entitlement", extra={"extra_fields": log_ctx})
        return False

    def _find_customers(self, phone_number: str) -> list[str]:
        client = self._get_client()
        customer_ids: list[str] = []
        for query in phone_queries(phone_number):
            result = client.v1.customers.search(params={"query": query})
            for customer in result.data:
                if customer["id"] not in customer_ids:
                    customer_ids.append(customer["id"])
        return customer_ids

    def _entitlement_source(self, customer_id: str) -> str | None:
        """Return which record grants entitlement, or None."""
        client = self._get_client()
        now = int(time.time())

        subscriptions = client.v1.subscriptions.list(
            params={"customer": customer_id, "status": "all", "limit": 10}
        )
        for sub in subscriptions.data:
            trial_end = sub["trial_end"]
            if sub["status"] in ACTIVE_STATUSES or (trial_end and trial_end > now):
                return f"subscription:{sub['status']}"

        payment_intents = client.v1.payment_intents.list(
            params={"customer": customer_id, "limit": 5}
        )
        for intent in payment_intents.data:
            if (
                intent["status"] == "succeeded"
                and intent["created"] > now - PAYMENT_LOOKBACK_SECONDS
            ):
                return "payment_intent"

        invoices = client.v1.invoices.list(
            params={"customer": customer_id, "status": "paid", "limit": 5}
        )
        if invoices.data:
            return "invoice"

        return None
