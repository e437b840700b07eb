"""Per-message pipeline: entitlement, counting, limit decision, reply.

One call to ``MessagePipeline.process`` handles one admitted event:

1. entitlement check and user lookup, concurrently (both must succeed)
2. best-effort reconciliation of the stored subscription flag
3. atomic count increment
4. free-tier decision (upsell and stop, or continue)
5. context fetch
6. prompt build
7. reply generation
8. delivery and persistence, concurrently (neither rolls back the other)

Any failure outside steps 2 and 8 aborts the message: it is logged, the
sender gets the generic apology (best-effort) and a ``failed`` outcome is
returned. Nothing is retried here.

Security: sender ids and message text are never logged; only a short hash
of the sender and payload lengths.
"""

from __future__ import annotations

import contextvars
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from plantvision.config import BotConfig
from plantvision.domain.models import PipelineOutcome
from plantvision.domain.ports import Collaborators
from plantvision.domain.prompt import build_prompt
from plantvision.observability.correlation import (
    correlation_scope,
    get_correlation_id,
)
from plantvision.observability.logging import get_logger
from plantvision.observability.redaction import hash_identifier, safe_log_context
from plantvision.whatsapp.models import InboundEvent

logger = get_logger(__name__)


def _submit(pool: ThreadPoolExecutor, fn: Callable[..., Any], *args: Any) -> Future:
    """Submit ``fn`` carrying the caller's contextvars (correlation id)."""
    ctx = contextvars.copy_context()
    return pool.submit(ctx.run, fn, *args)


class MessagePipeline:
    """Runs the business logic for one admitted inbound event."""

    def __init__(self, collaborators: Collaborators, config: BotConfig) -> None:
        self._c = collaborators
        self._config = config

    def process(self, event: InboundEvent) -> PipelineOutcome:
        """Process one event. Never raises; failures become a ``failed`` outcome."""
        with correlation_scope(get_correlation_id() or None) as cid:
            try:
                return self._run(event)
            except Exception as exc:
                logger.exception(
                    "message processing failed",
                    extra={
                        "extra_fields": safe_log_context(
                            correlationId=cid,
                            sender_hash=hash_identifier(event.sender_id),
                            message_type=event.message_type,
                            error_type=type(exc).__name__,
                        )
                    },
                )
                self._notify_failure(event)
                return PipelineOutcome.failed(exc)

    def _run(self, event: InboundEvent) -> PipelineOutcome:
        sender = event.sender_id
        sender_hash = hash_identifier(sender)

        # 1. Entitlement and user record, both required
        with ThreadPoolExecutor(max_workers=2) as pool:
            entitled_future = _submit(pool, self._c.oracle.is_entitled, sender)
            user_future = _submit(pool, self._c.ledger.get_or_create, sender)
            is_entitled = entitled_future.result()
            user = user_future.result()

        # 2. Reconcile stored flag
        if is_entitled != user.is_subscribed:
            self._reconcile_subscription(sender, is_entitled)

        # 3. Count this message before deciding
        message_count = self._c.ledger.increment_count(sender)

        # 4. Free tier up to the limit, unlimited while entitled
        if message_count > self._config.free_message_limit and not is_entitled:
            logger.info(
                "free message limit reached",
                extra={
                    "extra_fields": safe_log_context(
                        sender_hash=sender_hash,
                        message_count=message_count,
                        free_message_limit=self._config.free_message_limit,
                    )
                },
            )
            upsell = self._config.subscription_message
            self._c.messenger.send(sender, upsell)
            return PipelineOutcome.limit_reached(upsell)

        # 5-6. Context and prompt
        turns = self._c.store.recent_turns(sender, self._config.context_limit)
        prompt = build_prompt(event, turns)

        # 7. Generation failure aborts before anything is persisted
        reply = self._c.responder.generate(prompt)

        logger.info(
            "reply generated",
            extra={
                "extra_fields": safe_log_context(
                    sender_hash=sender_hash,
                    message_type=event.message_type,
                    message_count=message_count,
                    context_turns=len(turns),
                    reply_len=len(reply),
                )
            },
        )

        # 8. Deliver and persist
        delivered = self._deliver_and_persist(event, reply)
        return PipelineOutcome.success(reply, delivered=delivered)

    def _reconcile_subscription(self, sender: str, is_entitled: bool) -> None:
        try:
            self._c.ledger.set_subscribed(sender, is_entitled)
        except Exception as exc:
            logger.warning(
                "subscription flag reconciliation failed",
                extra={
                    "extra_fields": safe_log_context(
                        sender_hash=hash_identifier(sender),
                        is_entitled=is_entitled,
                        error_type=type(exc).__name__,
                    )
                },
            )

    def _deliver_and_persist(self, event: InboundEvent, reply: str) -> bool:
        sender = event.sender_id
        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = {
                "delivery": _submit(pool, self._c.messenger.send, sender, reply),
                "persistence": _submit(
                    pool,
                    self._c.store.append_exchange,
                    sender,
                    event.text_payload,
                    reply,
                ),
            }

        failed: set[str] = set()
        for step, future in futures.items():
            exc = future.exception()
            if exc is None:
                continue
            failed.add(step)
            logger.error(
                f"{step} failed after reply generation",
                extra={
                    "extra_fields": safe_log_context(
                        sender_hash=hash_identifier(sender),
                        message_type=event.message_type,
                        error_type=type(exc).__name__,
                    )
                },
            )

        return "delivery" not in failed

    def _notify_failure(self, event: InboundEvent) -> None:
        try:
            self._c.messenger.send(event.sender_id, self._config.error_message)
        except Exception as exc:
            logger.error(
                "failed to send error message",
                extra={
                    "extra_fields": safe_log_context(
                        sender_hash=hash_identifier(event.sender_id),
                        error_type=type(exc).__name__,
                    )
                },
            )
