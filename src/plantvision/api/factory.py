"""FastAPI application factory.

Wires config, collaborators, pipeline, admission queue and message handler
into ``app.state`` and ties the queue ticker to the app lifespan.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response

from plantvision.config import BotConfig
from plantvision.domain.admission import AdmissionQueue
from plantvision.domain.pipeline import MessagePipeline
from plantvision.domain.ports import Collaborators
from plantvision.observability.correlation import (
    CORRELATION_ID_HEADER,
    correlation_scope,
    incoming_correlation_id,
)
from plantvision.observability.logging import get_logger
from plantvision.observability.redaction import safe_log_context
from plantvision.services.message_handler import MessageHandler
from plantvision.whatsapp.meta_adapter import MediaResolver

from .routes import payments, public, webhooks_whatsapp

logger = get_logger(__name__)


def create_app(
    config: BotConfig | None = None,
    collaborators: Collaborators | None = None,
    *,
    media_resolver: MediaResolver | None = None,
) -> FastAPI:
    """Create the FastAPI app.

    Args:
        config: Settings. Defaults to ``BotConfig.from_env()``.
        collaborators: Pipeline collaborators. Defaults to the production
            Postgres/Stripe/OpenAI/Meta wiring.
        media_resolver: Enables audio and image messages when provided.

    Raises:
        ConfigurationError: On invalid settings or missing secrets.
    """
    if config is None:
        config = BotConfig.from_env()
    if collaborators is None:
        from .dependencies import build_collaborators

        collaborators = build_collaborators(config)

    pipeline = MessagePipeline(collaborators, config)
    queue = AdmissionQueue(
        pipeline.process,
        window_seconds=config.window_seconds,
        threshold=config.admission_threshold,
        pacing_seconds=config.drain_pacing_seconds,
    )
    handler = MessageHandler(
        queue, collaborators.messenger, config, media_resolver=media_resolver
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        queue.start()
        yield
        queue.stop(timeout=config.window_seconds * 2)

    app = FastAPI(
        title="PlantVision WhatsApp Bot",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.collaborators = collaborators
    app.state.pipeline = pipeline
    app.state.queue = queue
    app.state.handler = handler

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = incoming_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        with correlation_scope(cid):
            logger.info(
                "request received",
                extra={
                    "extra_fields": safe_log_context(
                        method=request.method, path=request.url.path
                    )
                },
            )
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(public.router)
    app.include_router(webhooks_whatsapp.router)
    app.include_router(payments.router)

    return app
