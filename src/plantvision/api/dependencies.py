"""Production wiring of the pipeline collaborators."""

from __future__ import annotations

from plantvision.ai.responder import OpenAIResponder
from plantvision.config import BotConfig, require_secrets
from plantvision.domain.ports import Collaborators
from plantvision.infra.repositories.messages_repository import PostgresConversationStore
from plantvision.infra.repositories.users_repository import PostgresUsageLedger
from plantvision.stripe.client import StripeSubscriptionOracle
from plantvision.whatsapp.meta_sender import MetaMessenger


def build_collaborators(config: BotConfig) -> Collaborators:
    """Build the Postgres/Stripe/OpenAI/Meta collaborators.

    Raises:
        ConfigurationError: If any required secret is missing.
    """
    secrets = require_secrets()
    return Collaborators(
        ledger=PostgresUsageLedger(),
        oracle=StripeSubscriptionOracle(
            secrets["STRIPE_SECRET_KEY"],
            timeout_seconds=config.stripe_timeout_seconds,
        ),
        store=PostgresConversationStore(),
        responder=OpenAIResponder(config, secrets["OPENAI_API_KEY"]),
        messenger=MetaMessenger(
            phone_number_id=secrets["META_PHONE_NUMBER_ID"],
            access_token=secrets["META_ACCESS_TOKEN"],
            api_version=config.meta_graph_api_version,
        ),
    )
