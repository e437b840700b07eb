"""Runtime configuration loaded from the environment.

All settings are read once at startup into an immutable ``BotConfig``.
Defaults mirror the production bot; secrets have no defaults and are only
required by the production wiring (``require_secrets``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from plantvision.domain.errors import ConfigurationError

DEFAULT_SYSTEM_PROMPT = (
    "Your name is Megan. You're a professional plant doctor. When a user sends "
    "a image of a plant you are going to check for any health issues of the "
    "plant. Also give a short description of what plant you see. Write down "
    "your answers short and friendly and use emojis."
)

DEFAULT_SUBSCRIPTION_MESSAGE = (
    "You're out of plant scans. Upgrade for unlimited daily analysis!🌱 "
    "https://plantvisionai.com/subscribe"
)

DEFAULT_ERROR_MESSAGE = (
    "I apologize, but I'm having trouble processing your message right now. "
    "Please try again in a moment. 🙏"
)

DEFAULT_UNSUPPORTED_TYPE_MESSAGE = (
    "I'm sorry, I can only process text, audio, and image messages at the moment. 🙏"
)

DEFAULT_BLOCKED_COUNTRY_MESSAGE = (
    "Hi there, we are sorry but this service is not available in your country."
)

DEFAULT_IMAGE_CONTEXT = "plant health doctor"

REQUIRED_SECRETS = (
    "DATABASE_URL",
    "META_ACCESS_TOKEN",
    "META_PHONE_NUMBER_ID",
    "OPENAI_API_KEY",
    "STRIPE_SECRET_KEY",
)


def _get_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


def _get_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _get_codes(name: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(code.strip().lstrip("+") for code in raw.split(",") if code.strip())


@dataclass(frozen=True)
class BotConfig:
    """Settings consumed by the admission queue, pipeline and adapters."""

    # Admission throttle
    window_seconds: float = 1.0
    admission_threshold: int = 50
    drain_pacing_seconds: float = 0.1

    # Usage policy
    free_message_limit: int = 10
    context_limit: int = 10

    # AI completion
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.2
    openai_max_tokens: int = 2000
    openai_timeout_seconds: float = 30.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    image_context: str = DEFAULT_IMAGE_CONTEXT

    # Billing
    stripe_timeout_seconds: float = 10.0

    # Message templates
    subscription_message: str = DEFAULT_SUBSCRIPTION_MESSAGE
    error_message: str = DEFAULT_ERROR_MESSAGE
    unsupported_type_message: str = DEFAULT_UNSUPPORTED_TYPE_MESSAGE
    blocked_country_message: str = DEFAULT_BLOCKED_COUNTRY_MESSAGE
    blocked_country_codes: tuple[str, ...] = ("91", "92", "880")

    # WhatsApp webhook
    meta_verify_token: str = ""
    meta_app_secret: str = ""
    meta_graph_api_version: str = "v20.0"

    admin_token: str = ""

    def __post_init__(self) -> None:
        if self.window_seconds <= 0:
            raise ConfigurationError("RATE_LIMIT_WINDOW_SECONDS must be > 0")
        if self.admission_threshold < 1:
            raise ConfigurationError("RATE_LIMIT_THRESHOLD must be >= 1")
        if self.drain_pacing_seconds < 0:
            raise ConfigurationError("DRAIN_PACING_SECONDS must be >= 0")
        if self.free_message_limit < 0:
            raise ConfigurationError("FREE_MESSAGE_LIMIT must be >= 0")
        if self.context_limit < 0:
            raise ConfigurationError("CONTEXT_MESSAGE_LIMIT must be >= 0")

    @classmethod
    def from_env(cls) -> BotConfig:
        """Load configuration from environment variables.

        Raises:
            ConfigurationError: If a value cannot be parsed or is out of range.
        """
        return cls(
            window_seconds=_get_float("RATE_LIMIT_WINDOW_SECONDS", 1.0),
            admission_threshold=_get_int("RATE_LIMIT_THRESHOLD", 50),
            drain_pacing_seconds=_get_float("DRAIN_PACING_SECONDS", 0.1),
            free_message_limit=_get_int("FREE_MESSAGE_LIMIT", 10),
            context_limit=_get_int("CONTEXT_MESSAGE_LIMIT", 10),
            openai_model=os.environ.get("OPENAI_MODEL", "gpt-4o-mini"),
            openai_temperature=_get_float("OPENAI_TEMPERATURE", 0.2),
            openai_max_tokens=_get_int("OPENAI_MAX_TOKENS", 2000),
            openai_timeout_seconds=_get_float("OPENAI_TIMEOUT_SECONDS", 30.0),
            system_prompt=os.environ.get("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            image_context=os.environ.get("IMAGE_CONTEXT", DEFAULT_IMAGE_CONTEXT),
            stripe_timeout_seconds=_get_float("STRIPE_TIMEOUT_SECONDS", 10.0),
            subscription_message=os.environ.get(
                "SUBSCRIPTION_MESSAGE", DEFAULT_SUBSCRIPTION_MESSAGE
            ),
            error_message=os.environ.get("ERROR_MESSAGE", DEFAULT_ERROR_MESSAGE),
            unsupported_type_message=os.environ.get(
                "UNSUPPORTED_TYPE_MESSAGE", DEFAULT_UNSUPPORTED_TYPE_MESSAGE
            ),
            blocked_country_message=os.environ.get(
                "BLOCKED_COUNTRY_MESSAGE", DEFAULT_BLOCKED_COUNTRY_MESSAGE
            ),
            blocked_country_codes=_get_codes("BLOCKED_COUNTRY_CODES", "91,92,880"),
            meta_verify_token=os.environ.get("META_VERIFY_TOKEN", ""),
            meta_app_secret=os.environ.get("META_APP_SECRET", ""),
            meta_graph_api_version=os.environ.get("META_GRAPH_API_VERSION", "v20.0"),
            admin_token=os.environ.get("ADMIN_TOKEN", ""),
        )


def require_secrets() -> dict[str, str]:
    """Return the secrets the production wiring needs.

    Raises:
        ConfigurationError: Listing every missing variable.
    """
    missing = [name for name in REQUIRED_SECRETS if not os.environ.get(name)]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )
    return {name: os.environ[name] for name in REQUIRED_SECRETS}
