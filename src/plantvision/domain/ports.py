"""Collaborator interfaces the pipeline depends on.

Production implementations live in ``plantvision.infra``, ``plantvision.stripe``,
``plantvision.ai`` and ``plantvision.whatsapp``; tests provide in-memory fakes.
"""

from dataclasses import dataclass
from typing import Protocol, Sequence

from plantvision.domain.models import ConversationTurn, Role, UserRecord
from plantvision.whatsapp.models import PromptPart


class UsageLedger(Protocol):
    def get_or_create(self, user_id: str) -> UserRecord: ...

    def increment_count(self, user_id: str) -> int:
        """Atomically increment and return the new message count."""
        ...

    def set_subscribed(self, user_id: str, is_subscribed: bool) -> None: ...


class SubscriptionOracle(Protocol):
    def is_entitled(self, user_id: str) -> bool:
        """Return False for unknown users; raise CollaboratorUnavailable on I/O failure."""
        ...


class ConversationStore(Protocol):
    def recent_turns(self, user_id: str, limit: int) -> list[ConversationTurn]:
        """Return up to ``limit`` most recent turns, oldest first."""
        ...

    def append(self, user_id: str, role: Role, content: str) -> None: ...

    def append_exchange(self, user_id: str, user_message: str, reply: str) -> None:
        """Persist a user turn and the assistant reply together."""
        ...


class Responder(Protocol):
    def generate(self, prompt_parts: Sequence[PromptPart]) -> str: ...


class OutboundMessenger(Protocol):
    def send(self, user_id: str, text: str) -> None: ...


@dataclass(frozen=True)
class Collaborators:
    """The five collaborators one pipeline instance works against."""

    ledger: UsageLedger
    oracle: SubscriptionOracle
    store: ConversationStore
    responder: Responder
    messenger: OutboundMessenger
