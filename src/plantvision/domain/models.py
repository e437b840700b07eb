"""Domain records shared by the pipeline and the storage adapters."""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

Role = Literal["user", "assistant"]

OutcomeStatus = Literal["success", "limit_reached", "failed", "deferred"]


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    message_count: int
    is_subscribed: bool


@dataclass(frozen=True)
class ConversationTurn:
    user_id: str
    role: Role
    content: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class PipelineOutcome:
    """Result of submitting one event.

    - success: ``reply`` holds the assistant text; ``delivered`` tells whether
      the outbound send went through.
    - limit_reached: ``reply`` holds the upsell message sent instead.
    - failed: ``error`` holds the exception that aborted processing.
    - deferred: the event was buffered and will be processed later.
    """

    status: OutcomeStatus
    reply: str | None = None
    delivered: bool = False
    error: Exception | None = None

    @property
    def deferred(self) -> bool:
        return self.status == "deferred"

    @classmethod
    def success(cls, reply: str, delivered: bool) -> "PipelineOutcome":
        return cls(status="success", reply=reply, delivered=delivered)

    @classmethod
    def limit_reached(cls, upsell_message: str) -> "PipelineOutcome":
        return cls(status="limit_reached", reply=upsell_message)

    @classmethod
    def failed(cls, error: Exception) -> "PipelineOutcome":
        return cls(status="failed", error=error)

    @classmethod
    def buffered(cls) -> "PipelineOutcome":
        return cls(status="deferred")
