"""In-memory collaborators for pipeline, queue and API tests.

These are NOT fixtures - they are regular classes shared by test modules.
"""

from __future__ import annotations

import threading
from typing import Sequence

from plantvision.config import BotConfig
from plantvision.domain.errors import DeliveryError, GenerationError
from plantvision.domain.models import ConversationTurn, PipelineOutcome, UserRecord
from plantvision.domain.ports import Collaborators
from plantvision.whatsapp.models import InboundEvent, PromptPart

SENDER = "31612345678"


def text_event(text: str = "How do I water my fern?", sender: str = SENDER) -> InboundEvent:
    return InboundEvent(
        sender_id=sender,
        message_type="text",
        text_payload=text,
        ai_prompt_parts=(PromptPart.of_text(text),),
        message_id="wamid.TEST",
    )


def make_config(**overrides) -> BotConfig:
    defaults = {
        "free_message_limit": 10,
        "context_limit": 10,
        "drain_pacing_seconds": 0,
        "subscription_message": "UPSELL",
        "error_message": "SORRY",
        "unsupported_type_message": "UNSUPPORTED",
        "blocked_country_message": "BLOCKED",
    }
    defaults.update(overrides)
    return BotConfig(**defaults)


class FakeLedger:
    def __init__(self) -> None:
        self.users: dict[str, UserRecord] = {}
        self.fail_get = False
        self.fail_set_subscribed = False
        self.set_subscribed_calls: list[tuple[str, bool]] = []
        self._lock = threading.Lock()

    def seed(self, user_id: str, message_count: int = 0, is_subscribed: bool = False) -> None:
        self.users[user_id] = UserRecord(user_id, message_count, is_subscribed)

    def get_or_create(self, user_id: str) -> UserRecord:
        if self.fail_get:
            raise RuntimeError("ledger down")
        with self._lock:
            if user_id not in self.users:
                self.users[user_id] = UserRecord(user_id, 0, False)
            return self.users[user_id]

    def increment_count(self, user_id: str) -> int:
        with self._lock:
            record = self.users.get(user_id) or UserRecord(user_id, 0, False)
            record = UserRecord(user_id, record.message_count + 1, record.is_subscribed)
            self.users[user_id] = record
            return record.message_count

    def set_subscribed(self, user_id: str, is_subscribed: bool) -> None:
        self.set_subscribed_calls.append((user_id, is_subscribed))
        if self.fail_set_subscribed:
            raise RuntimeError("write failed")
        with self._lock:
            record = self.users[user_id]
            self.users[user_id] = UserRecord(user_id, record.message_count, is_subscribed)


class FakeOracle:
    def __init__(self, entitled: set[str] | None = None) -> None:
        self.entitled = entitled or set()
        self.error: Exception | None = None
        self.calls: list[str] = []

    def is_entitled(self, user_id: str) -> bool:
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return user_id in self.entitled


class FakeStore:
    def __init__(self) -> None:
        self.turns: list[ConversationTurn] = []
        self.fail_append = False
        self._lock = threading.Lock()

    def recent_turns(self, user_id: str, limit: int) -> list[ConversationTurn]:
        mine = [t for t in self.turns if t.user_id == user_id]
        return mine[-limit:] if limit else []

    def append(self, user_id: str, role, content: str) -> None:
        if self.fail_append:
            raise RuntimeError("insert failed")
        with self._lock:
            self.turns.append(ConversationTurn(user_id=user_id, role=role, content=content))

    def append_exchange(self, user_id: str, user_message: str, reply: str) -> None:
        if self.fail_append:
            raise RuntimeError("insert failed")
        with self._lock:
            self.turns.append(ConversationTurn(user_id=user_id, role="user", content=user_message))
            self.turns.append(ConversationTurn(user_id=user_id, role="assistant", content=reply))


class FakeResponder:
    def __init__(self, reply: str = "Water it weekly 🌿") -> None:
        self.reply = reply
        self.error: Exception | None = None
        self.prompts: list[Sequence[PromptPart]] = []

    def generate(self, prompt_parts: Sequence[PromptPart]) -> str:
        self.prompts.append(prompt_parts)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeMessenger:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_texts: set[str] = set()
        self.fail_all = False
        self._lock = threading.Lock()

    def send(self, user_id: str, text: str) -> None:
        if self.fail_all or text in self.fail_texts:
            raise DeliveryError("send failed")
        with self._lock:
            self.sent.append((user_id, text))

    def texts(self) -> list[str]:
        return [text for _, text in self.sent]


def make_collaborators() -> Collaborators:
    return Collaborators(
        ledger=FakeLedger(),
        oracle=FakeOracle(),
        store=FakeStore(),
        responder=FakeResponder(),
        messenger=FakeMessenger(),
    )


class RecordingProcess:
    """Stand-in for MessagePipeline.process that records events in order."""

    def __init__(self, fail_on: set[str] | None = None, raise_on: set[str] | None = None) -> None:
        self.events: list[InboundEvent] = []
        self.fail_on = fail_on or set()
        self.raise_on = raise_on or set()
        self._lock = threading.Lock()

    def __call__(self, event: InboundEvent) -> PipelineOutcome:
        with self._lock:
            self.events.append(event)
        if event.text_payload in self.raise_on:
            raise RuntimeError("unexpected failure")
        if event.text_payload in self.fail_on:
            return PipelineOutcome.failed(GenerationError("boom"))
        return PipelineOutcome.success("ok", delivered=True)
