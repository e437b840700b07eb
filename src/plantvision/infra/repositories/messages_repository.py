"""Conversation history backed by the ``messages`` table (append-only)."""

from plantvision.domain.models import ConversationTurn, Role
from plantvision.infra.db import fetchall, txn, wrap_db_errors


class PostgresConversationStore:
    """ConversationStore over Postgres."""

    def recent_turns(self, user_id: str, limit: int) -> list[ConversationTurn]:
        """Return the ``limit`` most recent turns, oldest first."""
        if limit <= 0:
            return []

        with wrap_db_errors("recent_turns"), txn() as cur:
            rows = fetchall(
                cur,
                """
                SELECT role, content, created_at
                FROM messages
                WHERE user_id = %s
                ORDER BY created_at DESC, id DESC
                LIMIT %s
                """,
                (user_id, limit),
            )

        return [
            ConversationTurn(user_id=user_id, role=role, content=content, created_at=created_at)
            for role, content, created_at in reversed(rows)
        ]

    def append(self, user_id: str, role: Role, content: str) -> None:
        with wrap_db_errors("append"), txn() as cur:
            cur.execute(
                "INSERT INTO messages (user_id, role, content) VALUES (%s, %s, %s)",
                (user_id, role, content),
            )

    def append_exchange(self, user_id: str, user_message: str, reply: str) -> None:
        """Insert the user turn and the assistant reply in one statement."""
        with wrap_db_errors("append_exchange"), txn() as cur:
            cur.execute(
                """
                INSERT INTO messages (user_id, role, content)
                VALUES (%s, 'user', %s), (%s, 'assistant', %s)
                """,
                (user_id, user_message, user_id, reply),
            )
