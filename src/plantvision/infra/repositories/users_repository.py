"""Usage ledger backed by the ``users`` table.

One row per sender, created lazily on first contact and never deleted.
"""

from plantvision.domain.models import UserRecord
from plantvision.infra.db import fetchone, txn, wrap_db_errors


class PostgresUsageLedger:
    """UsageLedger over Postgres. Each call runs in its own short transaction."""

    def find(self, user_id: str) -> UserRecord | None:
        """Return the user's record without creating it."""
        with wrap_db_errors("find"), txn() as cur:
            row = fetchone(
                cur,
                "SELECT user_id, message_count, is_subscribed FROM users WHERE user_id = %s",
                (user_id,),
            )
        if row is None:
            return None
        return UserRecord(user_id=row[0], message_count=row[1], is_subscribed=row[2])

    def get_or_create(self, user_id: str) -> UserRecord:
        """Return the user's record, inserting a fresh one if absent.

        Safe under concurrent first contact: the insert is a no-op when
        another request created the row first.
        """
        with wrap_db_errors("get_or_create"), txn() as cur:
            cur.execute(
                """
                INSERT INTO users (user_id, message_count, is_subscribed)
                VALUES (%s, 0, FALSE)
                ON CONFLICT (user_id) DO NOTHING
                """,
                (user_id,),
            )
            row = fetchone(
                cur,
                "SELECT user_id, message_count, is_subscribed FROM users WHERE user_id = %s",
                (user_id,),
            )

        return UserRecord(user_id=row[0], message_count=row[1], is_subscribed=row[2])

    def increment_count(self, user_id: str) -> int:
        """Atomically increment and return the message count.

        Creates the row with count 1 if the user does not exist yet.
        """
        with wrap_db_errors("increment_count"), txn() as cur:
            row = fetchone(
                cur,
                """
                INSERT INTO users (user_id, message_count, is_subscribed)
                VALUES (%s, 1, FALSE)
                ON CONFLICT (user_id)
                DO UPDATE SET message_count = users.message_count + 1
                RETURNING message_count
                """,
                (user_id,),
            )
        return row[0]

    def set_subscribed(self, user_id: str, is_subscribed: bool) -> None:
        with wrap_db_errors("set_subscribed"), txn() as cur:
            cur.execute(
                "UPDATE users SET is_subscribed = %s WHERE user_id = %s",
                (is_subscribed, user_id),
            )
