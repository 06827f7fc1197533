from __future__ import annotations

from psycopg import Connection
from psycopg.types.json import Jsonb


class NotificationRepository:
    def create(
        self,
        conn: Connection,
        *,
        user_id: str,
        type: str,
        title: str,
        content: str,
        data: dict,
    ) -> str:
        cur = conn.execute(
            """
            INSERT INTO notifications(user_id, type, title, content, data, is_read)
            VALUES (%s, %s, %s, %s, %s, false)
            RETURNING id;
            """,
            (user_id, type, title, content, Jsonb(data)),
        )
        return str(cur.fetchone()[0])
