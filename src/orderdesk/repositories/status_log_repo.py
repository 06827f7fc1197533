from __future__ import annotations

from psycopg import Connection


class StatusLogRepository:
    def create(
        self,
        conn: Connection,
        *,
        order_id: str,
        entity_type: str,
        entity_id: str,
        from_status: str | None,
        to_status: str,
        created_by: str | None,
    ) -> None:
        conn.execute(
            """
            INSERT INTO order_item_status_log(order_id, entity_type, entity_id, from_status, to_status, created_by)
            VALUES (%s, %s, %s, %s, %s, %s);
            """,
            (order_id, entity_type, entity_id, from_status, to_status, created_by),
        )
