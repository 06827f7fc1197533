from __future__ import annotations

from psycopg import Connection

from ..domain import TERMINAL_ORDER_STATUSES
from ._rows import fetch_one, is_uuid


class OrderRepository:
    def get(self, conn: Connection, order_id: str) -> dict | None:
        if not is_uuid(order_id):
            return None
        cur = conn.execute(
            """
            SELECT id, order_code, total_amount, paid_amount, remaining_debt,
                   status, sales_id, completed_at
            FROM orders
            WHERE id = %s;
            """,
            (order_id,),
        )
        return fetch_one(cur)

    def promote_status(self, conn: Connection, *, order_id: str, status: str, from_statuses: tuple[str, ...]) -> bool:
        cur = conn.execute(
            """
            UPDATE orders
            SET status = %s, updated_at = now()
            WHERE id = %s AND status = ANY(%s);
            """,
            (status, order_id, list(from_statuses)),
        )
        return cur.rowcount == 1

    def mark_done(self, conn: Connection, *, order_id: str) -> bool:
        cur = conn.execute(
            """
            UPDATE orders
            SET status = 'done', completed_at = now(), updated_at = now()
            WHERE id = %s AND NOT (status = ANY(%s));
            """,
            (order_id, sorted(TERMINAL_ORDER_STATUSES)),
        )
        return cur.rowcount == 1
