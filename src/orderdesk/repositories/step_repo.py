from __future__ import annotations

from typing import Any

from psycopg import Connection

from ._rows import fetch_all, fetch_one, is_uuid, update_by_id

_SELECT = """
    SELECT id, COALESCE(order_item_id, order_product_service_id) AS item_id,
           step_order, name, status, technician_id, notes,
           assigned_at, started_at, completed_at
    FROM order_item_steps
"""


class StepRepository:
    """Workflow steps; a step belongs to either a flat item or a nested service."""

    def get(self, conn: Connection, step_id: str) -> dict | None:
        if not is_uuid(step_id):
            return None
        cur = conn.execute(_SELECT + " WHERE id = %s;", (step_id,))
        return fetch_one(cur)

    def list_for_item(self, conn: Connection, item_id: str) -> list[dict]:
        cur = conn.execute(
            _SELECT + " WHERE order_item_id = %s OR order_product_service_id = %s ORDER BY step_order;",
            (item_id, item_id),
        )
        return fetch_all(cur)

    def list_for_items(self, conn: Connection, item_ids: list[str]) -> list[dict]:
        if not item_ids:
            return []
        cur = conn.execute(
            _SELECT
            + """
            WHERE order_item_id = ANY(%s::uuid[]) OR order_product_service_id = ANY(%s::uuid[])
            ORDER BY item_id, step_order;
            """,
            (list(item_ids), list(item_ids)),
        )
        return fetch_all(cur)

    def update(self, conn: Connection, step_id: str, fields: dict[str, Any]) -> dict | None:
        if update_by_id(conn, "order_item_steps", step_id, fields) is None:
            return None
        # re-read for the derived item_id
        return self.get(conn, step_id)

    def complete_open(self, conn: Connection, *, item_id: str) -> int:
        cur = conn.execute(
            """
            UPDATE order_item_steps
            SET status = 'completed', completed_at = now()
            WHERE (order_item_id = %s OR order_product_service_id = %s)
              AND status NOT IN ('completed', 'skipped');
            """,
            (item_id, item_id),
        )
        return cur.rowcount
