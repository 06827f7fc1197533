from __future__ import annotations

from typing import Any

from psycopg import Connection

from ._rows import fetch_all, fetch_one, is_uuid, update_by_id

_COLUMNS = """
    id, order_id, item_name, item_type, quantity, unit_price, total_price, status,
    technician_id, commission_tech_rate, commission_tech_amount,
    sale_id, commission_sale_rate, commission_sale_amount,
    assigned_at, started_at, completed_at
"""


class OrderItemRepository:
    """Legacy flat line items owned directly by an order."""

    def get(self, conn: Connection, item_id: str) -> dict | None:
        if not is_uuid(item_id):
            return None
        cur = conn.execute(f"SELECT {_COLUMNS} FROM order_items WHERE id = %s;", (item_id,))
        return fetch_one(cur)

    def list_for_order(self, conn: Connection, order_id: str) -> list[dict]:
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM order_items WHERE order_id = %s ORDER BY created_at, id;",
            (order_id,),
        )
        return fetch_all(cur)

    def update(self, conn: Connection, item_id: str, fields: dict[str, Any]) -> dict | None:
        return update_by_id(conn, "order_items", item_id, fields)
