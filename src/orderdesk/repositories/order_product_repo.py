from __future__ import annotations

from typing import Any

from psycopg import Connection

from ._rows import fetch_all, fetch_one, is_uuid, update_by_id


class OrderProductRepository:
    """Product containers; they own nested services but carry no service work."""

    def get(self, conn: Connection, product_id: str) -> dict | None:
        if not is_uuid(product_id):
            return None
        cur = conn.execute(
            """
            SELECT id, order_id, name, unit_price, status, completed_at
            FROM order_products
            WHERE id = %s;
            """,
            (product_id,),
        )
        return fetch_one(cur)

    def list_for_order(self, conn: Connection, order_id: str) -> list[dict]:
        cur = conn.execute(
            """
            SELECT id, order_id, name, unit_price, status, completed_at
            FROM order_products
            WHERE order_id = %s
            ORDER BY created_at, id;
            """,
            (order_id,),
        )
        return fetch_all(cur)

    def update(self, conn: Connection, product_id: str, fields: dict[str, Any]) -> dict | None:
        return update_by_id(conn, "order_products", product_id, fields)

    def promote_status(self, conn: Connection, *, product_id: str, status: str, from_statuses: tuple[str, ...]) -> bool:
        cur = conn.execute(
            "UPDATE order_products SET status = %s WHERE id = %s AND status = ANY(%s);",
            (status, product_id, list(from_statuses)),
        )
        return cur.rowcount == 1
