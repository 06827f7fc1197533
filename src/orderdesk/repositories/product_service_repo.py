from __future__ import annotations

from typing import Any

from psycopg import Connection

from ._rows import fetch_all, fetch_one, is_uuid, update_by_id

# order_id comes from the owning container
_SELECT = """
    SELECT s.id, s.order_product_id, p.order_id, s.item_name, s.item_type, s.unit_price,
           s.status, s.technician_id, s.commission_tech_rate, s.commission_tech_amount,
           s.sale_id, s.commission_sale_rate, s.commission_sale_amount,
           s.assigned_at, s.started_at, s.completed_at
    FROM order_product_services s
    JOIN order_products p ON p.id = s.order_product_id
"""


class ProductServiceRepository:
    """Services nested inside a product container."""

    def get(self, conn: Connection, service_id: str) -> dict | None:
        if not is_uuid(service_id):
            return None
        cur = conn.execute(_SELECT + " WHERE s.id = %s;", (service_id,))
        return fetch_one(cur)

    def list_for_product(self, conn: Connection, product_id: str) -> list[dict]:
        cur = conn.execute(
            _SELECT + " WHERE s.order_product_id = %s ORDER BY s.created_at, s.id;",
            (product_id,),
        )
        return fetch_all(cur)

    def list_for_order(self, conn: Connection, order_id: str) -> list[dict]:
        cur = conn.execute(
            _SELECT + " WHERE p.order_id = %s ORDER BY p.created_at, s.created_at, s.id;",
            (order_id,),
        )
        return fetch_all(cur)

    def update(self, conn: Connection, service_id: str, fields: dict[str, Any]) -> dict | None:
        return update_by_id(conn, "order_product_services", service_id, fields)
