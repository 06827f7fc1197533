from __future__ import annotations

import logging
from typing import Any

from psycopg import Connection

from ..domain import LineItem, to_money
from ..errors import NotFound
from ..repositories.order_item_repo import OrderItemRepository
from ..repositories.order_product_repo import OrderProductRepository
from ..repositories.product_service_repo import ProductServiceRepository

log = logging.getLogger(__name__)


def _opt_str(value) -> str | None:
    return str(value) if value is not None else None


def _flat_item(row: dict) -> LineItem:
    price = row.get("total_price")
    if price is None:
        price = to_money(row.get("unit_price")) * int(row.get("quantity") or 1)
    return LineItem(
        id=str(row["id"]),
        shape="flat",
        order_id=str(row["order_id"]),
        name=str(row.get("item_name") or ""),
        item_type=str(row.get("item_type") or "service"),
        price=to_money(price),
        status=str(row["status"]),
        technician_id=_opt_str(row.get("technician_id")),
        commission_tech_rate=to_money(row.get("commission_tech_rate")),
        commission_tech_amount=to_money(row.get("commission_tech_amount")),
        sale_id=_opt_str(row.get("sale_id")),
        assigned_at=row.get("assigned_at"),
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
    )


def _nested_service(row: dict) -> LineItem:
    return LineItem(
        id=str(row["id"]),
        shape="service",
        order_id=str(row["order_id"]),
        name=str(row.get("item_name") or ""),
        item_type=str(row.get("item_type") or "service"),
        price=to_money(row.get("unit_price")),
        status=str(row["status"]),
        container_id=str(row["order_product_id"]),
        technician_id=_opt_str(row.get("technician_id")),
        commission_tech_rate=to_money(row.get("commission_tech_rate")),
        commission_tech_amount=to_money(row.get("commission_tech_amount")),
        sale_id=_opt_str(row.get("sale_id")),
        assigned_at=row.get("assigned_at"),
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
    )


def _product_container(row: dict) -> LineItem:
    return LineItem(
        id=str(row["id"]),
        shape="product",
        order_id=str(row["order_id"]),
        name=str(row.get("name") or ""),
        item_type="product",
        price=to_money(row.get("unit_price")),
        status=str(row["status"]),
        completed_at=row.get("completed_at"),
    )


class LineItemResolver:
    """Single place that knows about the legacy and current item tables.

    Identifiers are unique across the three tables, so the first table that
    knows an id owns it. Probing costs up to three lookups.
    """

    def __init__(
        self,
        *,
        order_item_repo: OrderItemRepository,
        product_service_repo: ProductServiceRepository,
        order_product_repo: OrderProductRepository,
    ) -> None:
        self.order_item_repo = order_item_repo
        self.product_service_repo = product_service_repo
        self.order_product_repo = order_product_repo

    def resolve(self, conn: Connection, item_id: str) -> LineItem:
        row = self.order_item_repo.get(conn, item_id)
        if row is not None:
            return _flat_item(row)

        row = self.product_service_repo.get(conn, item_id)
        if row is not None:
            return _nested_service(row)

        row = self.order_product_repo.get(conn, item_id)
        if row is not None:
            return _product_container(row)

        log.debug("Line item %s not found in any item table", item_id)
        raise NotFound(f"Line item not found: {item_id}")

    def update(self, conn: Connection, item: LineItem, **fields: Any) -> LineItem:
        if item.shape == "flat":
            row = self.order_item_repo.update(conn, item.id, fields)
        elif item.shape == "service":
            row = self.product_service_repo.update(conn, item.id, fields)
        else:
            row = self.order_product_repo.update(conn, item.id, fields)
        if row is None:
            raise NotFound(f"Line item disappeared during update: {item.id}")
        return self.reload(conn, item)

    def reload(self, conn: Connection, item: LineItem) -> LineItem:
        if item.shape == "flat":
            row = self.order_item_repo.get(conn, item.id)
            build = _flat_item
        elif item.shape == "service":
            row = self.product_service_repo.get(conn, item.id)
            build = _nested_service
        else:
            row = self.order_product_repo.get(conn, item.id)
            build = _product_container
        if row is None:
            raise NotFound(f"Line item not found: {item.id}")
        return build(row)

    def flat_items(self, conn: Connection, order_id: str) -> list[LineItem]:
        return [_flat_item(r) for r in self.order_item_repo.list_for_order(conn, order_id)]

    def nested_services(self, conn: Connection, order_id: str) -> list[LineItem]:
        return [_nested_service(r) for r in self.product_service_repo.list_for_order(conn, order_id)]

    def work_items(self, conn: Connection, order_id: str) -> list[LineItem]:
        """Items whose status decides whether the order's work is finished.

        Physical product lines are excluded; their fulfilment is tracked elsewhere.
        """
        flat = [i for i in self.flat_items(conn, order_id) if i.is_work_item]
        return flat + self.nested_services(conn, order_id)

    def container(self, conn: Connection, item: LineItem) -> LineItem | None:
        if item.container_id is None:
            return None
        row = self.order_product_repo.get(conn, item.container_id)
        return _product_container(row) if row is not None else None

    def siblings(self, conn: Connection, item: LineItem) -> list[LineItem]:
        """Nested services sharing the item's container, the item included."""
        if item.container_id is None:
            return [item]
        return [_nested_service(r) for r in self.product_service_repo.list_for_product(conn, item.container_id)]

    def promote_container(self, conn: Connection, item: LineItem, status: str, *, from_statuses: tuple[str, ...]) -> bool:
        """Move the item's container to `status` if it is still in one of `from_statuses`."""
        if item.container_id is None:
            return False
        return self.order_product_repo.promote_status(
            conn, product_id=item.container_id, status=status, from_statuses=from_statuses
        )
