from __future__ import annotations

from decimal import Decimal

import pytest

from orderdesk.errors import NotFound


def test_resolves_flat_item(store, services, conn):
    order_id = store.add_order()
    item_id = store.add_flat_item(order_id, name="Polish", price=300_000)

    item = services.resolver.resolve(conn, item_id)

    assert item.shape == "flat"
    assert item.order_id == order_id
    assert item.name == "Polish"
    assert item.price == Decimal(300_000)
    assert item.entity_type == "order_item"


def test_nested_service_resolves_order_through_container(store, services, conn):
    order_id = store.add_order()
    product_id = store.add_product(order_id)
    service_id = store.add_service(product_id, name="Repaint")

    item = services.resolver.resolve(conn, service_id)

    assert item.shape == "service"
    assert item.order_id == order_id
    assert item.container_id == product_id


def test_product_container_is_tried_last(store, services, conn):
    order_id = store.add_order()
    product_id = store.add_product(order_id, name="Sneakers")

    item = services.resolver.resolve(conn, product_id)

    assert item.shape == "product"
    assert item.item_type == "product"
    assert not item.is_work_item


def test_flat_item_wins_over_other_shapes(store, services, conn):
    order_id = store.add_order()
    product_id = store.add_product(order_id, product_id="dup")
    store.add_flat_item(order_id, item_id="dup")

    assert services.resolver.resolve(conn, "dup").shape == "flat"
    assert product_id == "dup"


def test_unknown_id_raises_not_found(services, conn):
    with pytest.raises(NotFound):
        services.resolver.resolve(conn, "missing")


def test_work_items_skip_physical_products(store, services, conn):
    order_id = store.add_order()
    store.add_flat_item(order_id, item_type="product")
    service_item = store.add_flat_item(order_id, item_type="service")
    package_item = store.add_flat_item(order_id, item_type="package")
    product_id = store.add_product(order_id)
    nested = store.add_service(product_id)

    ids = {i.id for i in services.resolver.work_items(conn, order_id)}

    assert ids == {service_item, package_item, nested}
