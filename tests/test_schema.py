from __future__ import annotations

import re

import pytest

from fakes import SCHEMA
from orderdesk.repositories import order_item_repo, product_service_repo, step_repo


def _select_list(query: str) -> str:
    return re.search(r"SELECT(.*?)FROM", query, re.S).group(1)


def test_flat_item_columns_exist():
    cols = set(re.findall(r"[a-z_]+", order_item_repo._COLUMNS))
    assert cols <= SCHEMA["order_items"]


def test_nested_service_columns_exist():
    select = _select_list(product_service_repo._SELECT)
    assert set(re.findall(r"\bs\.(\w+)", select)) <= SCHEMA["order_product_services"]
    assert set(re.findall(r"\bp\.(\w+)", select)) <= SCHEMA["order_products"]


def test_step_columns_exist():
    # item_id is the COALESCE alias
    cols = set(re.findall(r"\b[a-z_]+\b", _select_list(step_repo._SELECT))) - {"item_id"}
    assert cols <= SCHEMA["order_item_steps"]


@pytest.mark.parametrize(
    "table,seed",
    [
        ("orders", lambda s: s.orders[s.add_order()]),
        ("order_items", lambda s: s.order_items[s.add_flat_item(s.add_order())]),
        ("order_products", lambda s: s.order_products[s.add_product(s.add_order())]),
        ("order_product_services", lambda s: s.product_services[s.add_service(s.add_product(s.add_order()))]),
        ("users", lambda s: s.users[s.add_user("u1")]),
    ],
)
def test_seeded_rows_match_the_schema(store, table, seed):
    assert set(seed(store)) <= SCHEMA[table]
