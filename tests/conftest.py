from __future__ import annotations

import pytest

from fakes import (
    FakeCommissionRepository,
    FakeNotificationRepository,
    FakeOrderItemRepository,
    FakeOrderProductRepository,
    FakeOrderRepository,
    FakeProductServiceRepository,
    FakeSalesAssignmentRepository,
    FakeStatusLogRepository,
    FakeStepRepository,
    FakeTechnicianAssignmentRepository,
    FakeUserRepository,
    Store,
)
from orderdesk.config import BusinessConfig
from orderdesk.wiring import Repositories, build_services


@pytest.fixture
def store():
    s = Store()
    yield s
    # best-effort paths swallow UnknownColumn, so check it here
    assert s.schema_violations == []


@pytest.fixture
def repos(store: Store) -> Repositories:
    return Repositories(
        orders=FakeOrderRepository(store),
        order_items=FakeOrderItemRepository(store),
        order_products=FakeOrderProductRepository(store),
        product_services=FakeProductServiceRepository(store),
        technicians=FakeTechnicianAssignmentRepository(store),
        sales=FakeSalesAssignmentRepository(store),
        steps=FakeStepRepository(store),
        users=FakeUserRepository(store),
        commissions=FakeCommissionRepository(store),
        status_log=FakeStatusLogRepository(store),
        notifications=FakeNotificationRepository(store),
    )


@pytest.fixture
def services(repos: Repositories):
    return build_services(repos, BusinessConfig())


@pytest.fixture
def conn():
    # the fakes never touch the connection
    return object()
