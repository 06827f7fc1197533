from __future__ import annotations

import pytest

from orderdesk.errors import InvalidAssignment, InvalidStatus, NotFound


def test_unknown_status_is_rejected(store, services, conn):
    item_id = store.add_flat_item(store.add_order())

    with pytest.raises(InvalidStatus):
        services.status.set_status(conn, item_id=item_id, status="bogus")


def test_status_never_moves_backwards(store, services, conn):
    item_id = store.add_flat_item(store.add_order(), status="step4")

    with pytest.raises(InvalidStatus):
        services.status.set_status(conn, item_id=item_id, status="step2")
    assert store.order_items[item_id]["status"] == "step4"


def test_completed_item_cannot_be_reassigned(store, services, conn):
    item_id = store.add_flat_item(store.add_order(), status="completed")

    with pytest.raises(InvalidStatus):
        services.status.set_status(conn, item_id=item_id, status="assigned")


def test_transition_is_logged_and_stamped(store, services, conn):
    order_id = store.add_order()
    item_id = store.add_flat_item(order_id)

    change = services.status.set_status(conn, item_id=item_id, status="assigned", actor_id="mgr-1")

    assert change.changed
    assert change.previous_status == "pending"
    assert change.item.status == "assigned"
    assert store.order_items[item_id]["assigned_at"] is not None
    assert store.status_log == [
        {
            "order_id": order_id,
            "entity_type": "order_item",
            "entity_id": item_id,
            "from_status": "pending",
            "to_status": "assigned",
            "created_by": "mgr-1",
        }
    ]


def test_same_status_is_a_no_op(store, services, conn):
    item_id = store.add_flat_item(store.add_order(), status="step2")

    change = services.status.set_status(conn, item_id=item_id, status="step2")

    assert not change.changed
    assert store.status_log == []


def test_starting_work_promotes_the_order(store, services, conn):
    order_id = store.add_order(status="confirmed")
    item_id = store.add_flat_item(order_id, status="assigned")

    services.status.start(conn, item_id=item_id)

    assert store.order_items[item_id]["started_at"] is not None
    assert store.orders[order_id]["status"] == "in_progress"


@pytest.mark.parametrize("order_status", ["done", "after_sale", "cancelled"])
def test_starting_work_never_demotes_the_order(store, services, conn, order_status):
    order_id = store.add_order(status=order_status)
    item_id = store.add_flat_item(order_id, status="assigned")

    services.status.start(conn, item_id=item_id)

    assert store.orders[order_id]["status"] == order_status


def test_approval_step_notifies_approvers(store, services, conn):
    store.add_user("mgr-1", role="manager")
    store.add_user("admin-1", role="admin")
    store.add_user("mgr-old", role="manager", is_active=False)
    store.add_user("tech-1", role="technician")
    order_id = store.add_order()
    product_id = store.add_product(order_id)
    service_id = store.add_service(product_id, name="Recolor", status="step3")

    services.status.set_status(conn, item_id=service_id, status="step4")

    assert sorted(n["user_id"] for n in store.notifications) == ["admin-1", "mgr-1"]
    assert {n["type"] for n in store.notifications} == {"approval_required"}
    assert store.notifications[0]["data"]["item_id"] == service_id


def test_complete_closes_steps_and_notifies_sales_owner(store, services, conn):
    store.add_user("sales-1", role="sale")
    order_id = store.add_order(status="in_progress", sales_id="sales-1")
    item_id = store.add_flat_item(order_id, name="Cleaning", status="in_progress")
    done_step = store.add_step(item_id, step_order=1, status="completed")
    open_step = store.add_step(item_id, step_order=2, status="in_progress")

    change = services.status.complete(conn, item_id=item_id, actor_id="tech-1", notes="all good")

    assert change.item.status == "completed"
    assert store.order_items[item_id]["notes"] == "all good"
    assert store.order_items[item_id]["completed_at"] is not None
    assert store.steps[open_step]["status"] == "completed"
    assert store.steps[done_step]["status"] == "completed"
    assert [(n["user_id"], n["type"]) for n in store.notifications] == [("sales-1", "item_completed")]
    # order is not paid yet
    assert change.order_status == "in_progress"


def test_completing_last_item_of_paid_order_finishes_it(store, services, conn):
    order_id = store.add_order(total=500, paid=500, status="in_progress")
    item_id = store.add_flat_item(order_id, status="step5")

    change = services.status.set_status(conn, item_id=item_id, status="completed")

    assert change.order_status == "done"
    assert store.orders[order_id]["status"] == "done"


def test_repeat_complete_only_closes_leftover_steps(store, services, conn):
    store.add_user("sales-1", role="sale")
    order_id = store.add_order(sales_id="sales-1")
    item_id = store.add_flat_item(order_id, status="completed")
    leftover = store.add_step(item_id, status="pending")

    change = services.status.complete(conn, item_id=item_id)

    assert not change.changed
    assert store.steps[leftover]["status"] == "completed"
    assert store.notifications == []
    assert store.status_log == []


def test_cancelled_item_cannot_be_completed(store, services, conn):
    item_id = store.add_flat_item(store.add_order(), status="cancelled")

    with pytest.raises(InvalidStatus):
        services.status.complete(conn, item_id=item_id)


def test_container_completes_with_its_last_service(store, services, conn):
    order_id = store.add_order()
    product_id = store.add_product(order_id)
    first = store.add_service(product_id, status="in_progress")
    second = store.add_service(product_id, status="in_progress")

    services.status.complete(conn, item_id=first)
    assert store.order_products[product_id]["status"] == "pending"

    services.status.complete(conn, item_id=second)
    assert store.order_products[product_id]["status"] == "completed"
    assert [e["entity_type"] for e in store.status_log] == [
        "order_product_service",
        "order_product_service",
        "order_product",
    ]


def test_side_effect_failures_do_not_fail_the_transition(store, services, conn):
    store.add_user("sales-1", role="sale")
    order_id = store.add_order(sales_id="sales-1")
    item_id = store.add_flat_item(order_id, status="in_progress")
    store.fail.update({"status_log.create", "notifications.create"})

    change = services.status.complete(conn, item_id=item_id)

    assert change.item.status == "completed"
    assert store.order_items[item_id]["status"] == "completed"
    assert store.status_log == []
    assert store.notifications == []


def test_primary_write_failure_propagates(store, services, conn):
    item_id = store.add_flat_item(store.add_order())
    store.fail.add("order_items.update")

    with pytest.raises(RuntimeError):
        services.status.set_status(conn, item_id=item_id, status="assigned")
    assert store.status_log == []


def test_unknown_item_raises_not_found(services, conn):
    with pytest.raises(NotFound):
        services.status.start(conn, item_id="missing")


@pytest.mark.parametrize("status", ["assigned", "in_progress", "step3"])
def test_container_status_writes_only_its_own_columns(store, services, conn, status):
    order_id = store.add_order(status="confirmed")
    product_id = store.add_product(order_id)

    change = services.status.set_status(conn, item_id=product_id, status=status)

    assert change.item.shape == "product"
    assert store.order_products[product_id]["status"] == status
    assert [e["entity_type"] for e in store.status_log] == ["order_product"]


def test_container_start_promotes_the_order(store, services, conn):
    order_id = store.add_order(status="confirmed")
    product_id = store.add_product(order_id)

    services.status.start(conn, item_id=product_id)

    assert store.orders[order_id]["status"] == "in_progress"


def test_starting_a_service_marks_its_container_processing(store, services, conn):
    order_id = store.add_order()
    product_id = store.add_product(order_id)
    first = store.add_service(product_id, status="assigned")
    second = store.add_service(product_id, status="assigned")

    services.status.start(conn, item_id=first)
    assert store.order_products[product_id]["status"] == "processing"
    assert store.status_log[-1]["entity_type"] == "order_product"
    assert store.status_log[-1]["to_status"] == "processing"

    services.status.start(conn, item_id=second)
    assert [e["entity_id"] for e in store.status_log].count(product_id) == 1


def test_processing_container_still_completes_with_its_services(store, services, conn):
    order_id = store.add_order()
    product_id = store.add_product(order_id)
    service_id = store.add_service(product_id, status="assigned")

    services.status.start(conn, item_id=service_id)
    services.status.complete(conn, item_id=service_id)

    assert store.order_products[product_id]["status"] == "completed"
    assert store.order_products[product_id]["completed_at"] is not None


def test_step_assign_and_start(store, services, conn):
    item_id = store.add_flat_item(store.add_order(), status="in_progress")
    step_id = store.add_step(item_id, name="Clean")

    assigned = services.status.assign_step(conn, step_id=step_id, technician_id="tech-1")
    started = services.status.start_step(conn, step_id=step_id)

    assert assigned.step.status == "assigned"
    assert assigned.step.technician_id == "tech-1"
    assert started.previous_status == "assigned"
    assert store.steps[step_id]["status"] == "in_progress"
    assert store.steps[step_id]["started_at"] is not None


def test_step_assign_needs_a_technician(store, services, conn):
    step_id = store.add_step(store.add_flat_item(store.add_order()))

    with pytest.raises(InvalidAssignment):
        services.status.assign_step(conn, step_id=step_id, technician_id=" ")


def test_finished_step_cannot_restart(store, services, conn):
    step_id = store.add_step(store.add_flat_item(store.add_order()), status="skipped")

    with pytest.raises(InvalidStatus):
        services.status.start_step(conn, step_id=step_id)
    with pytest.raises(InvalidStatus):
        services.status.complete_step(conn, step_id=step_id)


def test_unknown_step_raises_not_found(services, conn):
    with pytest.raises(NotFound):
        services.status.complete_step(conn, step_id="missing")


def test_finishing_the_last_step_completes_the_item(store, services, conn):
    store.add_user("sales-1", role="sale")
    order_id = store.add_order(total=100, paid=100, status="in_progress", sales_id="sales-1")
    item_id = store.add_flat_item(order_id, status="in_progress")
    first = store.add_step(item_id, step_order=1, status="in_progress")
    optional = store.add_step(item_id, step_order=2)

    change = services.status.complete_step(conn, step_id=first, notes="done")
    assert change.item_change is None
    assert store.order_items[item_id]["status"] == "in_progress"
    assert store.steps[first]["notes"] == "done"

    change = services.status.skip_step(conn, step_id=optional)

    assert store.steps[optional]["status"] == "skipped"
    assert store.steps[optional]["notes"] == "Step skipped"
    assert change.item_change.item.status == "completed"
    assert change.item_change.order_status == "done"
    assert store.status_log[-1]["to_status"] == "completed"
    assert "item_completed" in [n["type"] for n in store.notifications]


def test_last_step_of_a_service_cascades_to_its_container(store, services, conn):
    order_id = store.add_order()
    product_id = store.add_product(order_id)
    service_id = store.add_service(product_id, status="in_progress")
    step_id = store.add_step(service_id, status="in_progress")

    services.status.complete_step(conn, step_id=step_id)

    assert store.product_services[service_id]["status"] == "completed"
    assert store.order_products[product_id]["status"] == "completed"


def test_repeating_a_step_completion_leaves_a_cancelled_item_alone(store, services, conn):
    item_id = store.add_flat_item(store.add_order(), status="cancelled")
    step_id = store.add_step(item_id, status="completed")

    change = services.status.complete_step(conn, step_id=step_id)

    assert change.item_change is None
    assert store.order_items[item_id]["status"] == "cancelled"
