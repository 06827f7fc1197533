from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from psycopg import Connection

from ..domain import (
    APPROVAL_STATUS,
    CONTAINER_WORKING_STATUS,
    ITEM_STATUSES,
    LineItem,
    Notification,
    Order,
    WorkflowStep,
    can_transition,
    promotable_from,
    utcnow,
)
from ..errors import InvalidAssignment, InvalidStatus, NotFound
from ..repositories.order_repo import OrderRepository
from ..repositories.status_log_repo import StatusLogRepository
from ..repositories.step_repo import StepRepository
from .completion_service import OrderCompletionEvaluator
from .item_resolver import LineItemResolver
from .notifier import Notifier
from .side_effects import SideEffects, run_best_effort

log = logging.getLogger(__name__)

_TIMESTAMPS = {
    "assigned": "assigned_at",
    "in_progress": "started_at",
    "completed": "completed_at",
}
# product containers only record when they finished
_CONTAINER_TIMESTAMPS = {"completed": "completed_at"}


@dataclass(frozen=True)
class StatusChange:
    item: LineItem
    previous_status: str
    order_status: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.item.status != self.previous_status


@dataclass(frozen=True)
class StepChange:
    step: WorkflowStep
    previous_status: str
    # set when finishing the step finished its item
    item_change: Optional[StatusChange] = None


class ItemStatusMachine:
    def __init__(
        self,
        *,
        resolver: LineItemResolver,
        order_repo: OrderRepository,
        step_repo: StepRepository,
        status_log_repo: StatusLogRepository,
        notifier: Notifier,
        evaluator: OrderCompletionEvaluator,
        approval_roles: tuple[str, ...] = ("manager", "admin"),
    ) -> None:
        self.resolver = resolver
        self.order_repo = order_repo
        self.step_repo = step_repo
        self.status_log_repo = status_log_repo
        self.notifier = notifier
        self.evaluator = evaluator
        self.approval_roles = approval_roles

    def set_status(self, conn: Connection, *, item_id: str, status: str, actor_id: str | None = None) -> StatusChange:
        if status not in ITEM_STATUSES:
            raise InvalidStatus(f"Invalid status '{status}'. Allowed: {', '.join(ITEM_STATUSES)}")

        item = self.resolver.resolve(conn, item_id)
        if item.status == status:
            return StatusChange(item=item, previous_status=item.status)

        effects = SideEffects()
        updated = self.transition(conn, item, status, actor_id=actor_id, effects=effects)

        if status == "in_progress":
            self._promote_order(conn, updated)
            self._start_container(conn, updated, actor_id, effects)
        elif status == APPROVAL_STATUS:
            effects.defer("approval broadcast", self._request_approval, conn, updated)
        elif status == "completed":
            self._cascade_completion(conn, updated, actor_id, effects)

        effects.flush()
        order_status = self.evaluator.evaluate(conn, updated.order_id) if status == "completed" else None
        return StatusChange(item=updated, previous_status=item.status, order_status=order_status)

    def start(self, conn: Connection, *, item_id: str, actor_id: str | None = None) -> StatusChange:
        return self.set_status(conn, item_id=item_id, status="in_progress", actor_id=actor_id)

    def complete(
        self,
        conn: Connection,
        *,
        item_id: str,
        actor_id: str | None = None,
        notes: str | None = None,
    ) -> StatusChange:
        """Finish an item: close its workflow steps, tell the sales owner, re-check the order.

        Repeating it on a completed item only closes leftover steps and
        re-checks the order.
        """
        item = self.resolver.resolve(conn, item_id)
        if not can_transition(item.status, "completed"):
            raise InvalidStatus(f"Cannot complete {item.entity_type} {item.id} in status '{item.status}'")
        effects = SideEffects()

        closed = self.step_repo.complete_open(conn, item_id=item.id)
        if closed:
            log.info("Closed %d open workflow step(s) of item %s", closed, item.id)

        if item.status == "completed":
            updated = item
        else:
            extra = {"notes": notes} if notes and item.shape != "product" else {}
            updated = self.transition(conn, item, "completed", actor_id=actor_id, effects=effects, **extra)
            self._cascade_completion(conn, updated, actor_id, effects)
            effects.defer("completion notification", self._notify_sales_owner, conn, updated)

        effects.flush()
        order_status = self.evaluator.evaluate(conn, updated.order_id)
        return StatusChange(item=updated, previous_status=item.status, order_status=order_status)

    def assign_step(
        self, conn: Connection, *, step_id: str, technician_id: str | None, actor_id: str | None = None
    ) -> StepChange:
        technician_id = str(technician_id or "").strip()
        if not technician_id:
            raise InvalidAssignment("Select a technician for this step.")
        step = self._load_step(conn, step_id)
        if step.is_finished:
            raise InvalidStatus(f"Step {step.id} is already {step.status}")
        # reassigning a running step keeps it running
        status = step.status if step.status == "in_progress" else "assigned"
        updated = self._write_step(conn, step, status=status, technician_id=technician_id, assigned_at=utcnow())
        log.info("Step %s of item %s assigned to %s (by %s)", step.id, step.item_id, technician_id, actor_id)
        return StepChange(step=updated, previous_status=step.status)

    def start_step(self, conn: Connection, *, step_id: str, actor_id: str | None = None) -> StepChange:
        step = self._load_step(conn, step_id)
        if step.is_finished:
            raise InvalidStatus(f"Step {step.id} is already {step.status}")
        if step.status == "in_progress":
            return StepChange(step=step, previous_status=step.status)
        updated = self._write_step(conn, step, status="in_progress", started_at=utcnow())
        log.info("Step %s of item %s started (by %s)", step.id, step.item_id, actor_id)
        return StepChange(step=updated, previous_status=step.status)

    def complete_step(
        self, conn: Connection, *, step_id: str, actor_id: str | None = None, notes: str | None = None
    ) -> StepChange:
        return self._finish_step(conn, step_id, "completed", actor_id, notes)

    def skip_step(
        self, conn: Connection, *, step_id: str, actor_id: str | None = None, notes: str | None = None
    ) -> StepChange:
        return self._finish_step(conn, step_id, "skipped", actor_id, notes or "Step skipped")

    def _finish_step(
        self, conn: Connection, step_id: str, status: str, actor_id: str | None, notes: str | None
    ) -> StepChange:
        """Close one step; the last open step of an item completes the item itself."""
        step = self._load_step(conn, step_id)
        if step.is_finished and step.status != status:
            raise InvalidStatus(f"Step {step.id} is already {step.status}")

        updated = step
        if step.status != status:
            updated = self._write_step(conn, step, status=status, completed_at=utcnow(), notes=notes)
            log.info("Step %s of item %s %s (by %s)", step.id, step.item_id, status, actor_id)

        steps = [WorkflowStep.from_row(r) for r in self.step_repo.list_for_item(conn, step.item_id)]
        item_change = None
        if steps and all(s.is_finished for s in steps):
            item = self.resolver.resolve(conn, step.item_id)
            if not item.is_finished:
                log.info("All workflow steps of item %s are finished; completing it", item.id)
                item_change = self.complete(conn, item_id=item.id, actor_id=actor_id)
        return StepChange(step=updated, previous_status=step.status, item_change=item_change)

    def _load_step(self, conn: Connection, step_id: str) -> WorkflowStep:
        row = self.step_repo.get(conn, step_id)
        if row is None:
            raise NotFound(f"Workflow step not found: {step_id}")
        return WorkflowStep.from_row(row)

    def _write_step(self, conn: Connection, step: WorkflowStep, **fields) -> WorkflowStep:
        row = self.step_repo.update(conn, step.id, fields)
        if row is None:
            raise NotFound(f"Workflow step disappeared during update: {step.id}")
        return WorkflowStep.from_row(row)

    def transition(
        self,
        conn: Connection,
        item: LineItem,
        status: str,
        *,
        actor_id: str | None,
        effects: SideEffects,
        **extra,
    ) -> LineItem:
        if not can_transition(item.status, status):
            raise InvalidStatus(f"Cannot move {item.entity_type} {item.id} from '{item.status}' to '{status}'")

        fields = {"status": status, **extra}
        stamps = _CONTAINER_TIMESTAMPS if item.shape == "product" else _TIMESTAMPS
        if status in stamps:
            fields[stamps[status]] = utcnow()
        updated = self.resolver.update(conn, item, **fields)
        log.info("%s %s: %s -> %s (by %s)", item.entity_type, item.id, item.status, status, actor_id)

        if item.status != status:
            effects.defer(
                "status log",
                self.status_log_repo.create,
                conn,
                order_id=item.order_id,
                entity_type=item.entity_type,
                entity_id=item.id,
                from_status=item.status,
                to_status=status,
                created_by=actor_id,
            )
        return updated

    def _promote_order(self, conn: Connection, item: LineItem) -> None:
        if self.order_repo.promote_status(
            conn, order_id=item.order_id, status="in_progress", from_statuses=promotable_from("in_progress")
        ):
            log.info("Order %s moved to in_progress by item %s", item.order_id, item.id)

    def _start_container(self, conn: Connection, item: LineItem, actor_id: str | None, effects: SideEffects) -> None:
        if item.shape != "service":
            return
        if self.resolver.promote_container(conn, item, CONTAINER_WORKING_STATUS, from_statuses=("pending",)):
            log.info("Product %s is %s", item.container_id, CONTAINER_WORKING_STATUS)
            effects.defer(
                "status log",
                self.status_log_repo.create,
                conn,
                order_id=item.order_id,
                entity_type="order_product",
                entity_id=item.container_id,
                from_status="pending",
                to_status=CONTAINER_WORKING_STATUS,
                created_by=actor_id,
            )

    def _cascade_completion(self, conn: Connection, item: LineItem, actor_id: str | None, effects: SideEffects) -> None:
        if item.shape != "service":
            return

        def close_container() -> None:
            if not all(s.is_finished for s in self.resolver.siblings(conn, item)):
                return
            container = self.resolver.container(conn, item)
            if container is None or container.is_finished:
                return
            self.transition(conn, container, "completed", actor_id=actor_id, effects=effects)

        run_best_effort(f"complete container of {item.id}", close_container)

    def _request_approval(self, conn: Connection, item: LineItem) -> None:
        sent = self.notifier.broadcast(
            conn,
            roles=self.approval_roles,
            type="approval_required",
            title="Approval required",
            content=f'"{item.name}" is waiting for manager approval',
            data={"order_id": item.order_id, "item_id": item.id, "item_name": item.name},
        )
        log.info("Approval request for item %s sent to %d user(s)", item.id, sent)

    def _notify_sales_owner(self, conn: Connection, item: LineItem) -> None:
        row = self.order_repo.get(conn, item.order_id)
        if row is None:
            return
        order = Order.from_row(row)
        if not order.sales_id:
            return
        self.notifier.notify(
            conn,
            Notification(
                user_id=order.sales_id,
                type="item_completed",
                title="Service completed",
                content=f'"{item.name}" in order {order.order_code} has been completed',
                data={
                    "order_id": order.id,
                    "order_code": order.order_code,
                    "item_id": item.id,
                    "item_name": item.name,
                },
            ),
        )
