from __future__ import annotations

import logging

from psycopg import Connection

from ..domain import LineItem, Notification, Order, WorkflowStep
from ..errors import NotFound
from ..repositories.order_repo import OrderRepository
from ..repositories.step_repo import StepRepository
from .commission_service import CommissionRecorder
from .item_resolver import LineItemResolver
from .notifier import Notifier
from .side_effects import SideEffects

log = logging.getLogger(__name__)


class OrderCompletionEvaluator:
    """Moves an order to `done` once it is paid and all of its work is finished.

    Never touches an order that is already done, in after-sale or cancelled,
    so repeated and concurrent calls are harmless.
    """

    def __init__(
        self,
        *,
        order_repo: OrderRepository,
        step_repo: StepRepository,
        resolver: LineItemResolver,
        recorder: CommissionRecorder,
        notifier: Notifier,
    ) -> None:
        self.order_repo = order_repo
        self.step_repo = step_repo
        self.resolver = resolver
        self.recorder = recorder
        self.notifier = notifier

    def _load(self, conn: Connection, order_id: str) -> Order:
        row = self.order_repo.get(conn, order_id)
        if row is None:
            raise NotFound(f"Order not found: {order_id}")
        return Order.from_row(row)

    def evaluate(self, conn: Connection, order_id: str) -> str:
        order = self._load(conn, order_id)
        if order.is_terminal:
            return order.status

        if not order.is_paid:
            log.debug(
                "Order %s not paid (total=%s paid=%s debt=%s)",
                order.order_code, order.total_amount, order.paid_amount, order.remaining_debt,
            )
            return order.status

        pending = [i for i in self.resolver.work_items(conn, order.id) if not i.is_finished]
        if pending:
            self._report_lagging(conn, order, pending)
            log.debug("Order %s has %d unfinished work item(s)", order.order_code, len(pending))
            return order.status

        if not self.order_repo.mark_done(conn, order_id=order.id):
            # someone else finished or cancelled it in the meantime
            return self._load(conn, order.id).status

        log.info("Order %s is paid and all work is finished; marked done", order.order_code)
        try:
            self.recorder.record(conn, order.id)
        except Exception:
            # order stays done; POST /orders/<id>/commissions replays the ledger
            log.exception("Commission recording failed for order %s", order.order_code)

        effects = SideEffects()
        if order.sales_id:
            effects.defer(
                "order completed notification",
                self.notifier.notify,
                conn,
                Notification(
                    user_id=order.sales_id,
                    type="order_completed",
                    title="Order completed",
                    content=f"Order {order.order_code} is paid and all of its work is finished",
                    data={"order_id": order.id, "order_code": order.order_code},
                ),
            )
        effects.flush()
        return "done"

    def _report_lagging(self, conn: Connection, order: Order, pending: list[LineItem]) -> None:
        # Steps are not authoritative; a finished step list only hints at a stale item status.
        try:
            rows = self.step_repo.list_for_items(conn, [i.id for i in pending])
        except Exception:
            log.debug("Could not read workflow steps for order %s", order.order_code, exc_info=True)
            return
        steps: dict[str, list[WorkflowStep]] = {}
        for r in rows:
            step = WorkflowStep.from_row(r)
            steps.setdefault(step.item_id, []).append(step)
        for item in pending:
            item_steps = steps.get(item.id)
            if item_steps and all(s.is_finished for s in item_steps):
                log.warning(
                    "Item %s (%s) of order %s has all workflow steps finished but status '%s'",
                    item.id, item.name, order.order_code, item.status,
                )
