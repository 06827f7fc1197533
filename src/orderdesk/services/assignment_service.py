from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from psycopg import Connection

from ..domain import POST_COMPLETION_ORDER_STATUSES, LineItem, commission_amount, utcnow
from ..errors import InvalidAssignment
from ..repositories.assignment_repo import SalesAssignmentRepository, TechnicianAssignmentRepository
from ..repositories.order_repo import OrderRepository
from ..repositories.status_log_repo import StatusLogRepository
from .commission_service import CommissionRecorder
from .item_resolver import LineItemResolver
from .side_effects import SideEffects, run_best_effort

log = logging.getLogger(__name__)

Role = Literal["technician", "sale"]

# role -> (list key, id key) in request payloads
_PAYLOAD_KEYS: dict[str, tuple[str, str]] = {
    "technician": ("technicians", "technician_id"),
    "sale": ("sales", "sale_id"),
}


@dataclass(frozen=True)
class AssigneeInput:
    user_id: str
    commission: float = 0.0


def parse_assignees(payload: dict[str, Any], role: Role) -> list[AssigneeInput]:
    """Read assignees from a request body.

    Accepts `{"technicians": [{"technician_id": ..., "commission": ...}, ...]}`
    and the older single form `{"technician_id": ..., "commission": ...}`
    (`sales` / `sale_id` for the sales role).
    """
    list_key, id_key = _PAYLOAD_KEYS[role]
    raw = payload.get(list_key)
    if raw is None and payload.get(id_key):
        raw = [{id_key: payload[id_key], "commission": payload.get("commission")}]
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidAssignment(f"'{list_key}' must be a list")

    out: list[AssigneeInput] = []
    for entry in raw:
        if isinstance(entry, str):
            user_id, commission = entry, 0
        elif isinstance(entry, dict):
            user_id = entry.get(id_key) or entry.get("user_id")
            commission = entry.get("commission")
        else:
            raise InvalidAssignment(f"Invalid {role} entry: {entry!r}")
        try:
            rate = float(commission or 0)
        except (TypeError, ValueError):
            raise InvalidAssignment(f"Invalid commission value: {commission!r}") from None
        out.append(AssigneeInput(user_id=str(user_id or "").strip(), commission=rate))
    return out


def _validate(assignees: list[AssigneeInput], role: Role) -> None:
    if not assignees:
        raise InvalidAssignment(f"Select at least one {role}.")
    seen = set()
    for a in assignees:
        if not a.user_id:
            raise InvalidAssignment(f"Every {role} needs an id.")
        if not 0 <= a.commission <= 100:
            raise InvalidAssignment(f"Commission for {a.user_id} must be between 0 and 100.")
        if a.user_id in seen:
            raise InvalidAssignment(f"{a.user_id} is listed more than once.")
        seen.add(a.user_id)


class AssignmentManager:
    def __init__(
        self,
        *,
        resolver: LineItemResolver,
        order_repo: OrderRepository,
        technician_repo: TechnicianAssignmentRepository,
        sales_repo: SalesAssignmentRepository,
        status_log_repo: StatusLogRepository,
        recorder: CommissionRecorder,
    ) -> None:
        self.resolver = resolver
        self.order_repo = order_repo
        self.technician_repo = technician_repo
        self.sales_repo = sales_repo
        self.status_log_repo = status_log_repo
        self.recorder = recorder

    def assign_technicians(
        self, conn: Connection, *, item_id: str, assignees: list[AssigneeInput], actor_id: str | None = None
    ) -> LineItem:
        return self._assign(conn, item_id, assignees, actor_id, "technician")

    def assign_sales(
        self, conn: Connection, *, item_id: str, assignees: list[AssigneeInput], actor_id: str | None = None
    ) -> LineItem:
        return self._assign(conn, item_id, assignees, actor_id, "sale")

    def _assign(
        self,
        conn: Connection,
        item_id: str,
        assignees: list[AssigneeInput],
        actor_id: str | None,
        role: Role,
    ) -> LineItem:
        _validate(assignees, role)
        item = self.resolver.resolve(conn, item_id)
        if item.shape == "product":
            raise InvalidAssignment(f"Product {item.id} has no service work; assign its services instead.")

        effects = SideEffects()
        primary = assignees[0]
        amount = commission_amount(item.price, primary.commission)
        if role == "technician":
            fields: dict[str, Any] = {
                "technician_id": primary.user_id,
                "commission_tech_rate": primary.commission,
                "commission_tech_amount": amount,
            }
            if item.status == "pending":
                fields["status"] = "assigned"
                fields["assigned_at"] = utcnow()
                effects.defer(
                    "status log",
                    self.status_log_repo.create,
                    conn,
                    order_id=item.order_id,
                    entity_type=item.entity_type,
                    entity_id=item.id,
                    from_status=item.status,
                    to_status="assigned",
                    created_by=actor_id,
                )
        else:
            fields = {
                "sale_id": primary.user_id,
                "commission_sale_rate": primary.commission,
                "commission_sale_amount": amount,
            }
        updated = self.resolver.update(conn, item, **fields)

        repo = self.technician_repo if role == "technician" else self.sales_repo

        def replace_assignments() -> None:
            # the old set has no identity once replaced
            repo.delete_for_item(conn, item.id)
            repo.insert_many(
                conn,
                item_id=item.id,
                item_shape=item.shape,
                assignees=[(a.user_id, a.commission) for a in assignees],
                assigned_by=actor_id,
            )

        if run_best_effort(f"{role} assignments of {item.id}", replace_assignments):
            log.info("Assigned %d %s(s) to %s %s", len(assignees), role, item.entity_type, item.id)
        effects.flush()

        order = self.order_repo.get(conn, item.order_id)
        if order is not None and order["status"] in POST_COMPLETION_ORDER_STATUSES:
            log.info("Order %s already %s; replaying commissions after reassignment", item.order_id, order["status"])
            self.recorder.record(conn, item.order_id)
        return updated
