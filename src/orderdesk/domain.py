from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional

ItemShape = Literal["flat", "service", "product"]
CommissionType = Literal["product", "service"]

ITEM_STATUSES = (
    "pending",
    "assigned",
    "in_progress",
    "completed",
    "cancelled",
    "step1",
    "step2",
    "step3",
    "step4",
    "step5",
)
ABSORBING_ITEM_STATUSES = frozenset({"completed", "cancelled", "skipped"})
WORK_ITEM_TYPES = frozenset({"service", "package"})
APPROVAL_STATUS = "step4"

STEP_STATUSES = ("pending", "assigned", "in_progress", "completed", "skipped")
FINISHED_STEP_STATUSES = frozenset({"completed", "skipped"})
# a product container whose first service has started
CONTAINER_WORKING_STATUS = "processing"

TERMINAL_ORDER_STATUSES = frozenset({"done", "after_sale", "cancelled"})
POST_COMPLETION_ORDER_STATUSES = frozenset({"done", "after_sale"})
ORDER_STATUSES = ("draft", "pending", "confirmed", "in_progress", "done", "after_sale", "cancelled")

# audit log entity_type per storage shape
ENTITY_TYPES: dict[str, str] = {
    "flat": "order_item",
    "service": "order_product_service",
    "product": "order_product",
}

_ITEM_RANK = {
    "pending": 0,
    "assigned": 1,
    "in_progress": 2,
    "step1": 3,
    "step2": 4,
    "step3": 5,
    "step4": 6,
    "step5": 7,
    "completed": 8,
}

_ORDER_RANK = {
    "draft": 0,
    "pending": 0,
    "confirmed": 1,
    "in_progress": 2,
    "done": 3,
    "after_sale": 4,
}


def can_transition(current: str, new: str) -> bool:
    """Return True when moving an item from `current` to `new` keeps the status order.

    Absorbing statuses are never left. `cancelled`/`skipped` are reachable from
    anything else. Unranked legacy values (e.g. "processing") accept any target.
    """
    if current == new:
        return True
    if current in ABSORBING_ITEM_STATUSES:
        return False
    if new in ("cancelled", "skipped"):
        return True
    cur_rank = _ITEM_RANK.get(current)
    if cur_rank is None:
        return True
    return _ITEM_RANK[new] >= cur_rank


def is_order_promotion(current: str, new: str) -> bool:
    if current == "cancelled":
        return False
    cur_rank = _ORDER_RANK.get(current)
    new_rank = _ORDER_RANK.get(new)
    if cur_rank is None or new_rank is None:
        return False
    return new_rank > cur_rank


def promotable_from(target: str) -> tuple[str, ...]:
    """Order statuses that `target` is a promotion of."""
    return tuple(s for s in ORDER_STATUSES if is_order_promotion(s, target))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value: Any) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def commission_amount(base: Any, rate: Any) -> int:
    """floor(base * rate / 100), computed in Decimal."""
    if not base or not rate:
        return 0
    return math.floor(to_money(base) * to_money(rate) / 100)


@dataclass(frozen=True)
class User:
    id: str
    name: str
    role: str
    is_active: bool
    commission: Decimal

    @classmethod
    def from_row(cls, row: dict) -> "User":
        return cls(
            id=str(row["id"]),
            name=str(row.get("name") or ""),
            role=str(row.get("role") or ""),
            is_active=bool(row.get("is_active", True)),
            commission=to_money(row.get("commission")),
        )


@dataclass(frozen=True)
class Order:
    id: str
    order_code: str
    total_amount: Decimal
    paid_amount: Decimal
    remaining_debt: Optional[Decimal]
    status: str
    sales_id: Optional[str]
    completed_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: dict) -> "Order":
        debt = row.get("remaining_debt")
        return cls(
            id=str(row["id"]),
            order_code=str(row.get("order_code") or row["id"]),
            total_amount=to_money(row.get("total_amount")),
            paid_amount=to_money(row.get("paid_amount")),
            remaining_debt=None if debt is None else to_money(debt),
            status=str(row["status"]),
            sales_id=(str(row["sales_id"]) if row.get("sales_id") else None),
            completed_at=row.get("completed_at"),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    @property
    def is_paid(self) -> bool:
        # Either field may be stale; one of them settling is enough.
        if self.remaining_debt is not None and self.remaining_debt <= 0:
            return True
        return self.paid_amount >= self.total_amount


@dataclass(frozen=True)
class LineItem:
    """Shape-independent view of a flat item, nested service, or product container."""

    id: str
    shape: ItemShape
    order_id: str
    name: str
    item_type: str
    price: Decimal
    status: str
    container_id: Optional[str] = None
    technician_id: Optional[str] = None
    commission_tech_rate: Decimal = Decimal(0)
    commission_tech_amount: Decimal = Decimal(0)
    sale_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def entity_type(self) -> str:
        return ENTITY_TYPES[self.shape]

    @property
    def is_work_item(self) -> bool:
        if self.shape == "service":
            return True
        return self.shape == "flat" and self.item_type in WORK_ITEM_TYPES

    @property
    def is_finished(self) -> bool:
        return self.status in ABSORBING_ITEM_STATUSES


@dataclass(frozen=True)
class Assignment:
    item_id: str
    user_id: str
    commission: Decimal
    assigned_by: Optional[str]
    assigned_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: dict, *, user_key: str) -> "Assignment":
        return cls(
            item_id=str(row["item_id"]),
            user_id=str(row[user_key]),
            commission=to_money(row.get("commission")),
            assigned_by=row.get("assigned_by"),
            assigned_at=row.get("assigned_at"),
        )


@dataclass(frozen=True)
class WorkflowStep:
    id: str
    item_id: str
    step_order: int
    name: str
    status: str
    technician_id: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "WorkflowStep":
        return cls(
            id=str(row["id"]),
            item_id=str(row["item_id"]),
            step_order=int(row.get("step_order") or 0),
            name=str(row.get("name") or ""),
            status=str(row["status"]),
            technician_id=(str(row["technician_id"]) if row.get("technician_id") else None),
            notes=row.get("notes"),
        )

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STEP_STATUSES


@dataclass(frozen=True)
class CommissionEntry:
    user_id: str
    order_id: str
    commission_type: CommissionType
    amount: Decimal
    percentage: Decimal
    base_amount: Decimal
    notes: str
    source_ref: Optional[str] = None
    status: str = "pending"
    id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "CommissionEntry":
        return cls(
            id=(str(row["id"]) if row.get("id") is not None else None),
            user_id=str(row["user_id"]),
            order_id=str(row["order_id"]),
            commission_type=row["commission_type"],
            amount=to_money(row.get("amount")),
            percentage=to_money(row.get("percentage")),
            base_amount=to_money(row.get("base_amount")),
            notes=str(row.get("notes") or ""),
            source_ref=row.get("source_ref"),
            status=str(row.get("status") or "pending"),
        )


@dataclass(frozen=True)
class Notification:
    user_id: str
    type: str
    title: str
    content: str
    data: dict = field(default_factory=dict)
