from __future__ import annotations

import logging
from decimal import Decimal

from psycopg import Connection

from ..domain import Assignment, CommissionEntry, Order, User, commission_amount, to_money
from ..errors import NotFound
from ..repositories.assignment_repo import TechnicianAssignmentRepository
from ..repositories.commission_repo import CommissionRepository
from ..repositories.order_repo import OrderRepository
from ..repositories.user_repo import UserRepository
from .item_resolver import LineItemResolver

log = logging.getLogger(__name__)


def sales_note(order_code: str) -> str:
    return f"Sales commission for order {order_code}"


def service_note(item_name: str, order_code: str) -> str:
    return f"Technician commission for service {item_name} (order {order_code})"


def legacy_item_note(item_name: str, order_code: str) -> str:
    return f"Technician commission for item {item_name} (order {order_code} - legacy)"


class LedgerIndex:
    """What the ledger already holds for one order.

    A candidate matches an existing row of the same user and type when their
    source references are equal, or, for rows written before source_ref
    existed, when the candidate note occurs in the row's notes.
    """

    def __init__(self, entries: list[CommissionEntry]) -> None:
        self._entries = list(entries)

    def contains(self, candidate: CommissionEntry) -> bool:
        for e in self._entries:
            if e.user_id != candidate.user_id or e.commission_type != candidate.commission_type:
                continue
            if e.source_ref is not None:
                if e.source_ref == candidate.source_ref:
                    return True
            elif candidate.notes in e.notes:
                return True
        return False

    def add(self, entry: CommissionEntry) -> None:
        self._entries.append(entry)


class CommissionRecorder:
    """Writes commission rows for the sales owner and technicians of an order.

    Safe to call any number of times. The three passes are independent and a
    failure inside one is logged without stopping the others.
    """

    def __init__(
        self,
        *,
        order_repo: OrderRepository,
        commission_repo: CommissionRepository,
        user_repo: UserRepository,
        technician_repo: TechnicianAssignmentRepository,
        resolver: LineItemResolver,
        default_sales_percent: float = 5.0,
    ) -> None:
        self.order_repo = order_repo
        self.commission_repo = commission_repo
        self.user_repo = user_repo
        self.technician_repo = technician_repo
        self.resolver = resolver
        self.default_sales_percent = to_money(default_sales_percent)

    def record(self, conn: Connection, order_id: str) -> list[CommissionEntry]:
        row = self.order_repo.get(conn, order_id)
        if row is None:
            raise NotFound(f"Order not found: {order_id}")
        order = Order.from_row(row)
        log.info("Recording commissions for order %s", order.order_code)

        try:
            existing = [CommissionEntry.from_row(r) for r in self.commission_repo.list_for_order(conn, order.id)]
        except Exception:
            # the unique constraint on the ledger still catches duplicates
            log.exception("Could not load existing commissions for order %s", order.order_code)
            existing = []
        ledger = LedgerIndex(existing)
        users: dict[str, User | None] = {}

        created: list[CommissionEntry] = []
        for name, run in (
            ("sales", self._sales_pass),
            ("service technicians", self._service_pass),
            ("legacy technicians", self._legacy_pass),
        ):
            try:
                created.extend(run(conn, order, ledger, users))
            except Exception:
                log.exception("Commission pass '%s' failed for order %s", name, order.order_code)
        return created

    def _user(self, conn: Connection, user_id: str, cache: dict[str, User | None]) -> User | None:
        if user_id not in cache:
            row = self.user_repo.get(conn, user_id)
            cache[user_id] = User.from_row(row) if row else None
        return cache[user_id]

    def _insert(self, conn: Connection, ledger: LedgerIndex, entry: CommissionEntry) -> CommissionEntry | None:
        if ledger.contains(entry):
            return None
        try:
            entry_id = self.commission_repo.create(conn, entry=entry)
        except Exception:
            log.exception("Could not record %s commission for user %s", entry.commission_type, entry.user_id)
            return None
        if entry_id is None:
            log.info("Commission %s for user %s already recorded", entry.source_ref, entry.user_id)
            ledger.add(entry)
            return None
        log.info("Recorded %s commission for user %s: %s (%s%%)", entry.commission_type, entry.user_id, entry.amount, entry.percentage)
        ledger.add(entry)
        return entry

    def _sales_pass(self, conn, order: Order, ledger: LedgerIndex, users) -> list[CommissionEntry]:
        if not order.sales_id:
            return []
        owner = self._user(conn, order.sales_id, users)
        rate = owner.commission if owner and owner.commission > 0 else self.default_sales_percent
        amount = commission_amount(order.total_amount, rate)
        if amount <= 0:
            return []
        entry = self._insert(
            conn,
            ledger,
            CommissionEntry(
                user_id=order.sales_id,
                order_id=order.id,
                commission_type="product",
                amount=Decimal(amount),
                percentage=rate,
                base_amount=order.total_amount,
                notes=sales_note(order.order_code),
                source_ref=f"sales:{order.id}",
            ),
        )
        return [entry] if entry else []

    def _service_pass(self, conn, order: Order, ledger: LedgerIndex, users) -> list[CommissionEntry]:
        services = self.resolver.nested_services(conn, order.id)
        if not services:
            return []
        by_service: dict[str, list[Assignment]] = {}
        for r in self.technician_repo.list_for_items(conn, [s.id for s in services]):
            a = Assignment.from_row(r, user_key="technician_id")
            by_service.setdefault(a.item_id, []).append(a)

        created = []
        for service in services:
            for a in by_service.get(service.id, []):
                try:
                    rate = a.commission
                    if rate <= 0:
                        tech = self._user(conn, a.user_id, users)
                        rate = tech.commission if tech else Decimal(0)
                    if rate <= 0:
                        continue
                    entry = self._insert(
                        conn,
                        ledger,
                        CommissionEntry(
                            user_id=a.user_id,
                            order_id=order.id,
                            commission_type="service",
                            amount=Decimal(commission_amount(service.price, rate)),
                            percentage=rate,
                            base_amount=service.price,
                            notes=service_note(service.name, order.order_code),
                            source_ref=f"service:{service.id}:{a.user_id}",
                        ),
                    )
                except Exception:
                    log.exception("Technician %s commission failed for service %s", a.user_id, service.id)
                    continue
                if entry:
                    created.append(entry)
        return created

    def _legacy_pass(self, conn, order: Order, ledger: LedgerIndex, users) -> list[CommissionEntry]:
        created = []
        for item in self.resolver.flat_items(conn, order.id):
            if not item.technician_id or item.commission_tech_amount <= 0:
                continue
            # amount was fixed when the technician was assigned
            entry = self._insert(
                conn,
                ledger,
                CommissionEntry(
                    user_id=str(item.technician_id),
                    order_id=order.id,
                    commission_type="service",
                    amount=item.commission_tech_amount,
                    percentage=item.commission_tech_rate,
                    base_amount=item.price,
                    notes=legacy_item_note(item.name, order.order_code),
                    source_ref=f"item:{item.id}",
                ),
            )
            if entry:
                created.append(entry)
        return created
