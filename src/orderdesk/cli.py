from __future__ import annotations

from .db import Db
from .errors import InvalidAssignment, InvalidStatus, NotFound
from .domain import ITEM_STATUSES, CommissionEntry
from .services.assignment_service import AssigneeInput
from .wiring import Services


def _prompt(msg: str) -> str:
    return input(msg).strip()


def _read_assignees(role: str) -> list[AssigneeInput]:
    out: list[AssigneeInput] = []
    while True:
        user_id = _prompt(f"  {role} id (empty to finish): ")
        if not user_id:
            return out
        rate_in = _prompt("  commission % (default 0): ")
        out.append(AssigneeInput(user_id=user_id, commission=float(rate_in) if rate_in else 0.0))


def _print_commissions(rows: list[dict]) -> None:
    if not rows:
        print("No commissions recorded.")
    for r in rows:
        e = CommissionEntry.from_row(r)
        print(f"  {e.commission_type:<8} user={e.user_id} amount={e.amount} rate={e.percentage}% [{e.status}] {e.notes}")


def run_cli(db: Db, services: Services, actor_id: str | None = None) -> None:
    while True:
        print("\n=== OrderDesk CLI ===")
        print("1) Show line item")
        print("2) Assign technicians")
        print("3) Assign sales")
        print("4) Set item status")
        print("5) Complete item")
        print("6) Evaluate order completion")
        print("7) Record order commissions")
        print("8) List order commissions")
        print("9) Workflow step (assign/start/complete/skip)")
        print("0) Exit")

        choice = _prompt("> ")
        try:
            if choice == "0":
                return

            elif choice == "1":
                item_id = _prompt("line item id: ")
                with db.session() as conn:
                    item = services.resolver.resolve(conn, item_id)
                print(
                    f"{item.entity_type} {item.id} '{item.name}' type={item.item_type} "
                    f"status={item.status} price={item.price} order={item.order_id} technician={item.technician_id}"
                )

            elif choice in ("2", "3"):
                role = "technician" if choice == "2" else "sale"
                item_id = _prompt("line item id: ")
                assignees = _read_assignees(role)
                with db.session() as conn:
                    if role == "technician":
                        item = services.assignments.assign_technicians(
                            conn, item_id=item_id, assignees=assignees, actor_id=actor_id
                        )
                    else:
                        item = services.assignments.assign_sales(
                            conn, item_id=item_id, assignees=assignees, actor_id=actor_id
                        )
                print(f"Assigned {len(assignees)} {role}(s) to {item.id}; status={item.status}")

            elif choice == "4":
                item_id = _prompt("line item id: ")
                status = _prompt(f"status ({'/'.join(ITEM_STATUSES)}): ")
                with db.session() as conn:
                    change = services.status.set_status(conn, item_id=item_id, status=status, actor_id=actor_id)
                print(f"{change.previous_status} -> {change.item.status}")
                if change.order_status:
                    print(f"Order status: {change.order_status}")

            elif choice == "5":
                item_id = _prompt("line item id: ")
                notes = _prompt("notes (optional): ") or None
                with db.session() as conn:
                    change = services.status.complete(conn, item_id=item_id, actor_id=actor_id, notes=notes)
                print(f"Item completed. Order status: {change.order_status}")

            elif choice == "6":
                order_id = _prompt("order id: ")
                with db.session() as conn:
                    status = services.evaluator.evaluate(conn, order_id)
                print(f"Order status: {status}")

            elif choice == "7":
                order_id = _prompt("order id: ")
                with db.session() as conn:
                    created = services.recorder.record(conn, order_id)
                print(f"Recorded commissions: {len(created)}")

            elif choice == "8":
                order_id = _prompt("order id: ")
                with db.session() as conn:
                    if services.repos.orders.get(conn, order_id) is None:
                        raise NotFound(f"Order not found: {order_id}")
                    rows = services.repos.commissions.list_for_order(conn, order_id)
                _print_commissions(rows)

            elif choice == "9":
                step_id = _prompt("step id: ")
                action = _prompt("action (assign/start/complete/skip): ").lower()
                with db.session() as conn:
                    if action == "assign":
                        technician_id = _prompt("technician id: ")
                        change = services.status.assign_step(
                            conn, step_id=step_id, technician_id=technician_id, actor_id=actor_id
                        )
                    elif action == "start":
                        change = services.status.start_step(conn, step_id=step_id, actor_id=actor_id)
                    elif action in ("complete", "skip"):
                        notes = _prompt("notes (optional): ") or None
                        finish = services.status.complete_step if action == "complete" else services.status.skip_step
                        change = finish(conn, step_id=step_id, actor_id=actor_id, notes=notes)
                    else:
                        print("Unknown action.")
                        continue
                print(f"Step {change.step.name}: {change.previous_status} -> {change.step.status}")
                if change.item_change:
                    print(f"Item completed. Order status: {change.item_change.order_status}")

            else:
                print("Unknown choice.")

        except (InvalidAssignment, InvalidStatus) as e:
            print(f"[INPUT ERROR] {e}")
        except NotFound as e:
            print(f"[NOT FOUND] {e}")
        except ValueError as e:
            print(f"[VALUE ERROR] {e}")
        except Exception as e:
            print(f"[ERROR] {type(e).__name__}: {e}")
