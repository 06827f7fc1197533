from __future__ import annotations

import logging
from dataclasses import asdict

from flask import Flask, jsonify, request

from orderdesk.config import ConfigError, load_config
from orderdesk.db import Db
from orderdesk.domain import CommissionEntry
from orderdesk.errors import InvalidAssignment, InvalidStatus, NotFound, StoreFailure
from orderdesk.services.assignment_service import parse_assignees
from orderdesk.services.status_service import StatusChange, StepChange
from orderdesk.wiring import Repositories, Services, build_services

log = logging.getLogger(__name__)

app = Flask(__name__)

db: Db = None
services: Services = None


def init_app(database: Db, svc: Services) -> Flask:
    global db, services
    db = database
    services = svc
    return app


def _ok(data, message: str | None = None, code: int = 200):
    return jsonify({"status": "success", "data": data, "message": message}), code


def _fail(message: str, code: int):
    return jsonify({"status": "error", "data": None, "message": message}), code


def _actor() -> str | None:
    # identity is checked upstream; only used for audit attribution here
    return request.headers.get("X-User-Id") or None


def _body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _change(change: StatusChange) -> dict:
    return {
        "item": asdict(change.item),
        "previous_status": change.previous_status,
        "order_status": change.order_status,
    }


def _step_change(change: StepChange) -> dict:
    return {
        "step": asdict(change.step),
        "previous_status": change.previous_status,
        "item": _change(change.item_change) if change.item_change else None,
    }


@app.errorhandler(NotFound)
def _not_found(e):
    return _fail(str(e), 404)


@app.errorhandler(InvalidAssignment)
@app.errorhandler(InvalidStatus)
def _bad_request(e):
    return _fail(str(e), 400)


@app.errorhandler(StoreFailure)
def _store_failure(e):
    log.error("Store failure: %s", e)
    return _fail("Database error, please try again.", 500)


@app.route("/line-items/<item_id>", methods=["GET"])
def line_item_get(item_id):
    with db.session() as conn:
        item = services.resolver.resolve(conn, item_id)
    return _ok(asdict(item))


@app.route("/line-items/<item_id>/assign", methods=["PATCH"])
def line_item_assign(item_id):
    assignees = parse_assignees(_body(), "technician")
    with db.session() as conn:
        item = services.assignments.assign_technicians(
            conn, item_id=item_id, assignees=assignees, actor_id=_actor()
        )
    return _ok(asdict(item), "Technicians assigned")


@app.route("/line-items/<item_id>/assign-sale", methods=["PATCH"])
def line_item_assign_sale(item_id):
    assignees = parse_assignees(_body(), "sale")
    with db.session() as conn:
        item = services.assignments.assign_sales(
            conn, item_id=item_id, assignees=assignees, actor_id=_actor()
        )
    return _ok(asdict(item), "Sales staff assigned")


@app.route("/line-items/<item_id>/status", methods=["PATCH"])
def line_item_status(item_id):
    status = str(_body().get("status") or "").strip()
    with db.session() as conn:
        change = services.status.set_status(conn, item_id=item_id, status=status, actor_id=_actor())
    return _ok(_change(change), "Status updated")


@app.route("/line-items/<item_id>/start", methods=["PATCH"])
def line_item_start(item_id):
    with db.session() as conn:
        change = services.status.start(conn, item_id=item_id, actor_id=_actor())
    return _ok(_change(change), "Work started")


@app.route("/line-items/<item_id>/complete", methods=["PATCH"])
def line_item_complete(item_id):
    notes = _body().get("notes") or None
    with db.session() as conn:
        change = services.status.complete(conn, item_id=item_id, actor_id=_actor(), notes=notes)
    return _ok(_change(change), "Work completed")


@app.route("/steps/<step_id>/assign", methods=["PATCH"])
def step_assign(step_id):
    technician_id = _body().get("technician_id")
    with db.session() as conn:
        change = services.status.assign_step(conn, step_id=step_id, technician_id=technician_id, actor_id=_actor())
    return _ok(_step_change(change), "Technician assigned to step")


@app.route("/steps/<step_id>/start", methods=["PATCH"])
def step_start(step_id):
    with db.session() as conn:
        change = services.status.start_step(conn, step_id=step_id, actor_id=_actor())
    return _ok(_step_change(change), "Step started")


@app.route("/steps/<step_id>/complete", methods=["PATCH"])
def step_complete(step_id):
    notes = _body().get("notes") or None
    with db.session() as conn:
        change = services.status.complete_step(conn, step_id=step_id, actor_id=_actor(), notes=notes)
    return _ok(_step_change(change), "Step completed")


@app.route("/steps/<step_id>/skip", methods=["PATCH"])
def step_skip(step_id):
    notes = _body().get("notes") or None
    with db.session() as conn:
        change = services.status.skip_step(conn, step_id=step_id, actor_id=_actor(), notes=notes)
    return _ok(_step_change(change), "Step skipped")


@app.route("/orders/<order_id>/evaluate", methods=["POST"])
def order_evaluate(order_id):
    with db.session() as conn:
        status = services.evaluator.evaluate(conn, order_id)
    return _ok({"order_id": order_id, "status": status})


@app.route("/orders/<order_id>/commissions", methods=["POST"])
def order_record_commissions(order_id):
    with db.session() as conn:
        created = services.recorder.record(conn, order_id)
    return _ok([asdict(e) for e in created], f"Recorded {len(created)} commission(s)")


@app.route("/orders/<order_id>/commissions", methods=["GET"])
def order_commissions(order_id):
    with db.session() as conn:
        if services.repos.orders.get(conn, order_id) is None:
            raise NotFound(f"Order not found: {order_id}")
        rows = services.repos.commissions.list_for_order(conn, order_id)
    return _ok([asdict(CommissionEntry.from_row(r)) for r in rows])


if __name__ == "__main__":
    try:
        cfg = load_config()
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        raise SystemExit(2)
    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    init_app(Db(cfg.db), build_services(Repositories.postgres(), cfg.business))
    app.run(debug=False, port=5000)
