# rigdzen_app/blueprints/retreats.py
# -*- coding: utf-8 -*-
"""
Participant pages and actions. Actions are reachable both as form posts
(flash + redirect) and under ``/api/`` (JSON), sharing one view.
"""
from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, render_template, request, redirect, url_for, flash, jsonify

from ..decorators import login_required, current_user
from ..errors import NotFound
from ..extensions import db
from ..models import Retreat, Meal, MealOrder, DutyAssignment
from ..services import duties as duty_service
from ..services import retreats as retreat_service
from ..services.meal_orders import order_amount, pending_orders, place_order

bp = Blueprint("retreats", __name__)


def _is_api() -> bool:
    return request.path.startswith("/api/")

def _done(message: str, retreat_id: int, **extra):
    if _is_api():
        return jsonify({"success": True, "message": message, **extra})
    flash(message, "success")
    return redirect(url_for("retreats.detail", retreat_id=retreat_id))


@bp.route("/retreats")
@login_required
def index():
    u = current_user()
    retreats = Retreat.query.order_by(Retreat.start_date.desc()).all()
    counts = retreat_service.active_participant_counts(r.id for r in retreats)
    return render_template("retreats/index.html", user=u, retreats=retreats, counts=counts)

@bp.route("/retreats/<int:retreat_id>")
@login_required
def detail(retreat_id: int):
    u = current_user()
    retreat = retreat_service.get_retreat(retreat_id)
    orders = {o.meal_id: o for o in MealOrder.query.filter_by(user_id=u.id, retreat_id=retreat.id).all()}
    pending = pending_orders(u.id, retreat.id)
    assignments = (DutyAssignment.query
                   .filter(DutyAssignment.user_id == u.id,
                           DutyAssignment.duty_id.in_([d.id for d in retreat.duties] or [0]))
                   .all())
    return render_template(
        "retreats/detail.html",
        user=u,
        retreat=retreat,
        orders=orders,
        amounts={o.id: order_amount(o) for o in orders.values()},
        pending_total=sum((order_amount(o) for o in pending), Decimal("0")),
        assignments=assignments,
        registration=retreat_service.registration_status(u.id, retreat.id),
        participants=retreat_service.active_participant_counts([retreat.id]).get(retreat.id, 0),
    )


# ---------------- attendance ----------------
@bp.route("/retreats/<int:retreat_id>/attend", methods=["POST"])
@bp.route("/api/retreats/<int:retreat_id>/attend", methods=["POST"])
@login_required
def attend(retreat_id: int):
    message = retreat_service.attend(current_user().id, retreat_id)
    return _done(message, retreat_id)

@bp.route("/retreats/<int:retreat_id>/decline", methods=["POST"])
@bp.route("/api/retreats/<int:retreat_id>/decline", methods=["POST"])
@login_required
def decline(retreat_id: int):
    retreat_service.decline(current_user().id, retreat_id)
    return _done("Successfully declined attendance", retreat_id)


# ---------------- meal orders ----------------
def _form_selections(meal: Meal) -> list[dict]:
    chosen = set(request.form.getlist("menu_item_id"))
    out = []
    for mi in meal.menu_items:
        if str(mi.id) not in chosen:
            continue
        qty = request.form.get(f"quantity_{mi.id}") if mi.requires_quantity else None
        out.append({"menu_item_id": mi.id, "quantity": qty})
    return out

@bp.route("/retreats/<int:retreat_id>/meals/<int:meal_id>/order", methods=["GET", "POST"])
@bp.route("/api/retreats/<int:retreat_id>/meals/<int:meal_id>/order", methods=["POST"])
@login_required
def order_meal(retreat_id: int, meal_id: int):
    u = current_user()
    meal = db.session.get(Meal, meal_id)
    if meal is None or meal.retreat_id != retreat_id:
        raise NotFound("Meal not found")

    if request.method == "GET":
        existing = MealOrder.query.filter_by(user_id=u.id, meal_id=meal.id).first()
        selected = {s.menu_item_id: s.quantity for s in existing.menu_items} if existing else {}
        return render_template("retreats/order.html", retreat=meal.retreat, meal=meal, order=existing, selected=selected)

    if _is_api():
        selections = (request.get_json(silent=True) or {}).get("menuItems") or []
    else:
        selections = _form_selections(meal)

    action, order = place_order(u.id, retreat_id, meal.id, selections)
    messages = {
        "created": "Meal order placed",
        "updated": "Meal order updated",
        "cancelled": "Meal order cancelled",
        "noop": "No items selected",
    }
    return _done(messages[action], retreat_id, action=action, orderId=order.id if order else None)


# ---------------- duties ----------------
@bp.route("/retreats/<int:retreat_id>/duties/<int:duty_id>/sign-off", methods=["POST"])
@bp.route("/api/retreats/<int:retreat_id>/duties/<int:duty_id>/sign-off", methods=["PATCH", "POST"])
@login_required
def sign_off(retreat_id: int, duty_id: int):
    assignment = duty_service.sign_off(current_user().id, retreat_id, duty_id)
    return _done("Duty acknowledged", retreat_id, assignmentId=assignment.id)
