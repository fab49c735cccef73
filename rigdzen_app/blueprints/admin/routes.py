# rigdzen_app/blueprints/admin/routes.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import render_template, request, redirect, url_for, flash, jsonify, current_app

from ..admin import admin_bp
from ...decorators import admin_required
from ...errors import AuthorizationDenied, ValidationFailed
from ...extensions import db
from ...models import User, Retreat, Meal, MealOrder
from ...models.meal import ORDER_PENDING
from ...models.retreat import RETREAT_STATUSES
from ...models.user import ROLES
from ...services import duties as duty_service
from ...services import reports
from ...services import retreats as retreat_service
from ...services import users as user_service
from ...services.meal_orders import order_amount
from ...services.payments import mark_paid_cash
from ...services.sessions import start_impersonation, stop_impersonation, impersonation_enabled


def _is_api() -> bool:
    return request.path.startswith("/api/")

def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()

def _done(message: str, next_url: str, **extra):
    if _is_api():
        return jsonify({"success": True, "message": message, **extra})
    flash(message, "success")
    return redirect(next_url)

def _as_int(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Valid {field} is required")


# ---------------- ADMIN: Panel ----------------
@admin_bp.route("/admin")
@admin_required
def admin():
    stats = dict(
        users=User.query.count(),
        retreats=Retreat.query.count(),
        unpaid_orders=MealOrder.query.filter_by(status=ORDER_PENDING).count(),
        open_assignments=len(reports.unacknowledged_duties()),
    )
    return render_template("admin/panel.html", stats=stats)


# ---------------- ADMIN: Retreats ----------------
@admin_bp.route("/admin/retreats")
@admin_required
def retreats():
    items = Retreat.query.order_by(Retreat.start_date.desc()).all()
    counts = retreat_service.active_participant_counts(r.id for r in items)
    return render_template("admin/retreats.html", retreats=items, counts=counts)

@admin_bp.route("/admin/retreats/new", methods=["GET", "POST"])
@admin_bp.route("/api/admin/retreats", methods=["POST"])
@admin_required
def retreat_new():
    if request.method == "GET":
        sources = Retreat.query.order_by(Retreat.start_date.desc()).all()
        return render_template("admin/retreat_new.html", sources=sources, statuses=RETREAT_STATUSES,
                               source_id=request.args.get("source", type=int))
    data = _payload()
    retreat = retreat_service.create_retreat(
        name=data.get("name"),
        start_date=data.get("start_date"),
        end_date=data.get("end_date"),
        description=data.get("description"),
        location=data.get("location"),
        meal_order_deadline=data.get("meal_order_deadline"),
        status=data.get("status"),
        source_retreat_id=data.get("source_retreat_id") or None,
    )
    url = url_for("admin_bp.retreat_detail", retreat_id=retreat.id)
    return _done("Retreat created", url, retreatId=retreat.id, redirectUrl=url)

@admin_bp.route("/admin/retreats/<int:retreat_id>")
@admin_required
def retreat_detail(retreat_id: int):
    retreat = retreat_service.get_retreat(retreat_id)
    return render_template(
        "admin/retreat_detail.html",
        retreat=retreat,
        statuses=RETREAT_STATUSES,
        participants=[r for r in retreat.registrations],
    )

@admin_bp.route("/admin/retreats/<int:retreat_id>/status", methods=["POST"])
@admin_required
def retreat_status(retreat_id: int):
    retreat_service.update_retreat_status(retreat_id, _payload().get("status"))
    return _done("Status updated", url_for("admin_bp.retreat_detail", retreat_id=retreat_id))


# ---------------- ADMIN: Meals ----------------
@admin_bp.route("/admin/retreats/<int:retreat_id>/meals", methods=["GET", "POST"])
@admin_bp.route("/api/admin/retreats/<int:retreat_id>/meals", methods=["POST"])
@admin_required
def meals(retreat_id: int):
    if request.method == "GET":
        return render_template("admin/meals.html", retreat=retreat_service.get_retreat(retreat_id))
    data = _payload()
    meal = retreat_service.create_meal(
        retreat_id,
        name=data.get("name"),
        meal_date=data.get("meal_date"),
        price=data.get("price"),
        description=data.get("description"),
        available=str(data.get("available", "true")).lower() in ("1", "true", "on", "yes"),
    )
    return _done("Meal created", url_for("admin_bp.meals", retreat_id=retreat_id), mealId=meal.id)

@admin_bp.route("/admin/retreats/<int:retreat_id>/meals/<int:meal_id>/delete", methods=["POST"])
@admin_bp.route("/api/admin/retreats/<int:retreat_id>/meals/<int:meal_id>", methods=["DELETE"])
@admin_required
def meal_delete(retreat_id: int, meal_id: int):
    retreat_service.delete_meal(retreat_id, meal_id)
    return _done("Meal deleted", url_for("admin_bp.meals", retreat_id=retreat_id))

@admin_bp.route("/admin/retreats/<int:retreat_id>/meals/<int:meal_id>/menu-items", methods=["GET", "POST"])
@admin_bp.route("/api/admin/retreats/<int:retreat_id>/meals/<int:meal_id>/menu-items", methods=["POST"])
@admin_required
def menu_items(retreat_id: int, meal_id: int):
    if request.method == "GET":
        meal = db.session.get(Meal, meal_id)
        if meal is None or meal.retreat_id != retreat_id:
            flash("Meal not found", "warning")
            return redirect(url_for("admin_bp.meals", retreat_id=retreat_id))
        return render_template("admin/menu_items.html", retreat=meal.retreat, meal=meal)
    data = _payload()
    item = retreat_service.create_menu_item(
        retreat_id, meal_id,
        name=data.get("name"),
        description=data.get("description"),
        requires_quantity=str(data.get("requires_quantity", "")).lower() in ("1", "true", "on", "yes"),
    )
    return _done("Menu item created", url_for("admin_bp.menu_items", retreat_id=retreat_id, meal_id=meal_id),
                 menuItemId=item.id)

@admin_bp.route("/admin/retreats/<int:retreat_id>/meals/<int:meal_id>/menu-items/<int:menu_item_id>/delete", methods=["POST"])
@admin_bp.route("/api/admin/retreats/<int:retreat_id>/meals/<int:meal_id>/menu-items/<int:menu_item_id>", methods=["DELETE"])
@admin_required
def menu_item_delete(retreat_id: int, meal_id: int, menu_item_id: int):
    retreat_service.delete_menu_item(retreat_id, meal_id, menu_item_id)
    return _done("Menu item deleted", url_for("admin_bp.menu_items", retreat_id=retreat_id, meal_id=meal_id))


# ---------------- ADMIN: Duties ----------------
@admin_bp.route("/admin/retreats/<int:retreat_id>/duties", methods=["GET", "POST"])
@admin_required
def duties(retreat_id: int):
    retreat = retreat_service.get_retreat(retreat_id)
    if request.method == "POST":
        duty_service.create_duty(retreat_id, request.form.get("title"), request.form.get("description"))
        flash("Duty created", "success")
        return redirect(url_for("admin_bp.duties", retreat_id=retreat_id))
    users = User.query.order_by(User.name.asc()).all()
    return render_template("admin/duties.html", retreat=retreat, users=users)

@admin_bp.route("/admin/retreats/<int:retreat_id>/duties/upload", methods=["POST"])
@admin_bp.route("/api/admin/retreats/<int:retreat_id>/duties/upload", methods=["POST"])
@admin_required
def duties_upload(retreat_id: int):
    f = request.files.get("file")
    if f is None or not f.filename:
        raise ValidationFailed("No file provided")
    result = duty_service.upload_duties(retreat_id, f.filename, f.read())
    message = f"{result['created']} duties created"
    if not _is_api():
        for err in result["errors"]:
            flash(err, "warning")
    return _done(message, url_for("admin_bp.duties", retreat_id=retreat_id), **result)

@admin_bp.route("/admin/retreats/<int:retreat_id>/duties/<int:duty_id>/assign", methods=["POST"])
@admin_bp.route("/api/admin/retreats/<int:retreat_id>/duties/<int:duty_id>", methods=["PATCH"])
@admin_required
def duty_assign(retreat_id: int, duty_id: int):
    data = _payload()
    raw_user = data.get("userId", data.get("user_id"))
    action = data.get("action") or ("add" if raw_user else "remove")
    if raw_user in (None, "") or action not in ("add", "remove"):
        raise ValidationFailed("Invalid request: userId is required for add/remove")
    user_id = _as_int(raw_user, "user ID")

    if action == "add":
        duty = duty_service.assign(retreat_id, duty_id, user_id)
    else:
        duty = duty_service.unassign(retreat_id, duty_id, user_id)
    return _done("Duty assignment updated", url_for("admin_bp.duties", retreat_id=retreat_id),
                 dutyId=duty.id, status=duty.status)

@admin_bp.route("/admin/retreats/<int:retreat_id>/duties/<int:duty_id>/delete", methods=["POST"])
@admin_bp.route("/api/admin/retreats/<int:retreat_id>/duties/<int:duty_id>", methods=["DELETE"])
@admin_required
def duty_delete(retreat_id: int, duty_id: int):
    duty_service.delete_duty(retreat_id, duty_id)
    return _done("Duty deleted", url_for("admin_bp.duties", retreat_id=retreat_id))


# ---------------- ADMIN: Users ----------------
@admin_bp.route("/admin/users")
@admin_required
def users():
    items = User.query.order_by(User.name.asc(), User.email.asc()).all()
    return render_template("admin/users.html", users=items)

@admin_bp.route("/admin/users/<int:user_id>", methods=["GET", "POST"])
@admin_bp.route("/api/admin/users/<int:user_id>", methods=["PATCH"])
@admin_required
def user_edit(user_id: int):
    if request.method == "GET":
        user = user_service.get_user(user_id)
        orders = MealOrder.query.filter_by(user_id=user.id).order_by(MealOrder.id.asc()).all()
        return render_template("admin/user_edit.html", user=user, roles=ROLES, orders=orders,
                               amounts={o.id: order_amount(o) for o in orders})
    data = _payload()
    user = user_service.update_user(user_id, name=data.get("name"), role=data.get("role") or None)
    return _done("User updated", url_for("admin_bp.user_edit", user_id=user_id),
                 user={"id": user.id, "name": user.name, "email": user.email,
                       "role": user.role, "profileCompleted": user.profile_completed})

@admin_bp.route("/admin/meal-orders/<int:order_id>/mark-paid-cash", methods=["POST"])
@admin_bp.route("/api/admin/meal-orders/<int:order_id>/mark-paid-cash", methods=["POST"])
@admin_required
def order_mark_paid_cash(order_id: int):
    payment = mark_paid_cash(order_id)
    next_url = request.referrer or url_for("admin_bp.users")
    return _done("Meal order marked as paid (cash)", next_url, paymentId=payment.id)


# ---------------- ADMIN: Reports ----------------
@admin_bp.route("/admin/reports")
@admin_required
def reports_index():
    return render_template("admin/reports.html")

@admin_bp.route("/admin/reports/unpaid-meals")
@admin_required
def report_unpaid_meals():
    return render_template("admin/report_unpaid_meals.html", rows=reports.unpaid_meals())

@admin_bp.route("/admin/reports/unacknowledged-duties")
@admin_required
def report_unacknowledged_duties():
    return render_template("admin/report_unacknowledged_duties.html", assignments=reports.unacknowledged_duties())

@admin_bp.route("/admin/reports/user-meal-selections")
@admin_required
def report_user_meal_selections():
    retreat_id = request.args.get("retreat_id", type=int)
    return render_template(
        "admin/report_user_meal_selections.html",
        groups=reports.user_meal_selections(retreat_id),
        retreats=Retreat.query.order_by(Retreat.start_date.desc()).all(),
        retreat_id=retreat_id,
    )


# ---------------- ADMIN: Impersonation (development only) ----------------
@admin_bp.route("/admin/impersonate")
@admin_required
def impersonate():
    if not impersonation_enabled():
        flash("Impersonation is only available in development", "warning")
        return redirect(url_for("admin_bp.admin"))
    return render_template("admin/impersonate.html", users=User.query.order_by(User.name.asc()).all())

@admin_bp.route("/admin/impersonate/start", methods=["POST"])
@admin_bp.route("/api/admin/impersonate/start", methods=["POST"])
@admin_required
def impersonate_start():
    if not impersonation_enabled():
        raise AuthorizationDenied("Impersonation is only available in development")
    data = _payload()
    user = user_service.get_user(_as_int(data.get("userId", data.get("user_id")), "user ID"))
    label = user.name or user.email
    resp = _done(f"Now viewing as {label}", url_for("core.dashboard"),
                 impersonatedUser={"id": user.id, "email": user.email, "name": user.name, "role": user.role})
    start_impersonation(resp, user.id, user.email, user.role)
    current_app.logger.info("Impersonation started for %s", user.email)
    return resp

@admin_bp.route("/admin/impersonate/stop", methods=["POST"])
@admin_bp.route("/api/admin/impersonate/stop", methods=["POST"])
@admin_required
def impersonate_stop():
    resp = _done("Stopped impersonating", url_for("admin_bp.admin"))
    stop_impersonation(resp)
    current_app.logger.info("Impersonation stopped")
    return resp
