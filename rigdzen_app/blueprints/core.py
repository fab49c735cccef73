# rigdzen_app/blueprints/core.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, render_template, redirect, request, url_for

from ..decorators import login_required, current_user
from ..models import Retreat, RetreatRegistration, DutyAssignment, MealOrder
from ..models.duty import ASSIGNMENT_COMPLETED
from ..models.meal import ORDER_PENDING
from ..services.retreats import active_participant_counts

bp = Blueprint("core", __name__)

LOGIN_ERRORS = {
    "user_not_found": "This Google account is not registered. Ask an organizer to add you.",
    "oauth_error": "Google sign-in failed. Please try again.",
}

@bp.route("/")
def index():
    if current_user() is not None:
        return redirect(url_for("core.dashboard"))
    error = LOGIN_ERRORS.get(request.args.get("error", ""))
    return render_template("landing.html", error=error, email=request.args.get("email"))

@bp.route("/dashboard")
@login_required
def dashboard():
    u = current_user()
    if not u.profile_completed:
        return redirect(url_for("auth.profile_complete"))

    retreats = Retreat.query.filter(Retreat.status.in_(("UPCOMING", "ONGOING"))) \
        .order_by(Retreat.start_date.asc()).all()
    counts = active_participant_counts(r.id for r in retreats)
    registrations = {
        r.retreat_id: r.status
        for r in RetreatRegistration.query.filter_by(user_id=u.id).all()
    }
    open_duties = DutyAssignment.query.filter(
        DutyAssignment.user_id == u.id, DutyAssignment.status != ASSIGNMENT_COMPLETED
    ).all()
    pending_count = MealOrder.query.filter_by(user_id=u.id, status=ORDER_PENDING).count()

    return render_template(
        "dashboard.html",
        user=u,
        retreats=retreats,
        counts=counts,
        registrations=registrations,
        open_duties=open_duties,
        pending_count=pending_count,
    )
