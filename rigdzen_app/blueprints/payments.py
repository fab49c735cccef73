# rigdzen_app/blueprints/payments.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, request, jsonify, redirect, url_for, flash, current_app

from ..decorators import login_required, current_user
from ..errors import AppError
from ..services import payments
from ..services.retreats import get_retreat

bp = Blueprint("payments", __name__)


@bp.route("/api/retreats/<int:retreat_id>/payments/create", methods=["POST"])
@login_required
def create(retreat_id: int):
    get_retreat(retreat_id)
    result = payments.create_checkout(
        current_user().id,
        retreat_id,
        return_url=url_for("payments.paypal_return", retreat_id=retreat_id, _external=True),
        cancel_url=url_for("retreats.detail", retreat_id=retreat_id, _external=True),
    )
    return jsonify(result)

@bp.route("/api/retreats/<int:retreat_id>/payments/capture", methods=["POST"])
@login_required
def capture(retreat_id: int):
    body = request.get_json(silent=True) or {}
    result = payments.capture_payment(current_user().id, retreat_id, body.get("orderId"))
    return jsonify(result)

@bp.route("/retreats/<int:retreat_id>/payments/return")
@login_required
def paypal_return(retreat_id: int):
    """PayPal sends the buyer back here with ``?token=<order id>`` after approval."""
    try:
        payments.capture_payment(current_user().id, retreat_id, request.args.get("token"))
        flash("Payment received. Thank you!", "success")
    except AppError as e:
        current_app.logger.warning("PayPal return for retreat %s failed: %s", retreat_id, e.message)
        flash(e.message, "danger")
    return redirect(url_for("retreats.detail", retreat_id=retreat_id))
