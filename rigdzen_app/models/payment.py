# rigdzen_app/models/payment.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

PAYMENT_PENDING = "PENDING"
PAYMENT_COMPLETED = "COMPLETED"

class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    # null = tracking row for a provider order covering several meal orders
    meal_order_id = db.Column(db.Integer, db.ForeignKey("meal_orders.id", ondelete="SET NULL"), unique=True, nullable=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="CAD")
    # only one row per provider order may carry the reference
    external_order_ref = db.Column(db.String(120), unique=True, nullable=True)
    payer_ref = db.Column(db.String(120))
    status = db.Column(db.String(20), nullable=False, default=PAYMENT_PENDING)  # PENDING | COMPLETED
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship("User")
