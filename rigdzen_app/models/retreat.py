# rigdzen_app/models/retreat.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

RETREAT_STATUSES = ("UPCOMING", "ONGOING", "COMPLETED", "CANCELLED")

REGISTRATION_REGISTERED = "REGISTERED"
REGISTRATION_CANCELLED = "CANCELLED"

class Retreat(db.Model):
    __tablename__ = "retreats"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    location = db.Column(db.String(255))
    meal_order_deadline = db.Column(db.DateTime)   # no deadline when null
    status = db.Column(db.String(20), nullable=False, default="UPCOMING")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    meals = db.relationship("Meal", backref="retreat", cascade="all,delete-orphan", order_by="Meal.meal_date")
    duties = db.relationship("Duty", backref="retreat", cascade="all,delete-orphan", order_by="Duty.id")
    registrations = db.relationship("RetreatRegistration", backref="retreat", cascade="all,delete-orphan")

    def ordering_closed(self, now: datetime | None = None) -> bool:
        if not self.meal_order_deadline:
            return False
        return self.meal_order_deadline < (now or datetime.utcnow())

class RetreatRegistration(db.Model):
    __tablename__ = "retreat_registrations"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    retreat_id = db.Column(db.Integer, db.ForeignKey("retreats.id", ondelete="CASCADE"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=REGISTRATION_REGISTERED)  # REGISTERED | CANCELLED
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("User")

    __table_args__ = (
        db.UniqueConstraint("user_id", "retreat_id", name="uq_registration_user_retreat"),
    )
