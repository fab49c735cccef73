# rigdzen_app/models/duty.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

DUTY_PENDING = "PENDING"
DUTY_ASSIGNED = "ASSIGNED"
DUTY_COMPLETED = "COMPLETED"

ASSIGNMENT_ASSIGNED = "ASSIGNED"
ASSIGNMENT_COMPLETED = "COMPLETED"

class Duty(db.Model):
    __tablename__ = "duties"

    id = db.Column(db.Integer, primary_key=True)
    retreat_id = db.Column(db.Integer, db.ForeignKey("retreats.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default=DUTY_PENDING)  # PENDING | ASSIGNED | COMPLETED
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    assignments = db.relationship("DutyAssignment", backref="duty", cascade="all,delete-orphan", order_by="DutyAssignment.id")

class DutyAssignment(db.Model):
    __tablename__ = "duty_assignments"

    id = db.Column(db.Integer, primary_key=True)
    duty_id = db.Column(db.Integer, db.ForeignKey("duties.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=ASSIGNMENT_ASSIGNED)  # ASSIGNED | COMPLETED
    assigned_at = db.Column(db.DateTime, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime)

    user = db.relationship("User")

    __table_args__ = (
        db.UniqueConstraint("duty_id", "user_id", name="uq_duty_assignment_duty_user"),
    )
