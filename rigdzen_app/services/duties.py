# rigdzen_app/services/duties.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import io
from datetime import datetime

import pandas as pd
from flask import current_app

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models.duty import (
    Duty, DutyAssignment,
    DUTY_PENDING, DUTY_ASSIGNED, DUTY_COMPLETED,
    ASSIGNMENT_ASSIGNED, ASSIGNMENT_COMPLETED,
)
from ..models.user import User
from .retreats import get_retreat

TITLE_HINTS = ("title", "name", "duty")
DESCRIPTION_HINTS = ("description", "desc", "details")


def _duty_in_retreat(retreat_id: int, duty_id: int) -> Duty:
    duty = db.session.get(Duty, duty_id)
    if duty is None or duty.retreat_id != retreat_id:
        raise NotFound("Duty not found")
    return duty

def _sync_status(duty: Duty) -> None:
    duty.status = DUTY_ASSIGNED if duty.assignments else DUTY_PENDING


def create_duty(retreat_id: int, title, description=None) -> Duty:
    get_retreat(retreat_id)
    title = (title or "").strip()
    if not title:
        raise ValidationFailed("Duty title is required")
    duty = Duty(retreat_id=retreat_id, title=title, description=(description or "").strip() or None, status=DUTY_PENDING)
    db.session.add(duty)
    db.session.commit()
    return duty

def delete_duty(retreat_id: int, duty_id: int) -> None:
    db.session.delete(_duty_in_retreat(retreat_id, duty_id))
    db.session.commit()

def assign(retreat_id: int, duty_id: int, user_id: int) -> Duty:
    duty = _duty_in_retreat(retreat_id, duty_id)
    if db.session.get(User, user_id) is None:
        raise NotFound("User not found")
    existing = DutyAssignment.query.filter_by(duty_id=duty.id, user_id=user_id).first()
    if existing:
        existing.status = ASSIGNMENT_ASSIGNED
        existing.completed_at = None
    else:
        duty.assignments.append(DutyAssignment(user_id=user_id, status=ASSIGNMENT_ASSIGNED, assigned_at=datetime.utcnow()))
    _sync_status(duty)
    db.session.commit()
    return duty

def unassign(retreat_id: int, duty_id: int, user_id: int) -> Duty:
    duty = _duty_in_retreat(retreat_id, duty_id)
    for a in list(duty.assignments):
        if a.user_id == user_id:
            duty.assignments.remove(a)
    _sync_status(duty)
    db.session.commit()
    return duty

def sign_off(user_id: int, retreat_id: int, duty_id: int) -> DutyAssignment:
    duty = _duty_in_retreat(retreat_id, duty_id)
    assignment = DutyAssignment.query.filter_by(duty_id=duty.id, user_id=user_id).first()
    if assignment is None:
        raise NotFound("You are not assigned to this duty")
    if assignment.status == ASSIGNMENT_COMPLETED:
        raise ValidationFailed("You have already acknowledged this duty")

    assignment.status = ASSIGNMENT_COMPLETED
    assignment.completed_at = datetime.utcnow()
    if all(a.status == ASSIGNMENT_COMPLETED for a in duty.assignments):
        duty.status = DUTY_COMPLETED
    db.session.commit()
    return assignment


# ---------------- CSV upload ----------------
def _find_column(columns, hints):
    for i, col in enumerate(columns):
        if any(h in col for h in hints):
            return i
    return None

def parse_duties_csv(data: bytes) -> tuple[list[dict], list[str]]:
    """
    Rows of ``{"title", "description"}`` plus per-row error messages.

    The header row needs a title-like column (title / name / duty); a
    description-like column is optional. Row numbers in errors count the
    header as row 1.
    """
    try:
        df = pd.read_csv(io.BytesIO(data), dtype=str, keep_default_na=False, skip_blank_lines=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ValidationFailed(f"CSV parsing errors: {e}")

    if df.empty:
        raise ValidationFailed("CSV must have at least a header row and one data row")

    headers = [str(c).strip().lower() for c in df.columns]
    title_idx = _find_column(headers, TITLE_HINTS)
    desc_idx = _find_column(headers, DESCRIPTION_HINTS)
    if title_idx is None:
        raise ValidationFailed("CSV must have a 'title' or 'name' column")

    duties, errors = [], []
    for n, row in enumerate(df.itertuples(index=False), start=2):
        title = str(row[title_idx] or "").strip()
        description = str(row[desc_idx] or "").strip() if desc_idx is not None else ""
        if not title:
            errors.append(f"Row {n}: Missing title")
            continue
        duties.append({"title": title, "description": description or None})
    return duties, errors

def upload_duties(retreat_id: int, filename: str, data: bytes) -> dict:
    get_retreat(retreat_id)
    if not (filename or "").lower().endswith(".csv"):
        raise ValidationFailed("File must be a CSV file")

    duties, errors = parse_duties_csv(data)
    if not duties:
        raise ValidationFailed("No valid duties found" + (f": {'; '.join(errors)}" if errors else ""))

    for d in duties:
        db.session.add(Duty(retreat_id=retreat_id, title=d["title"], description=d["description"], status=DUTY_PENDING))
    db.session.commit()
    current_app.logger.info("Uploaded %d duties to retreat %s (%d row error(s))", len(duties), retreat_id, len(errors))
    return {"created": len(duties), "errors": errors}
