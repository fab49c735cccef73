# rigdzen_app/services/retreats.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import func

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models.duty import Duty, DutyAssignment, DUTY_ASSIGNED, DUTY_PENDING, ASSIGNMENT_ASSIGNED
from ..models.meal import Meal, MenuItem
from ..models.retreat import (
    Retreat, RetreatRegistration, RETREAT_STATUSES,
    REGISTRATION_CANCELLED, REGISTRATION_REGISTERED,
)


def parse_datetime(value) -> datetime | None:
    """Accepts datetime objects and ISO strings from forms (``2025-06-01`` or ``2025-06-01T18:00``)."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationFailed(f"Invalid date: {value}")

def get_retreat(retreat_id: int) -> Retreat:
    retreat = db.session.get(Retreat, retreat_id)
    if retreat is None:
        raise NotFound("Retreat not found")
    return retreat


# ---------------- admin ----------------
def create_retreat(name, start_date, end_date, description=None, location=None,
                   meal_order_deadline=None, status=None, source_retreat_id=None) -> Retreat:
    name = (name or "").strip()
    start = parse_datetime(start_date)
    end = parse_datetime(end_date)
    if not name or not start or not end:
        raise ValidationFailed("Name, start date, and end date are required")
    if start >= end:
        raise ValidationFailed("End date must be after start date")
    status = status or "UPCOMING"
    if status not in RETREAT_STATUSES:
        raise ValidationFailed(f"Invalid status. Must be one of {', '.join(RETREAT_STATUSES)}")

    retreat = Retreat(
        name=name,
        description=(description or "").strip() or None,
        start_date=start,
        end_date=end,
        location=(location or "").strip() or None,
        meal_order_deadline=parse_datetime(meal_order_deadline),
        status=status,
    )
    db.session.add(retreat)
    db.session.commit()

    if source_retreat_id:
        try:
            copy_retreat_data(int(source_retreat_id), retreat.id)
        except Exception as e:
            # the retreat itself stays created
            db.session.rollback()
            current_app.logger.warning("Copy from retreat %s into %s failed: %s", source_retreat_id, retreat.id, e)
    return retreat

def update_retreat_status(retreat_id: int, status: str) -> Retreat:
    if status not in RETREAT_STATUSES:
        raise ValidationFailed(f"Invalid status. Must be one of {', '.join(RETREAT_STATUSES)}")
    retreat = get_retreat(retreat_id)
    retreat.status = status
    db.session.commit()
    return retreat

def copy_retreat_data(source_retreat_id: int, target_retreat_id: int) -> None:
    """Copy meals (with menu items) and duties (with assignments reset to ASSIGNED)."""
    source = get_retreat(source_retreat_id)

    for meal in source.meals:
        new_meal = Meal(
            retreat_id=target_retreat_id,
            name=meal.name,
            description=meal.description,
            price=meal.price,
            meal_date=meal.meal_date,
            available=meal.available,
        )
        for mi in meal.menu_items:
            new_meal.menu_items.append(MenuItem(
                name=mi.name, description=mi.description, requires_quantity=mi.requires_quantity,
            ))
        db.session.add(new_meal)

    now = datetime.utcnow()
    for duty in source.duties:
        new_duty = Duty(
            retreat_id=target_retreat_id,
            title=duty.title,
            description=duty.description,
            status=DUTY_ASSIGNED if duty.assignments else DUTY_PENDING,
        )
        for a in duty.assignments:
            new_duty.assignments.append(DutyAssignment(user_id=a.user_id, status=ASSIGNMENT_ASSIGNED, assigned_at=now))
        db.session.add(new_duty)

    db.session.commit()
    current_app.logger.info(
        "Copied %d meal(s) and %d duties from retreat %s to %s",
        len(source.meals), len(source.duties), source_retreat_id, target_retreat_id,
    )

def create_meal(retreat_id: int, name, meal_date, price=0, description=None, available=True) -> Meal:
    get_retreat(retreat_id)
    name = (name or "").strip()
    when = parse_datetime(meal_date)
    if not name or not when:
        raise ValidationFailed("Name and meal date are required")
    try:
        price = Decimal(str(price or 0)).quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValidationFailed("Price must be a number")
    if price < 0:
        raise ValidationFailed("Price cannot be negative")

    meal = Meal(
        retreat_id=retreat_id, name=name, description=(description or "").strip() or None,
        price=price, meal_date=when, available=bool(available),
    )
    db.session.add(meal)
    db.session.commit()
    return meal

def _meal_in_retreat(retreat_id: int, meal_id: int) -> Meal:
    meal = db.session.get(Meal, meal_id)
    if meal is None or meal.retreat_id != retreat_id:
        raise NotFound("Meal not found")
    return meal

def delete_meal(retreat_id: int, meal_id: int) -> None:
    db.session.delete(_meal_in_retreat(retreat_id, meal_id))
    db.session.commit()

def create_menu_item(retreat_id: int, meal_id: int, name, description=None, requires_quantity=False) -> MenuItem:
    meal = _meal_in_retreat(retreat_id, meal_id)
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Menu item name is required")
    item = MenuItem(
        meal_id=meal.id, name=name, description=(description or "").strip() or None,
        requires_quantity=bool(requires_quantity),
    )
    db.session.add(item)
    db.session.commit()
    return item

def delete_menu_item(retreat_id: int, meal_id: int, menu_item_id: int) -> None:
    meal = _meal_in_retreat(retreat_id, meal_id)
    item = db.session.get(MenuItem, menu_item_id)
    if item is None or item.meal_id != meal.id:
        raise NotFound("Menu item not found")
    db.session.delete(item)
    db.session.commit()


# ---------------- attendance ----------------
def attend(user_id: int, retreat_id: int) -> str:
    get_retreat(retreat_id)
    reg = RetreatRegistration.query.filter_by(user_id=user_id, retreat_id=retreat_id).first()
    if reg:
        if reg.status == REGISTRATION_CANCELLED:
            reg.status = REGISTRATION_REGISTERED
            db.session.commit()
            return "Attendance restored"
        return "Already attending this retreat"
    db.session.add(RetreatRegistration(user_id=user_id, retreat_id=retreat_id, status=REGISTRATION_REGISTERED))
    db.session.commit()
    return "Successfully marked as attending"

def decline(user_id: int, retreat_id: int) -> None:
    reg = RetreatRegistration.query.filter_by(user_id=user_id, retreat_id=retreat_id).first()
    if reg is None:
        raise NotFound("Not currently attending this retreat")
    reg.status = REGISTRATION_CANCELLED
    db.session.commit()

def registration_status(user_id: int, retreat_id: int) -> str | None:
    reg = RetreatRegistration.query.filter_by(user_id=user_id, retreat_id=retreat_id).first()
    return reg.status if reg else None

def active_participant_counts(retreat_ids) -> dict[int, int]:
    ids = list(retreat_ids)
    if not ids:
        return {}
    rows = (db.session.query(RetreatRegistration.retreat_id, func.count(RetreatRegistration.id))
            .filter(RetreatRegistration.retreat_id.in_(ids),
                    RetreatRegistration.status != REGISTRATION_CANCELLED)
            .group_by(RetreatRegistration.retreat_id)
            .all())
    return {rid: int(n) for rid, n in rows}
