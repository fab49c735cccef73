# rigdzen_app/services/reports.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from decimal import Decimal

from ..models.duty import Duty, DutyAssignment, ASSIGNMENT_COMPLETED
from ..models.meal import Meal, MealOrder, ORDER_PAID, ORDER_PENDING
from ..models.retreat import Retreat, RetreatRegistration, REGISTRATION_CANCELLED
from ..models.user import User
from .meal_orders import order_amount


def unpaid_meals() -> list[dict]:
    orders = (MealOrder.query
              .join(Meal, MealOrder.meal_id == Meal.id)
              .join(Retreat, MealOrder.retreat_id == Retreat.id)
              .join(User, MealOrder.user_id == User.id)
              .filter(MealOrder.status == ORDER_PENDING)
              .order_by(Retreat.start_date.desc(), Meal.meal_date.asc(), User.name.asc())
              .all())
    return [{"order": o, "user": o.user, "meal": o.meal, "retreat": o.meal.retreat, "amount": order_amount(o)}
            for o in orders]

def unacknowledged_duties() -> list[DutyAssignment]:
    return (DutyAssignment.query
            .join(Duty, DutyAssignment.duty_id == Duty.id)
            .join(Retreat, Duty.retreat_id == Retreat.id)
            .filter(DutyAssignment.status != ASSIGNMENT_COMPLETED)
            .order_by(Retreat.start_date.desc(), Duty.title.asc(), DutyAssignment.assigned_at.asc())
            .all())

def user_meal_selections(retreat_id: int | None = None) -> list[dict]:
    """
    Orders (PENDING or PAID) grouped by user, with paid/unpaid totals.

    ``has_issue`` flags a user who paid for a meal in a retreat they have
    since declined.
    """
    q = (MealOrder.query
         .join(Meal, MealOrder.meal_id == Meal.id)
         .join(Retreat, Meal.retreat_id == Retreat.id)
         .join(User, MealOrder.user_id == User.id)
         .filter(MealOrder.status.in_((ORDER_PENDING, ORDER_PAID))))
    if retreat_id:
        q = q.filter(Meal.retreat_id == retreat_id)
    orders = q.order_by(Retreat.start_date.desc(), Meal.meal_date.asc(), User.name.asc()).all()

    user_ids = {o.user_id for o in orders}
    cancelled = set()
    if user_ids:
        cancelled = {
            (r.user_id, r.retreat_id)
            for r in RetreatRegistration.query.filter(
                RetreatRegistration.user_id.in_(user_ids),
                RetreatRegistration.status == REGISTRATION_CANCELLED,
            )
        }

    groups: dict[int, dict] = {}
    for o in orders:
        g = groups.setdefault(o.user_id, {
            "user": o.user, "orders": [],
            "total_paid": Decimal("0"), "total_unpaid": Decimal("0"), "has_issue": False,
        })
        declined = (o.user_id, o.meal.retreat_id) in cancelled
        amount = order_amount(o)
        g["orders"].append({"order": o, "amount": amount, "declined": declined})
        if o.status == ORDER_PAID:
            g["total_paid"] += amount
            if declined:
                g["has_issue"] = True
        else:
            g["total_unpaid"] += amount
    return list(groups.values())
