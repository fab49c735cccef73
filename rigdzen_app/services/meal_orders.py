# rigdzen_app/services/meal_orders.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from decimal import Decimal

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models.meal import Meal, MealOrder, MealOrderMenuItem, ORDER_PAID, ORDER_PENDING
from ..models.retreat import Retreat

CENT = Decimal("0.01")


def order_multiplier(order: MealOrder) -> int:
    """Largest quantity among quantity-bearing selections, never below 1."""
    quantities = [
        sel.quantity for sel in order.menu_items
        if sel.quantity is not None and (sel.menu_item is None or sel.menu_item.requires_quantity)
    ]
    return max(max(quantities, default=1), 1)

def order_amount(order: MealOrder) -> Decimal:
    price = Decimal(str(order.meal.price or 0))
    return (price * order_multiplier(order)).quantize(CENT)

def pending_orders(user_id: int, retreat_id: int) -> list[MealOrder]:
    return (MealOrder.query
            .filter_by(user_id=user_id, retreat_id=retreat_id, status=ORDER_PENDING)
            .order_by(MealOrder.id.asc())
            .all())


def _coerce_selections(raw) -> list[tuple[int, int | None]]:
    out = []
    for item in raw or []:
        try:
            menu_item_id = int(item.get("menu_item_id", item.get("menuItemId")))
        except (TypeError, ValueError):
            raise ValidationFailed("Invalid menu item")
        qty = item.get("quantity")
        if qty in (None, ""):
            qty = None
        else:
            try:
                qty = int(qty)
            except (TypeError, ValueError):
                raise ValidationFailed("Quantity must be a whole number")
        out.append((menu_item_id, qty))
    return out

def place_order(user_id: int, retreat_id: int, meal_id: int, selections) -> tuple[str, MealOrder | None]:
    """
    Create, replace or cancel the user's order for a meal.

    ``selections`` is a list of ``{"menu_item_id", "quantity"}`` dicts. An empty
    list cancels an unpaid order. Returns ``(action, order)`` where action is
    one of created / updated / cancelled / noop.
    """
    meal = db.session.get(Meal, meal_id)
    if not meal or meal.retreat_id != retreat_id:
        raise NotFound("Meal not found")
    if not meal.available:
        raise ValidationFailed("Meal is not available for ordering")
    retreat = db.session.get(Retreat, retreat_id)
    if retreat and retreat.ordering_closed():
        raise ValidationFailed("Ordering deadline has passed")

    chosen = _coerce_selections(selections)
    existing = MealOrder.query.filter_by(user_id=user_id, meal_id=meal.id).first()

    if not chosen:
        if not existing:
            return "noop", None
        if existing.status == ORDER_PAID or existing.payment is not None:
            raise ValidationFailed("Cannot cancel a paid order. Please contact an administrator for a refund.")
        db.session.delete(existing)
        db.session.commit()
        return "cancelled", None

    items_by_id = {mi.id: mi for mi in meal.menu_items}
    rows = []
    for menu_item_id, qty in chosen:
        mi = items_by_id.get(menu_item_id)
        if mi is None:
            raise ValidationFailed(f"Menu item {menu_item_id} does not belong to this meal")
        if mi.requires_quantity:
            if not qty or qty <= 0:
                raise ValidationFailed(f"Quantity must be greater than zero for {mi.name}")
        else:
            qty = None
        rows.append(MealOrderMenuItem(menu_item_id=mi.id, quantity=qty))

    if existing:
        if existing.status == ORDER_PAID:
            raise ValidationFailed("This order is already paid and can no longer be changed")
        existing.menu_items.clear()
        existing.menu_items.extend(rows)
        db.session.commit()
        return "updated", existing

    order = MealOrder(user_id=user_id, retreat_id=retreat_id, meal_id=meal.id, status=ORDER_PENDING)
    order.menu_items.extend(rows)
    db.session.add(order)
    db.session.commit()
    return "created", order
