# rigdzen_app/services/payments.py
# -*- coding: utf-8 -*-
"""
PayPal checkout and capture reconciliation for meal orders.

One PayPal order pays for every pending meal order a user has in a retreat.
Before capture it is represented by a *tracking* Payment (no meal order,
carries the PayPal order id). On capture the captured amount is split over the
pending orders and each gets its own COMPLETED Payment; only one of them keeps
the PayPal order id because ``external_order_ref`` is unique.

``reconcile`` is the pure part of that and works without a database.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConstraintViolation, ExternalProviderFailure, NotFound, ValidationFailed
from ..extensions import db
from ..models.meal import MealOrder, ORDER_PAID, METHOD_CASH, METHOD_PAYPAL
from ..models.payment import Payment, PAYMENT_COMPLETED, PAYMENT_PENDING
from . import paypal
from .meal_orders import CENT, order_amount, pending_orders

TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class Tracking:
    external_ref: str
    total_amount: Decimal
    meal_order_id: int | None = None   # set when the tracking row belongs to one order


@dataclass(frozen=True)
class PendingCharge:
    meal_order_id: int
    expected: Decimal


@dataclass(frozen=True)
class Settled:
    meal_order_id: int
    amount: Decimal
    owns_reference: bool


def _to_cents(value: Decimal) -> int:
    return int((Decimal(value) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))

def split_amounts(expected: list[Decimal], captured: Decimal) -> list[Decimal]:
    """
    Amount funded for each expected charge.

    Matching totals (within a cent) keep the expected amounts. Otherwise the
    captured amount is split in proportion to the expected amounts, or equally
    when nothing has a price. Splits are computed in cents, floored, and the
    leftover cents go one each to the first charges so the result sums to the
    captured amount exactly.
    """
    n = len(expected)
    if n == 0:
        return []
    total = sum(expected, Decimal("0"))
    if abs(total - captured) < TOLERANCE:
        return [Decimal(e).quantize(CENT) for e in expected]

    captured_cents = _to_cents(captured)
    if total > 0:
        cents = [int((captured_cents * Decimal(e) / total).to_integral_value(rounding=ROUND_FLOOR)) for e in expected]
    else:
        cents = [captured_cents // n] * n

    leftover = captured_cents - sum(cents)
    for i in range(leftover):
        cents[i % n] += 1
    return [(Decimal(c) / 100).quantize(CENT) for c in cents]

def reconcile(tracking: Tracking, captured_amount: Decimal, pending: list[PendingCharge]) -> list[Settled]:
    amounts = split_amounts([p.expected for p in pending], captured_amount)
    order_ids = [p.meal_order_id for p in pending]
    if tracking.meal_order_id in order_ids:
        owner = tracking.meal_order_id
    else:
        owner = order_ids[0] if order_ids else None
    return [
        Settled(meal_order_id=p.meal_order_id, amount=amt, owns_reference=(p.meal_order_id == owner))
        for p, amt in zip(pending, amounts)
    ]


# ---------------- checkout ----------------
def _currency() -> str:
    return current_app.config.get("PAYPAL_CURRENCY", "CAD")

def create_checkout(user_id: int, retreat_id: int, return_url: str, cancel_url: str) -> dict:
    """Create a PayPal order for all pending meal orders and reserve its id in a tracking Payment."""
    orders = pending_orders(user_id, retreat_id)
    if not orders:
        raise ValidationFailed("No pending orders to pay for")

    total = sum((order_amount(o) for o in orders), Decimal("0"))
    created = paypal.create_order(
        total, _currency(),
        f"Meal orders for retreat: {len(orders)} meal(s)",
        return_url, cancel_url,
    )

    payment = Payment.query.filter_by(
        user_id=user_id, external_order_ref=created.order_id, status=PAYMENT_PENDING
    ).first()
    if payment:
        payment.amount = total
    else:
        payment = Payment(
            user_id=user_id,
            meal_order_id=None,
            amount=total,
            currency=_currency(),
            external_order_ref=created.order_id,
            status=PAYMENT_PENDING,
        )
        db.session.add(payment)
    db.session.commit()

    current_app.logger.info("PayPal order %s created for user %s (%s %s)", created.order_id, user_id, total, _currency())
    return {"orderId": created.order_id, "paymentId": payment.id, "approvalUrl": created.approval_url}


# ---------------- capture ----------------
def capture_payment(user_id: int, retreat_id: int, order_ref: str) -> dict:
    if not order_ref:
        raise ValidationFailed("PayPal order ID is required")

    tracking_row = Payment.query.filter_by(
        external_order_ref=order_ref, user_id=user_id, status=PAYMENT_PENDING
    ).first()
    if tracking_row is None:
        if Payment.query.filter_by(external_order_ref=order_ref, user_id=user_id, status=PAYMENT_COMPLETED).first():
            raise ConstraintViolation("Payment already processed")
        raise NotFound("Payment not found")
    linked = tracking_row.meal_order
    if linked is not None and linked.retreat_id != retreat_id:
        current_app.logger.warning("PayPal order %s belongs to retreat %s, not %s", order_ref, linked.retreat_id, retreat_id)
        raise ValidationFailed("Payment does not belong to this retreat")

    result = paypal.capture_order(order_ref)
    if not result.completed:
        current_app.logger.warning("PayPal order %s capture status %s", order_ref, result.status)
        raise ExternalProviderFailure("Payment capture not completed")

    orders = pending_orders(user_id, retreat_id)
    charges = [PendingCharge(meal_order_id=o.id, expected=order_amount(o)) for o in orders]
    tracking = Tracking(
        external_ref=order_ref,
        total_amount=Decimal(str(tracking_row.amount or 0)),
        meal_order_id=tracking_row.meal_order_id,
    )
    plan = reconcile(tracking, result.amount, charges)
    try:
        owner = _apply_settlement(tracking_row, plan, orders, result)
        db.session.commit()
    except (IntegrityError, StaleDataError) as e:
        db.session.rollback()
        current_app.logger.warning("PayPal order %s already settled: %s", order_ref, e)
        raise ConstraintViolation("Payment already processed") from e
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "PayPal order %s captured: %s %s over %d meal order(s)",
        order_ref, result.amount, result.currency, len(plan),
    )
    return {
        "success": True,
        "paymentId": owner.id,
        "captureId": result.capture_id,
        "orderId": result.order_id,
    }

def _apply_settlement(tracking_row: Payment, plan: list[Settled], orders: list[MealOrder], result) -> Payment:
    """Write the settled payments; the caller commits or rolls back."""
    now = datetime.utcnow()
    currency = result.currency or _currency()
    order_ref = tracking_row.external_order_ref

    if not plan:
        # captured with nothing left to settle: keep the row as the record of the capture
        tracking_row.amount = result.amount
        tracking_row.status = PAYMENT_COMPLETED
        tracking_row.completed_at = now
        tracking_row.payer_ref = result.payer_id
        current_app.logger.warning("PayPal order %s captured with no pending meal orders", order_ref)
        return tracking_row

    settled_ids = {s.meal_order_id for s in plan}
    if tracking_row.meal_order_id is None:
        # placeholder has served its purpose; release the reference before reassigning it
        db.session.delete(tracking_row)
        db.session.flush()
    elif tracking_row.meal_order_id not in settled_ids:
        # the row is its own order's payment; it only gives up the reference
        tracking_row.external_order_ref = None
        db.session.flush()

    by_id = {o.id: o for o in orders}
    owner = None
    for s in plan:
        order = by_id[s.meal_order_id]
        payment = Payment.query.filter_by(meal_order_id=order.id).first()
        if payment is None:
            payment = Payment(user_id=order.user_id, meal_order_id=order.id)
            db.session.add(payment)
        payment.amount = s.amount
        payment.currency = currency
        payment.status = PAYMENT_COMPLETED
        payment.completed_at = now
        payment.payer_ref = result.payer_id
        if s.owns_reference:
            owner = payment
        else:
            payment.external_order_ref = None

        order.status = ORDER_PAID
        order.payment_method = METHOD_PAYPAL

    # non-owners are cleared before the owner takes the unique reference
    db.session.flush()
    owner.external_order_ref = order_ref
    db.session.flush()
    return owner


# ---------------- cash ----------------
def mark_paid_cash(meal_order_id: int) -> Payment:
    order = db.session.get(MealOrder, meal_order_id)
    if order is None:
        raise NotFound("Meal order not found")
    if order.status == ORDER_PAID:
        raise ValidationFailed("Meal order is already marked as paid")

    amount = order_amount(order)
    try:
        payment = Payment.query.filter_by(meal_order_id=order.id).first()
        if payment is None:
            payment = Payment(user_id=order.user_id, meal_order_id=order.id, currency=_currency())
            db.session.add(payment)
        payment.amount = amount
        payment.status = PAYMENT_COMPLETED
        payment.completed_at = datetime.utcnow()
        order.status = ORDER_PAID
        order.payment_method = METHOD_CASH
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConstraintViolation("Meal order payment already recorded") from e

    current_app.logger.info("Meal order %s marked paid in cash (%s)", order.id, amount)
    return payment
