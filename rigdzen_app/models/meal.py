# rigdzen_app/models/meal.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

ORDER_PENDING = "PENDING"
ORDER_PAID = "PAID"

METHOD_PAYPAL = "PAYPAL"
METHOD_CASH = "CASH"

class Meal(db.Model):
    __tablename__ = "meals"

    id = db.Column(db.Integer, primary_key=True)
    retreat_id = db.Column(db.Integer, db.ForeignKey("retreats.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    meal_date = db.Column(db.DateTime, nullable=False)
    available = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    menu_items = db.relationship("MenuItem", backref="meal", cascade="all,delete-orphan", order_by="MenuItem.id")
    orders = db.relationship("MealOrder", backref="meal", cascade="all,delete-orphan")

class MenuItem(db.Model):
    __tablename__ = "menu_items"

    id = db.Column(db.Integer, primary_key=True)
    meal_id = db.Column(db.Integer, db.ForeignKey("meals.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    requires_quantity = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    selections = db.relationship("MealOrderMenuItem", backref="menu_item", cascade="all,delete-orphan")

class MealOrder(db.Model):
    __tablename__ = "meal_orders"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    meal_id = db.Column(db.Integer, db.ForeignKey("meals.id", ondelete="CASCADE"), nullable=False, index=True)
    retreat_id = db.Column(db.Integer, db.ForeignKey("retreats.id", ondelete="CASCADE"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=ORDER_PENDING)   # PENDING | PAID
    payment_method = db.Column(db.String(20))                                  # PAYPAL | CASH
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("User")
    menu_items = db.relationship("MealOrderMenuItem", backref="meal_order", cascade="all,delete-orphan")
    payment = db.relationship("Payment", backref="meal_order", uselist=False)

    __table_args__ = (
        db.UniqueConstraint("user_id", "meal_id", name="uq_meal_order_user_meal"),
    )

class MealOrderMenuItem(db.Model):
    __tablename__ = "meal_order_menu_items"

    id = db.Column(db.Integer, primary_key=True)
    meal_order_id = db.Column(db.Integer, db.ForeignKey("meal_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = db.Column(db.Integer)   # only set for items that require a quantity
