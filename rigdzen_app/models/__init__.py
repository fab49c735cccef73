# rigdzen_app/models/__init__.py
# -*- coding: utf-8 -*-
from .user import User, OAuthAccount
from .retreat import Retreat, RetreatRegistration
from .meal import Meal, MenuItem, MealOrder, MealOrderMenuItem
from .duty import Duty, DutyAssignment
from .payment import Payment


__all__ = [
    "User",
    "OAuthAccount",
    "Retreat",
    "RetreatRegistration",
    "Meal",
    "MenuItem",
    "MealOrder",
    "MealOrderMenuItem",
    "Duty",
    "DutyAssignment",
    "Payment",
]
