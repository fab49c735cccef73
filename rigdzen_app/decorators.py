# rigdzen_app/decorators.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from functools import wraps
from flask import flash, redirect, url_for, request

from .errors import AuthenticationMissing, AuthorizationDenied
from .extensions import db
from .models.user import User
from .services.sessions import get_effective_session, get_admin_session, get_session


def _is_api() -> bool:
    return request.path.startswith("/api/")

def current_user():
    """User the request acts as (the impersonated one while an admin is viewing as someone)."""
    sess = get_effective_session()
    return db.session.get(User, sess.user_id) if sess else None

def login_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if current_user() is None:
            if _is_api():
                raise AuthenticationMissing()
            flash("Please sign in to continue.", "warning")
            return redirect(url_for("core.index", next=request.path))
        return view_func(*args, **kwargs)
    return wrapper

def admin_required(view_func):
    """Checks the real session, so an admin viewing as a participant keeps admin access."""
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if get_session() is None:
            if _is_api():
                raise AuthenticationMissing()
            flash("Please sign in to continue.", "warning")
            return redirect(url_for("core.index", next=request.path))
        if get_admin_session() is None:
            if _is_api():
                raise AuthorizationDenied("Forbidden - Admin access required")
            flash("Admin access required.", "danger")
            return redirect(url_for("core.dashboard"))
        return view_func(*args, **kwargs)
    return wrapper
