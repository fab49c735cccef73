# rigdzen_app/services/users.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import json

import pandas as pd
from flask import current_app

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models.user import User, ROLES, ROLE_ADMIN, ROLE_PARTICIPANT


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user

def update_user(user_id: int, name=None, role=None) -> User:
    if role and role not in ROLES:
        raise ValidationFailed("Invalid role. Must be ADMIN or PARTICIPANT")
    user = get_user(user_id)
    if name is not None:
        user.name = name.strip() or None
    if role:
        user.role = role
    db.session.commit()
    current_app.logger.info("User %s updated (role=%s)", user.email, user.role)
    return user


# ---------------- profile ----------------
def complete_profile(user_id: int, name, restrictions=None, notes=None) -> User:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Name is required")
    items = [r.strip() for r in (restrictions or []) if r and r.strip()]
    if notes and notes.strip():
        items.append(notes.strip())

    user = get_user(user_id)
    user.name = name
    user.dietary_restrictions = json.dumps(items)
    user.profile_completed = True
    db.session.commit()
    return user

def skip_profile(user_id: int) -> User:
    user = get_user(user_id)
    user.profile_completed = True
    if not user.name:
        user.name = user.email.split("@")[0]
    db.session.commit()
    return user


# ---------------- bootstrap ----------------
def ensure_admin(email: str | None, name: str | None) -> tuple[str, User]:
    """Create the admin user or bring its name/role in line. Returns (created|updated|unchanged, user)."""
    email = (email or "").strip().lower()
    if not email:
        raise ValidationFailed("ADMIN_EMAIL is not configured")
    name = (name or "").strip() or None

    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, name=name, role=ROLE_ADMIN, profile_completed=False)
        db.session.add(user)
        db.session.commit()
        current_app.logger.info("Admin user created: %s", email)
        return "created", user

    if user.role != ROLE_ADMIN or (name and user.name != name):
        user.role = ROLE_ADMIN
        if name:
            user.name = name
        db.session.commit()
        current_app.logger.info("Admin user updated: %s", email)
        return "updated", user
    return "unchanged", user

def upsert_users_from_csv(fh, admin_names=()) -> dict:
    """
    Upsert users from a CSV with ``name`` and ``email`` columns.

    Users whose name is in ``admin_names`` get the ADMIN role, everyone else
    PARTICIPANT. Rows without a name or a valid-looking email are ignored.
    """
    df = pd.read_csv(fh, dtype=str, keep_default_na=False)
    df.columns = [str(c).strip().lower() for c in df.columns]
    if "name" not in df.columns or "email" not in df.columns:
        raise ValidationFailed("CSV must have 'name' and 'email' columns")

    admins = {a.strip() for a in admin_names}
    stats = {"created": 0, "updated": 0, "skipped": 0}
    for row in df.to_dict(orient="records"):
        name = (row.get("name") or "").strip()
        email = (row.get("email") or "").strip().lower()
        if not name or "@" not in email:
            continue
        role = ROLE_ADMIN if name in admins else ROLE_PARTICIPANT

        user = User.query.filter_by(email=email).first()
        if user is None:
            db.session.add(User(email=email, name=name, role=role, profile_completed=False))
            stats["created"] += 1
        elif user.name != name or user.role != role:
            user.name = name
            user.role = role
            stats["updated"] += 1
        else:
            stats["skipped"] += 1
    db.session.commit()
    current_app.logger.info("User upsert: %s", stats)
    return stats
