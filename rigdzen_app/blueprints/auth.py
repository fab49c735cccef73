# rigdzen_app/blueprints/auth.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import time
from datetime import datetime, timezone

from flask import Blueprint, render_template, request, redirect, url_for, flash, jsonify, current_app

from ..decorators import login_required, current_user
from ..errors import AppError
from ..services import oauth
from ..services.sessions import create_session, delete_session, get_session, DAY_MS
from ..services.users import complete_profile, skip_profile

bp = Blueprint("auth", __name__)

DIETARY_OPTIONS = ("Vegetarian", "Vegan", "Gluten-free", "Dairy-free", "Nut allergy")


def _callback_url() -> str:
    return url_for("auth.google_callback", _external=True)

@bp.route("/auth/google")
def google_login():
    return redirect(oauth.authorization_url(_callback_url()))

@bp.route("/auth/google/callback")
def google_callback():
    code = request.args.get("code")
    if request.args.get("error") or not code:
        return redirect(url_for("core.index", error="oauth_error"))

    try:
        claims = oauth.exchange_code(code, _callback_url())
        user = oauth.login_or_link(claims)
    except AppError as e:
        current_app.logger.warning("Google callback failed: %s", e.message)
        return redirect(url_for("core.index", error="oauth_error"))

    if user is None:
        return redirect(url_for("core.index", error="user_not_found", email=claims.get("email")))

    target = "core.dashboard" if user.profile_completed else "auth.profile_complete"
    resp = redirect(url_for(target))
    create_session(resp, user.id, user.email, user.role)
    current_app.logger.info("User %s signed in", user.email)
    return resp

@bp.route("/logout", methods=["GET", "POST"])
def logout():
    resp = redirect(url_for("core.index"))
    delete_session(resp)
    flash("You have been signed out.", "info")
    return resp

@bp.route("/api/auth/session")
def session_info():
    sess = get_session()
    if sess is None:
        return jsonify({"authenticated": False, "session": None})
    expires = datetime.fromtimestamp(sess.expires_at / 1000, tz=timezone.utc)
    return jsonify({
        "authenticated": True,
        "session": {
            "userId": sess.user_id,
            "email": sess.email,
            "role": sess.role,
            "expiresAt": expires.isoformat(),
            "expiresIn": f"{int((sess.expires_at - time.time() * 1000) // DAY_MS)} days",
        },
    })


# ---------------- profile ----------------
@bp.route("/profile/complete", methods=["GET", "POST"])
@login_required
def profile_complete():
    u = current_user()
    if request.method == "POST":
        complete_profile(
            u.id,
            request.form.get("name"),
            request.form.getlist("dietary_restrictions"),
            request.form.get("dietary_notes"),
        )
        flash("Profile saved.", "success")
        return redirect(url_for("core.dashboard"))
    return render_template("profile_complete.html", user=u, options=DIETARY_OPTIONS)

@bp.route("/profile/complete/skip")
@login_required
def profile_skip():
    skip_profile(current_user().id)
    return redirect(url_for("core.dashboard"))
