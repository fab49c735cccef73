# rigdzen_app/services/sessions.py
# -*- coding: utf-8 -*-
"""
Stateless signed-cookie sessions and the admin impersonation overlay.

The session cookie carries ``{user_id, email, role, expires_at}`` signed with
``SECRET_KEY``. The overlay cookie carries the identity an admin is viewing the
site as; it is only honoured when ``IMPERSONATION_ENABLED`` is set and the
real session belongs to an admin. Data access uses ``get_effective_session()``,
admin-gated actions use ``get_admin_session()``.

Readers never raise and never touch cookies. Functions that write cookies take
the ``response`` they write to.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, asdict

from flask import current_app, request
from itsdangerous import BadSignature, URLSafeTimedSerializer

from ..errors import AuthorizationDenied
from ..models.user import ROLE_ADMIN

DAY_MS = 24 * 60 * 60 * 1000

_SESSION_SALT = "rigdzen-session"
_OVERLAY_SALT = "rigdzen-impersonate"


@dataclass(frozen=True)
class SessionData:
    user_id: int
    email: str
    role: str
    expires_at: int  # epoch milliseconds

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_payload(self) -> dict:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload) -> "SessionData":
        return cls(
            user_id=int(payload["user_id"]),
            email=str(payload["email"]),
            role=str(payload["role"]),
            expires_at=int(payload["expires_at"]),
        )


def _now_ms() -> int:
    return int(time.time() * 1000)

def _duration_ms() -> int:
    return int(current_app.config.get("SESSION_DURATION_DAYS", 7)) * DAY_MS

def _serializer(salt: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=salt)

def _cookie_names() -> tuple[str, str]:
    cfg = current_app.config
    return cfg.get("AUTH_COOKIE_NAME", "rigdzen-session"), cfg.get("IMPERSONATION_COOKIE_NAME", "rigdzen-impersonate")

def impersonation_enabled() -> bool:
    return bool(current_app.config.get("IMPERSONATION_ENABLED"))


# ---------------- token encoding ----------------
def encode_token(data: SessionData, salt: str = _SESSION_SALT) -> str:
    return _serializer(salt).dumps(data.to_payload())

def decode_token(token: str | None, salt: str = _SESSION_SALT) -> SessionData | None:
    """Verified payload, or None for a missing, tampered, malformed or expired token."""
    if not token:
        return None
    try:
        payload = _serializer(salt).loads(token, max_age=_duration_ms() // 1000)
        data = SessionData.from_payload(payload)
    except (BadSignature, KeyError, TypeError, ValueError):
        return None
    if data.expires_at < _now_ms():
        return None
    return data

def _set_cookie(response, name: str, token: str) -> None:
    response.set_cookie(
        name,
        token,
        max_age=_duration_ms() // 1000,
        httponly=True,
        secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")),
        samesite="Lax",
        path="/",
    )


# ---------------- real session ----------------
def create_session(response, user_id: int, email: str, role: str) -> SessionData:
    data = SessionData(user_id=user_id, email=email, role=role, expires_at=_now_ms() + _duration_ms())
    session_cookie, _ = _cookie_names()
    _set_cookie(response, session_cookie, encode_token(data))
    return data

def get_session() -> SessionData | None:
    session_cookie, _ = _cookie_names()
    return decode_token(request.cookies.get(session_cookie))

def refresh_session(response) -> SessionData | None:
    """Sliding expiration: re-issue when less than the threshold remains."""
    sess = get_session()
    if sess is None:
        return None
    threshold = float(current_app.config.get("SESSION_REFRESH_THRESHOLD_DAYS", 1))
    days_remaining = (sess.expires_at - _now_ms()) / DAY_MS
    if days_remaining < threshold:
        return create_session(response, sess.user_id, sess.email, sess.role)
    return sess

def delete_session(response) -> None:
    session_cookie, overlay_cookie = _cookie_names()
    response.delete_cookie(session_cookie, path="/")
    response.delete_cookie(overlay_cookie, path="/")

def get_admin_session() -> SessionData | None:
    """The real logged-in admin, even while impersonating."""
    sess = get_session()
    if sess is None or not sess.is_admin:
        return None
    return sess


# ---------------- impersonation overlay ----------------
def _overlay() -> SessionData | None:
    _, overlay_cookie = _cookie_names()
    return decode_token(request.cookies.get(overlay_cookie), salt=_OVERLAY_SALT)

def get_effective_session() -> SessionData | None:
    sess = get_session()
    if sess is None or not impersonation_enabled() or not sess.is_admin:
        return sess
    overlay = _overlay()
    if overlay is None:
        return sess
    # keep the real expiry: the overlay never outlives the admin's session
    return SessionData(user_id=overlay.user_id, email=overlay.email, role=overlay.role, expires_at=sess.expires_at)

def start_impersonation(response, target_user_id: int, target_email: str, target_role: str) -> SessionData:
    if not impersonation_enabled():
        raise AuthorizationDenied("Impersonation is only available in development")
    sess = get_session()
    if sess is None or not sess.is_admin:
        raise AuthorizationDenied("Only admins can impersonate users")
    overlay = SessionData(
        user_id=target_user_id, email=target_email, role=target_role,
        expires_at=_now_ms() + _duration_ms(),
    )
    _, overlay_cookie = _cookie_names()
    _set_cookie(response, overlay_cookie, encode_token(overlay, salt=_OVERLAY_SALT))
    return overlay

def stop_impersonation(response) -> None:
    if not impersonation_enabled():
        return
    _, overlay_cookie = _cookie_names()
    response.delete_cookie(overlay_cookie, path="/")

def is_impersonating() -> bool:
    if not impersonation_enabled():
        return False
    sess = get_session()
    if sess is None or not sess.is_admin:
        return False
    return _overlay() is not None


# ---------------- after_request ----------------
def _sets_cookie(response, name: str) -> bool:
    prefix = f"{name}="
    return any(h.startswith(prefix) for h in response.headers.getlist("Set-Cookie"))

def slide_session(response):
    """
    Runs after every request: refreshes a session close to expiry and clears
    cookies that no longer verify. Skipped for cookies the view already wrote
    (login, logout, impersonation start/stop).
    """
    session_cookie, overlay_cookie = _cookie_names()
    if session_cookie in request.cookies and not _sets_cookie(response, session_cookie):
        if refresh_session(response) is None:
            response.delete_cookie(session_cookie, path="/")
    if overlay_cookie in request.cookies and not _sets_cookie(response, overlay_cookie):
        if _overlay() is None:
            response.delete_cookie(overlay_cookie, path="/")
    return response
