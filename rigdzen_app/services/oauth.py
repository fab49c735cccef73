# rigdzen_app/services/oauth.py
# -*- coding: utf-8 -*-
"""
Google sign-in. Only users that already exist (imported by an admin or via
``flask upsert-users``) can log in; the Google account is linked on first use.
"""
from __future__ import annotations

from urllib.parse import urlencode

import requests
from flask import current_app
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from ..errors import AuthenticationMissing, ExternalProviderFailure, ValidationFailed
from ..extensions import db
from ..models.user import User, OAuthAccount

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
PROVIDER_GOOGLE = "GOOGLE"


def _client_credentials() -> tuple[str, str]:
    client_id = current_app.config.get("GOOGLE_CLIENT_ID")
    secret = current_app.config.get("GOOGLE_CLIENT_SECRET")
    if not client_id or not secret:
        raise ExternalProviderFailure("Google OAuth not configured")
    return client_id, secret

def authorization_url(redirect_uri: str) -> str:
    client_id, _ = _client_credentials()
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": "openid email profile",
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

def exchange_code(code: str, redirect_uri: str) -> dict:
    """Trade the authorization code for tokens and return the verified ID token claims."""
    client_id, secret = _client_credentials()
    try:
        resp = requests.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": client_id,
                "client_secret": secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
            timeout=15,
        )
    except requests.RequestException as e:
        current_app.logger.warning("Google token exchange failed: %s", e)
        raise ExternalProviderFailure("Google token exchange failed") from e
    if resp.status_code >= 400:
        current_app.logger.warning("Google token error %s: %s", resp.status_code, resp.text)
        raise ExternalProviderFailure("Google token exchange failed")

    token = (resp.json() or {}).get("id_token")
    if not token:
        raise ValidationFailed("No ID token received")
    try:
        return id_token.verify_oauth2_token(token, google_requests.Request(), client_id)
    except ValueError as e:
        current_app.logger.warning("Invalid Google ID token: %s", e)
        raise AuthenticationMissing("Invalid ID token") from e

def login_or_link(claims: dict) -> User | None:
    """The existing user for the Google identity, linking the account if needed. None for unknown emails."""
    email = (claims.get("email") or "").strip().lower()
    google_id = claims.get("sub")
    if not email or not google_id:
        raise ValidationFailed("Missing user information from Google")

    user = User.query.filter_by(email=email).first()
    if user is None:
        current_app.logger.warning("Google login refused for unknown email %s", email)
        return None

    linked = OAuthAccount.query.filter_by(provider=PROVIDER_GOOGLE, provider_id=google_id).first()
    if linked is None:
        db.session.add(OAuthAccount(user_id=user.id, provider=PROVIDER_GOOGLE, provider_id=google_id))
        db.session.commit()
        current_app.logger.info("Linked Google account to %s", email)
    return user
