# rigdzen_app/services/paypal.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

import requests
from flask import current_app

from ..errors import ExternalProviderFailure

PAYPAL_URLS = {
    "production": "https://api-m.paypal.com",
    "sandbox": "https://api-m.sandbox.paypal.com",
}


@dataclass(frozen=True)
class CreatedOrder:
    order_id: str
    approval_url: str | None


@dataclass(frozen=True)
class CaptureResult:
    order_id: str
    capture_id: str | None
    status: str | None
    amount: Decimal
    currency: str | None
    payer_id: str | None

    @property
    def completed(self) -> bool:
        return self.status == "COMPLETED"


def _base_url() -> str:
    env = (current_app.config.get("PAYPAL_ENVIRONMENT") or "sandbox").lower()
    return PAYPAL_URLS["production"] if env == "production" else PAYPAL_URLS["sandbox"]

def _timeout() -> int:
    return int(current_app.config.get("PAYPAL_TIMEOUT", 30))

def get_access_token() -> str:
    client_id = current_app.config.get("PAYPAL_CLIENT_ID")
    secret = current_app.config.get("PAYPAL_CLIENT_SECRET")
    if not client_id or not secret:
        raise ExternalProviderFailure("PayPal credentials not configured")
    try:
        resp = requests.post(
            f"{_base_url()}/v1/oauth2/token",
            auth=(client_id, secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
            timeout=_timeout(),
        )
    except requests.RequestException as e:
        current_app.logger.warning("PayPal token request failed: %s", e)
        raise ExternalProviderFailure("Failed to get PayPal access token") from e
    if resp.status_code >= 400:
        current_app.logger.warning("PayPal token error %s: %s", resp.status_code, resp.text)
        raise ExternalProviderFailure("Failed to get PayPal access token")
    return resp.json()["access_token"]

def paypal_request(method: str, endpoint: str, payload: dict | None = None) -> dict:
    """Authenticated call to the PayPal REST API; returns the decoded JSON body."""
    token = get_access_token()
    try:
        resp = requests.request(
            method,
            f"{_base_url()}{endpoint}",
            json=payload if payload is not None else {},
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            timeout=_timeout(),
        )
    except requests.RequestException as e:
        current_app.logger.warning("PayPal %s %s failed: %s", method, endpoint, e)
        raise ExternalProviderFailure("PayPal request failed") from e
    if resp.status_code >= 400:
        current_app.logger.warning("PayPal API error %s on %s: %s", resp.status_code, endpoint, resp.text)
        raise ExternalProviderFailure("PayPal request failed")
    return resp.json()


def create_order(amount: Decimal, currency: str, description: str, return_url: str, cancel_url: str) -> CreatedOrder:
    body = {
        "intent": "CAPTURE",
        "purchase_units": [{
            "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
            "description": description,
        }],
        "application_context": {
            "brand_name": current_app.config.get("PAYPAL_BRAND_NAME", "Rigdzen"),
            "landing_page": "NO_PREFERENCE",
            "user_action": "PAY_NOW",
            "return_url": return_url,
            "cancel_url": cancel_url,
        },
    }
    data = paypal_request("POST", "/v2/checkout/orders", body)
    if not data.get("id"):
        raise ExternalProviderFailure("Failed to create PayPal order")
    approve = next((l.get("href") for l in data.get("links") or [] if l.get("rel") == "approve"), None)
    return CreatedOrder(order_id=data["id"], approval_url=approve)


def capture_order(order_id: str) -> CaptureResult:
    data = paypal_request("POST", f"/v2/checkout/orders/{order_id}/capture")
    if not data.get("id"):
        raise ExternalProviderFailure("Failed to capture PayPal payment")

    units = data.get("purchase_units") or [{}]
    captures = ((units[0].get("payments") or {}).get("captures")) or []
    capture = captures[0] if captures else {}
    amount = capture.get("amount") or {}
    try:
        value = Decimal(str(amount.get("value") or "0"))
    except InvalidOperation:
        value = Decimal("0")

    return CaptureResult(
        order_id=data["id"],
        capture_id=capture.get("id"),
        status=capture.get("status"),
        amount=value,
        currency=amount.get("currency_code"),
        payer_id=(data.get("payer") or {}).get("payer_id"),
    )
