# tests/test_admin_routes.py
# -*- coding: utf-8 -*-
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

import rigdzen_app.blueprints.admin.routes as admin_routes
from rigdzen_app.models import Duty, Meal, MenuItem, Retreat, User


@pytest.fixture
def rendered(monkeypatch):
    """Captures render_template calls instead of rendering the real templates."""
    calls = []

    def fake_render(template, **ctx):
        calls.append((template, ctx))
        return "OK"

    monkeypatch.setattr(admin_routes, "render_template", fake_render, raising=True)
    return calls


def _iso(dt):
    return dt.strftime("%Y-%m-%dT%H:%M")


# -----------------------------------------------------------------------------
# Access control
# -----------------------------------------------------------------------------
def test_participant_is_forbidden(logged_client_user):
    r = logged_client_user.post("/api/admin/retreats", json={})
    assert r.status_code == 403
    assert r.get_json() == {"error": "Forbidden - Admin access required"}

def test_participant_page_redirects_to_dashboard(logged_client_user):
    r = logged_client_user.get("/admin")
    assert r.status_code == 302
    assert r.location.endswith("/dashboard")

def test_anonymous_api_is_unauthorized(client):
    r = client.post("/api/admin/retreats", json={})
    assert r.status_code == 401

def test_admin_panel_stats(logged_client_admin, rendered, make):
    participant = make.user()
    retreat = make.retreat()
    make.order(participant, make.meal(retreat))
    r = logged_client_admin.get("/admin")
    assert r.status_code == 200
    template, ctx = rendered[-1]
    assert template == "admin/panel.html"
    assert ctx["stats"]["unpaid_orders"] == 1
    assert ctx["stats"]["retreats"] == 1

def test_impersonating_admin_keeps_admin_access(client, db_session, make, user_admin, user_normal, login,
                                               impersonation_on, rendered):
    from rigdzen_app.models import RetreatRegistration
    retreat = make.retreat()
    login(user_admin)
    r = client.post("/api/admin/impersonate/start", json={"userId": user_normal.id})
    assert r.status_code == 200
    assert r.get_json()["impersonatedUser"]["id"] == user_normal.id

    # participant actions run as the target
    assert client.post(f"/api/retreats/{retreat.id}/attend").status_code == 200
    assert RetreatRegistration.query.one().user_id == user_normal.id

    # the session endpoint and admin routes still see the real admin
    session = client.get("/api/auth/session").get_json()
    assert session["session"]["userId"] == user_admin.id
    assert client.get("/admin/users").status_code == 200

    r = client.post("/api/admin/impersonate/stop")
    assert r.status_code == 200

def test_impersonation_disabled_is_forbidden(logged_client_admin, user_normal):
    r = logged_client_admin.post("/api/admin/impersonate/start", json={"userId": user_normal.id})
    assert r.status_code == 403
    assert "development" in r.get_json()["error"]


# -----------------------------------------------------------------------------
# Retreats
# -----------------------------------------------------------------------------
def test_create_retreat_via_api(logged_client_admin, db_session):
    start = datetime(2031, 6, 1, 9, 0)
    r = logged_client_admin.post("/api/admin/retreats", json={
        "name": "  Summer  ",
        "start_date": _iso(start),
        "end_date": _iso(start + timedelta(days=5)),
        "location": "Hall",
    })
    assert r.status_code == 200
    body = r.get_json()
    retreat = db_session.get(Retreat, body["retreatId"])
    assert retreat.name == "Summer"
    assert retreat.status == "UPCOMING"
    assert body["redirectUrl"].endswith(f"/admin/retreats/{retreat.id}")

def test_create_retreat_rejects_inverted_dates(logged_client_admin):
    r = logged_client_admin.post("/api/admin/retreats", json={
        "name": "Backwards", "start_date": "2031-06-05", "end_date": "2031-06-01",
    })
    assert r.status_code == 400
    assert r.get_json()["error"] == "End date must be after start date"

def test_create_retreat_copies_meals_and_duties(logged_client_admin, db_session, make):
    source = make.retreat(name="Last Year")
    meal = make.meal(source, price="12.00", name="Breakfast")
    make.menu_item(meal, name="Porridge")
    duty = make.duty(source, title="Bells")
    helper = make.user()
    from rigdzen_app.services import duties as duty_service
    duty_service.assign(source.id, duty.id, helper.id)
    duty_service.sign_off(helper.id, source.id, duty.id)

    r = logged_client_admin.post("/api/admin/retreats", json={
        "name": "This Year", "start_date": "2032-06-01", "end_date": "2032-06-04",
        "source_retreat_id": source.id,
    })
    new_id = r.get_json()["retreatId"]
    db_session.expire_all()
    copied = db_session.get(Retreat, new_id)
    assert [m.name for m in copied.meals] == ["Breakfast"]
    assert copied.meals[0].price == Decimal("12.00")
    assert [mi.name for mi in copied.meals[0].menu_items] == ["Porridge"]
    assert copied.duties[0].title == "Bells"
    assert copied.duties[0].status == "ASSIGNED"
    assert [a.status for a in copied.duties[0].assignments] == ["ASSIGNED"]

def test_create_retreat_survives_missing_copy_source(logged_client_admin, db_session):
    r = logged_client_admin.post("/api/admin/retreats", json={
        "name": "Orphan", "start_date": "2032-06-01", "end_date": "2032-06-04", "source_retreat_id": 424242,
    })
    assert r.status_code == 200
    assert db_session.get(Retreat, r.get_json()["retreatId"]) is not None

def test_retreat_status_update(logged_client_admin, db_session, make):
    retreat = make.retreat()
    r = logged_client_admin.post(f"/admin/retreats/{retreat.id}/status", data={"status": "ONGOING"})
    assert r.status_code == 302
    db_session.expire_all()
    assert db_session.get(Retreat, retreat.id).status == "ONGOING"

    r = logged_client_admin.post(f"/admin/retreats/{retreat.id}/status", data={"status": "BOGUS"})
    assert r.status_code == 302
    db_session.expire_all()
    assert db_session.get(Retreat, retreat.id).status == "ONGOING"


# -----------------------------------------------------------------------------
# Meals and menu items
# -----------------------------------------------------------------------------
def test_create_and_delete_meal(logged_client_admin, db_session, make):
    retreat = make.retreat()
    r = logged_client_admin.post(f"/api/admin/retreats/{retreat.id}/meals", json={
        "name": "Lunch", "meal_date": "2031-06-02T12:00", "price": "14.5",
    })
    assert r.status_code == 200
    meal = db_session.get(Meal, r.get_json()["mealId"])
    assert meal.price == Decimal("14.50")

    r = logged_client_admin.delete(f"/api/admin/retreats/{retreat.id}/meals/{meal.id}")
    assert r.status_code == 200
    db_session.expire_all()
    assert db_session.get(Meal, meal.id) is None

@pytest.mark.parametrize("price,message", [("abc", "Price must be a number"), ("-1", "Price cannot be negative")])
def test_meal_price_validation(logged_client_admin, make, price, message):
    retreat = make.retreat()
    r = logged_client_admin.post(f"/api/admin/retreats/{retreat.id}/meals", json={
        "name": "Lunch", "meal_date": "2031-06-02T12:00", "price": price,
    })
    assert r.status_code == 400
    assert r.get_json()["error"] == message

def test_menu_item_lifecycle(logged_client_admin, db_session, make):
    retreat = make.retreat()
    meal = make.meal(retreat)
    r = logged_client_admin.post(f"/api/admin/retreats/{retreat.id}/meals/{meal.id}/menu-items", json={
        "name": "Trays", "requires_quantity": True,
    })
    item = db_session.get(MenuItem, r.get_json()["menuItemId"])
    assert item.requires_quantity is True

    other = make.retreat(name="Other")
    r = logged_client_admin.delete(f"/api/admin/retreats/{other.id}/meals/{meal.id}/menu-items/{item.id}")
    assert r.status_code == 404

    r = logged_client_admin.delete(f"/api/admin/retreats/{retreat.id}/meals/{meal.id}/menu-items/{item.id}")
    assert r.status_code == 200


# -----------------------------------------------------------------------------
# Duties
# -----------------------------------------------------------------------------
def test_create_and_delete_duty_via_forms(logged_client_admin, db_session, make):
    retreat = make.retreat()
    r = logged_client_admin.post(f"/admin/retreats/{retreat.id}/duties", data={"title": "Shrine", "description": ""})
    assert r.status_code == 302
    duty = Duty.query.filter_by(retreat_id=retreat.id).one()
    assert duty.status == "PENDING"

    r = logged_client_admin.post(f"/admin/retreats/{retreat.id}/duties/{duty.id}/delete")
    assert r.status_code == 302
    db_session.expire_all()
    assert Duty.query.count() == 0


# -----------------------------------------------------------------------------
# Users
# -----------------------------------------------------------------------------
def test_update_user_role(logged_client_admin, db_session, make):
    u = make.user()
    r = logged_client_admin.patch(f"/api/admin/users/{u.id}", json={"role": "ADMIN", "name": "Karma"})
    assert r.status_code == 200
    assert r.get_json()["user"]["role"] == "ADMIN"
    db_session.expire_all()
    assert db_session.get(User, u.id).name == "Karma"

def test_update_user_rejects_unknown_role(logged_client_admin, make):
    u = make.user()
    r = logged_client_admin.patch(f"/api/admin/users/{u.id}", json={"role": "ROOT"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid role. Must be ADMIN or PARTICIPANT"

def test_user_edit_page_shows_amounts(logged_client_admin, rendered, make):
    u = make.user()
    order = make.order(u, make.meal(make.retreat(), price="9.00"))
    assert logged_client_admin.get(f"/admin/users/{u.id}").status_code == 200
    template, ctx = rendered[-1]
    assert template == "admin/user_edit.html"
    assert ctx["amounts"] == {order.id: Decimal("9.00")}


# -----------------------------------------------------------------------------
# Reports
# -----------------------------------------------------------------------------
def test_unpaid_meals_report(logged_client_admin, rendered, make):
    u = make.user(name="Dorje")
    retreat = make.retreat()
    make.order(u, make.meal(retreat, price="8.00"))
    make.order(u, make.meal(retreat, price="3.00", name="Tea"), status="PAID")

    assert logged_client_admin.get("/admin/reports/unpaid-meals").status_code == 200
    _, ctx = rendered[-1]
    assert [row["amount"] for row in ctx["rows"]] == [Decimal("8.00")]

def test_unacknowledged_duties_report(logged_client_admin, rendered, make):
    from rigdzen_app.services import duties as duty_service
    retreat = make.retreat()
    duty = make.duty(retreat)
    a, b = make.user(), make.user()
    duty_service.assign(retreat.id, duty.id, a.id)
    duty_service.assign(retreat.id, duty.id, b.id)
    duty_service.sign_off(a.id, retreat.id, duty.id)

    logged_client_admin.get("/admin/reports/unacknowledged-duties")
    _, ctx = rendered[-1]
    assert [x.user_id for x in ctx["assignments"]] == [b.id]

def test_user_meal_selections_flags_paid_but_declined(logged_client_admin, rendered, make):
    u = make.user()
    retreat = make.retreat()
    make.order(u, make.meal(retreat, price="10.00"), status="PAID")
    make.order(u, make.meal(retreat, price="4.00", name="Tea"))
    make.registration(u, retreat, status="CANCELLED")

    logged_client_admin.get(f"/admin/reports/user-meal-selections?retreat_id={retreat.id}")
    _, ctx = rendered[-1]
    group = ctx["groups"][0]
    assert group["total_paid"] == Decimal("10.00")
    assert group["total_unpaid"] == Decimal("4.00")
    assert group["has_issue"] is True
    assert all(o["declined"] for o in group["orders"])

def test_report_pages_render_with_templates(logged_client_admin, make):
    u = make.user()
    make.order(u, make.meal(make.retreat(), price="8.00"))
    for path in ("/admin/reports", "/admin/reports/unpaid-meals",
                 "/admin/reports/unacknowledged-duties", "/admin/reports/user-meal-selections"):
        assert logged_client_admin.get(path).status_code == 200, path
