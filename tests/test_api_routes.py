"""
tests/test_api_routes.py -- Integration tests for the /api/v1/auth endpoints.

Uses the module-scoped api_client fixture from conftest.py: one TestClient, one
shared in-memory store seeded with "testadmin" (Admin) and "alice" (Customer).
Tests that change account state create their own users so they do not depend
on execution order.

Covers:
  - POST /auth/login: success payload, no-store header, error status per failure kind
  - POST /auth/register: 201 then 400 with the directory's error list
  - POST /auth/send-confirmation + GET /auth/confirm-email: full confirmation flow
  - GET /auth/me: 401 without/with bad token, 200 with a valid one
  - GET /auth/users/{id}/roles/{role}: Admin only
  - Error envelope shape
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from conftest import make_user

LOGIN = "/api/v1/auth/login"
REGISTER = "/api/v1/auth/register"
SEND_CONFIRMATION = "/api/v1/auth/send-confirmation"
CONFIRM = "/api/v1/auth/confirm-email"
ME = "/api/v1/auth/me"


def _login(ctx, identifier: str, password: str, **extra):
    return ctx.client.post(LOGIN, json={"identifier": identifier, "password": password, **extra})


def _bearer(ctx, identifier: str, password: str) -> dict:
    resp = _login(ctx, identifier, password)
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def _last_token(ctx) -> str:
    match = re.search(r"token=([A-Za-z0-9_\-.]+)", ctx.mailer.sent[-1].html_body)
    assert match
    return match.group(1)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def test_login_success_returns_summary_and_token(api_client):
    resp = _login(api_client, "alice", api_client.customer_password)
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-store"

    data = resp.json()
    assert data["username"] == "alice"
    assert data["email"] == "a@x.com"
    assert data["full_name"] == "Alice"
    assert data["avatar"] == "alice.png"
    assert data["roles"] == ["Customer"]
    assert data["token"]
    assert data["token_type"] == "bearer"
    assert data["expires_in"] == 86400


def test_login_by_email(api_client):
    resp = _login(api_client, "admin@example.com", api_client.admin_password)
    assert resp.status_code == 200
    assert resp.json()["roles"] == ["Admin"]


def test_login_wrong_password_is_401(api_client):
    make_user(api_client.store, "wrongpw", "wrongpw@x.com")
    resp = _login(api_client, "wrongpw", "not-it")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "bad_credentials"
    assert resp.headers["cache-control"] == "no-store"


def test_login_unknown_user_is_404(api_client):
    resp = _login(api_client, "nobody-here", "whatever")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "user_not_found"


def test_login_locked_account_is_423(api_client):
    make_user(
        api_client.store,
        "lockedout",
        "lockedout@x.com",
        lockout_end=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    resp = _login(api_client, "lockedout", "Passw0rd!")
    assert resp.status_code == 423
    assert resp.json()["error"]["code"] == "account_locked"


def test_login_unconfirmed_sends_mail_and_is_403(api_client):
    make_user(api_client.store, "pending", "pending@x.com", confirmed=False)
    before = len(api_client.mailer.sent)

    resp = _login(api_client, "pending", "Passw0rd!", callback_url="https://shop.example.com/confirm")

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "email_unconfirmed"
    assert len(api_client.mailer.sent) == before + 1
    assert api_client.mailer.sent[-1].to == "pending@x.com"
    assert "https://shop.example.com/confirm?token=" in api_client.mailer.sent[-1].html_body


def test_login_rejects_missing_fields(api_client):
    resp = api_client.client.post(LOGIN, json={"identifier": "alice"})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


# ---------------------------------------------------------------------------
# Registration and confirmation
# ---------------------------------------------------------------------------


def test_register_then_duplicate(api_client):
    body = {
        "username": "newcustomer",
        "email": "newcustomer@x.com",
        "password": "N3w!customer",
        "full_name": "New Customer",
        "birthday": "1990-04-01",
    }
    resp = api_client.client.post(REGISTER, json=body)
    assert resp.status_code == 201
    assert "message" in resp.json()

    user = api_client.store.find_by_username("newcustomer")
    assert user is not None
    assert user.email_confirmed is False
    assert user.birthday.isoformat() == "1990-04-01"
    assert api_client.store.roles_of(user.id) == ["Customer"]

    resp = api_client.client.post(REGISTER, json={**body, "username": "othername"})
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "validation_error"
    assert error["errors"] == ["Email 'newcustomer@x.com' is already taken."]


def test_register_weak_password_lists_every_rule(api_client):
    resp = api_client.client.post(
        REGISTER,
        json={"username": "weakling", "email": "weakling@x.com", "password": "abcdef"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["errors"] == [
        "Passwords must have at least one non alphanumeric character.",
        "Passwords must have at least one digit ('0'-'9').",
        "Passwords must have at least one uppercase ('A'-'Z').",
    ]
    assert api_client.store.find_by_username("weakling") is None


def test_register_overlong_password_is_400(api_client):
    resp = api_client.client.post(
        REGISTER,
        json={"username": "longpw", "email": "longpw@x.com", "password": "Aa1!" * 25},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["errors"] == ["Passwords must be at most 72 bytes."]
    assert api_client.store.find_by_username("longpw") is None


def test_register_rejects_dotless_email_domain(api_client):
    resp = api_client.client.post(
        REGISTER,
        json={"username": "dotless", "email": "x@y", "password": "D0tless!pw"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["errors"] == ["Email 'x@y' is invalid."]


def test_confirmation_flow_enables_login(api_client):
    resp = api_client.client.post(
        REGISTER,
        json={"username": "flowuser", "email": "flowuser@x.com", "password": "Fl0w!user"},
    )
    assert resp.status_code == 201

    resp = api_client.client.post(SEND_CONFIRMATION, json={"identifier": "flowuser@x.com"})
    assert resp.status_code == 200
    assert resp.json() == {"sent": True}
    # Default callback is this service's own confirm-email endpoint.
    assert "/api/v1/auth/confirm-email?token=" in api_client.mailer.sent[-1].html_body

    resp = api_client.client.get(CONFIRM, params={"token": _last_token(api_client)})
    assert resp.status_code == 200
    assert "flowuser" in resp.json()["message"]

    assert _login(api_client, "flowuser", "Fl0w!user").status_code == 200


def test_confirm_email_bad_token_is_400(api_client):
    resp = api_client.client.get(CONFIRM, params={"token": "garbage"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_token"


def test_send_confirmation_unknown_user_is_404(api_client):
    resp = api_client.client.post(SEND_CONFIRMATION, json={"identifier": "ghost@x.com"})
    assert resp.status_code == 404


def test_send_confirmation_reports_dispatch_failure(api_client):
    make_user(api_client.store, "nomail", "nomail@x.com", confirmed=False)
    api_client.mailer.ok = False
    try:
        resp = api_client.client.post(SEND_CONFIRMATION, json={"identifier": "nomail"})
    finally:
        api_client.mailer.ok = True
    assert resp.status_code == 200
    assert resp.json() == {"sent": False}


# ---------------------------------------------------------------------------
# Bearer-protected endpoints
# ---------------------------------------------------------------------------


def test_me_requires_token(api_client):
    resp = api_client.client.get(ME)
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"
    assert resp.headers["www-authenticate"] == "Bearer"


def test_me_rejects_garbage_token(api_client):
    resp = api_client.client.get(ME, headers={"Authorization": "Bearer not.a.jwt"})
    assert resp.status_code == 401


def test_me_returns_token_identity(api_client):
    resp = api_client.client.get(ME, headers=_bearer(api_client, "alice", api_client.customer_password))
    assert resp.status_code == 200
    data = resp.json()
    assert data["username"] == "alice"
    assert data["email"] == "a@x.com"
    assert data["roles"] == ["Customer"]
    assert data["user_id"] == api_client.store.find_by_username("alice").id


def test_me_rejects_token_of_locked_account(api_client):
    user = make_user(api_client.store, "soonlocked", "soonlocked@x.com")
    headers = _bearer(api_client, "soonlocked", "Passw0rd!")
    api_client.store.set_lockout(user.id, datetime.now(timezone.utc) + timedelta(hours=1))

    assert api_client.client.get(ME, headers=headers).status_code == 401


def test_role_check_forbidden_for_customer(api_client):
    alice_id = api_client.store.find_by_username("alice").id
    resp = api_client.client.get(
        f"/api/v1/auth/users/{alice_id}/roles/Customer",
        headers=_bearer(api_client, "alice", api_client.customer_password),
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"


def test_role_check_for_admin(api_client):
    headers = _bearer(api_client, "testadmin", api_client.admin_password)
    alice_id = api_client.store.find_by_username("alice").id

    resp = api_client.client.get(f"/api/v1/auth/users/{alice_id}/roles/Customer", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"user_id": alice_id, "role": "Customer", "in_role": True}

    resp = api_client.client.get(f"/api/v1/auth/users/{alice_id}/roles/Admin", headers=headers)
    assert resp.json()["in_role"] is False
