"""
Revit add-in surface: bearer sessions, legacy API keys, and the same order
flow as the dashboard behind a different credential.
"""
from datetime import timedelta

from sqlalchemy import update

from shared.config.database import utcnow
from services.auth_service.models import AddinSession

from .conftest import run_db


# ── Credentials ──────────────────────────────────────────────────────────


def test_validate_with_session_token(client, client_user, addin_auth):
    res = client.get("/api/auth/validate", headers=addin_auth(client_user))
    assert res.status_code == 200
    assert res.json()["valid"] is True
    assert res.json()["user"]["email"] == "client@example.com"


def test_missing_or_unknown_credentials_are_rejected(client):
    assert client.get("/api/auth/validate").status_code == 401
    res = client.get("/api/addin/orders", headers={"Authorization": "Bearer lods_unknown"})
    assert res.status_code == 401
    assert res.json()["message"] == "Session expired or revoked. Please sign in again."


def test_web_cookie_does_not_open_addin_routes(client, client_user, web_auth):
    assert client.get("/api/addin/orders", headers=web_auth(client_user)).status_code == 401


def test_logout_revokes_the_session(client, client_user, addin_auth):
    headers = addin_auth(client_user)
    res = client.post("/api/auth/logout", headers=headers)
    assert res.status_code == 200
    assert res.json() == {"success": True, "revoked": True}
    assert client.get("/api/auth/validate", headers=headers).status_code == 401


def test_expired_session_is_rejected(client, client_user, addin_auth):
    headers = addin_auth(client_user)

    async def _expire(db):
        await db.execute(update(AddinSession).values(expires_at=utcnow() - timedelta(minutes=1)))
        await db.commit()

    run_db(_expire)
    assert client.get("/api/auth/validate", headers=headers).status_code == 401


def test_sessions_are_listed_and_revocable(client, client_user, other_user, web_auth, addin_auth):
    headers = addin_auth(client_user)
    sessions = client.get("/api/user/addin-sessions", headers=web_auth(client_user)).json()
    assert len(sessions) == 1
    assert sessions[0]["deviceLabel"] == "Revit 2024"
    assert sessions[0]["lastUsedAt"] is None
    assert "token" not in sessions[0]

    # Only the owner may revoke
    assert client.delete(f"/api/user/addin-sessions/{sessions[0]['id']}", headers=web_auth(other_user)).status_code == 404
    assert client.delete(f"/api/user/addin-sessions/{sessions[0]['id']}", headers=web_auth(client_user)).status_code == 204
    assert client.get("/api/auth/validate", headers=headers).status_code == 401


def test_api_key_lifecycle(client, client_user, web_auth):
    created = client.post("/api/user/api-keys", json={"name": "Office PC"}, headers=web_auth(client_user))
    assert created.status_code == 201
    raw_key = created.json()["rawKey"]
    assert raw_key.startswith("lod_")
    assert raw_key.startswith(created.json()["keyPrefix"])

    key_headers = {"X-API-Key": raw_key}
    assert client.get("/api/addin/orders", headers=key_headers).status_code == 200

    listed = client.get("/api/user/api-keys", headers=web_auth(client_user)).json()
    assert [k["name"] for k in listed] == ["Office PC"]
    assert listed[0]["lastUsed"] is not None
    assert "rawKey" not in listed[0]

    key_id = created.json()["id"]
    assert client.delete(f"/api/user/api-keys/{key_id}", headers=web_auth(client_user)).status_code == 204
    assert client.get("/api/addin/orders", headers=key_headers).status_code == 401
    assert client.get("/api/user/api-keys", headers=web_auth(client_user)).json() == []


# ── Orders through the add-in ────────────────────────────────────────────


def test_create_order_returns_checkout_url(client, client_user, addin_auth, payments):
    res = client.post("/api/addin/create-order", json={"sheetCount": 12}, headers=addin_auth(client_user))
    assert res.status_code == 201
    body = res.json()
    assert body["order"]["totalPriceSar"] == 1800
    assert body["order"]["stripeSessionId"] == "cs_test_1"
    assert body["checkoutUrl"] == "https://checkout.stripe.test/pay/cs_test_1"
    assert body["message"] is None
    assert payments.sessions[0]["order_id"] == body["order"]["id"]


def test_create_order_without_payments_still_creates_order(client, client_user, addin_auth, payments):
    payments.secret_key = None
    headers = addin_auth(client_user)

    res = client.post("/api/addin/create-order", json={"sheetCount": 1}, headers=headers)
    assert res.status_code == 201
    assert res.json()["checkoutUrl"] is None
    assert res.json()["message"] == "Payment system not configured"
    assert len(client.get("/api/addin/orders", headers=headers).json()) == 1


def test_full_addin_flow(client, client_user, admin_user, web_auth, addin_auth, pay, upload_output):
    headers = addin_auth(client_user)
    order = client.post("/api/addin/create-order", json={"sheetCount": 3}, headers=headers).json()["order"]
    assert order["totalPriceSar"] == 450

    def _status():
        return client.get(f"/api/addin/orders/{order['id']}/status", headers=headers).json()

    # Upload URL is refused until the webhook lands
    res = client.post(f"/api/addin/orders/{order['id']}/upload-url", json={"fileName": "model.zip"}, headers=headers)
    assert res.status_code == 400

    pay(order["id"])
    paid = _status()
    assert paid["status"] == "paid"
    assert paid["totalPriceSar"] == 450

    upload_url = client.post(
        f"/api/addin/orders/{order['id']}/upload-url", json={"fileName": "model.zip"}, headers=headers
    ).json()["uploadURL"]
    done = client.post(
        f"/api/addin/orders/{order['id']}/upload-complete",
        json={"fileName": "model.zip", "fileSize": 5_000_000, "uploadURL": upload_url},
        headers=headers,
    )
    assert done.status_code == 200
    assert done.json()["status"] == "uploaded"
    uploaded = _status()
    assert uploaded["totalPriceSar"] == 450

    upload_output(admin_user, order["id"])
    assert _status()["totalPriceSar"] == 450
    client.post(f"/api/admin/orders/{order['id']}/complete", headers=web_auth(admin_user))

    complete = _status()
    assert complete["status"] == "complete"
    assert complete["sheetCount"] == 3
    assert complete["totalPriceSar"] == 450
    assert complete["paidAt"] == paid["paidAt"]
    assert complete["uploadedAt"] == uploaded["uploadedAt"]
    assert complete["completedAt"] is not None

    download = client.get(f"/api/addin/orders/{order['id']}/download-url", headers=headers)
    assert download.status_code == 200
    assert download.json()["fileName"] == "tower-lod400.zip"


def test_addin_cannot_read_other_users_orders(client, client_user, other_user, addin_auth, create_order):
    order = create_order(client_user)
    res = client.get(f"/api/addin/orders/{order['id']}/status", headers=addin_auth(other_user))
    assert res.status_code == 403
