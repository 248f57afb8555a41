"""
Stripe webhook: authenticity, pending -> paid, redelivery, and the events
that are acknowledged without any state change.
"""
import json
import time

from .conftest import checkout_completed_event, sign_payload


def _status(client, headers, order_id):
    return client.get(f"/api/orders/{order_id}/status", headers=headers).json()


def test_checkout_completed_marks_order_paid(client, client_user, web_auth, create_order, post_event):
    order = create_order(client_user)

    res = post_event(checkout_completed_event(order["id"], payment_intent="pi_abc", session_id="cs_live_1"))
    assert res.status_code == 200
    assert res.json() == {"received": True}

    status = _status(client, web_auth(client_user), order["id"])
    assert status["status"] == "paid"
    assert status["paidAt"] is not None
    assert status["stripePaymentIntentId"] == "pi_abc"
    assert status["stripeSessionId"] == "cs_live_1"


def test_redelivered_event_is_acknowledged_and_changes_nothing(client, client_user, web_auth, create_order, post_event):
    order = create_order(client_user)
    event = checkout_completed_event(order["id"])

    assert post_event(event).status_code == 200
    first = _status(client, web_auth(client_user), order["id"])
    assert post_event(event).status_code == 200
    second = _status(client, web_auth(client_user), order["id"])

    assert second["status"] == "paid"
    assert second["paidAt"] == first["paidAt"]


def test_late_payment_event_does_not_rewind_progress(client, client_user, web_auth, uploaded_order, post_event):
    res = post_event(checkout_completed_event(uploaded_order["id"]))
    assert res.status_code == 200
    assert _status(client, web_auth(client_user), uploaded_order["id"])["status"] == "uploaded"


def test_existing_session_id_is_kept(client, client_user, web_auth, create_order, post_event):
    order = create_order(client_user)
    client.get(f"/api/orders/{order['id']}/checkout", headers=web_auth(client_user), follow_redirects=False)

    post_event(checkout_completed_event(order["id"], session_id="cs_other"))
    assert _status(client, web_auth(client_user), order["id"])["stripeSessionId"] == "cs_test_1"


def test_invalid_signature_is_rejected(client, client_user, web_auth, create_order, post_event):
    order = create_order(client_user)
    event = checkout_completed_event(order["id"])

    forged = sign_payload(json.dumps(event), secret="whsec_wrong")
    res = post_event(event, signature=forged)
    assert res.status_code == 400
    assert _status(client, web_auth(client_user), order["id"])["status"] == "pending"


def test_missing_signature_is_rejected(client):
    res = client.post("/api/webhooks/stripe", content=b"{}", headers={"Content-Type": "application/json"})
    assert res.status_code == 400


def test_stale_signature_is_rejected(client_user, create_order, post_event):
    order = create_order(client_user)
    event = checkout_completed_event(order["id"])
    old = sign_payload(json.dumps(event), timestamp=int(time.time()) - 3600)
    assert post_event(event, signature=old).status_code == 400


def test_unknown_order_is_acknowledged(post_event):
    res = post_event(checkout_completed_event("no-such-order"))
    assert res.status_code == 200
    assert res.json() == {"received": True}


def test_expired_session_leaves_order_pending(client, client_user, web_auth, create_order, post_event):
    order = create_order(client_user)
    event = {
        "id": "evt_expired",
        "type": "checkout.session.expired",
        "data": {"object": {"id": "cs_1", "metadata": {"orderId": order["id"]}}},
    }
    assert post_event(event).status_code == 200
    assert _status(client, web_auth(client_user), order["id"])["status"] == "pending"


def test_unrelated_event_types_are_acknowledged(post_event):
    res = post_event({"id": "evt_other", "type": "invoice.paid", "data": {"object": {}}})
    assert res.status_code == 200
