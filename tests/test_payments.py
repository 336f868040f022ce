import hashlib
import hmac
import json
from unittest.mock import patch

from mentorconnect import config
from mentorconnect.gateway import GatewayError


def sign(order_id, payment_id):
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(config.RAZORPAY_KEY_SECRET.encode(), message, hashlib.sha256).hexdigest()


def create_order_ok(client, user, payload, order_id="order_1"):
    order = {"id": order_id, "amount": payload["amount"] * 100, "currency": "INR"}
    with patch("mentorconnect.gateway.create_order", return_value=order) as create:
        r = client.post("/api/payments/create-order", json=payload, headers=user["headers"])
    assert r.status_code == 201, r.text
    assert create.call_args.args[0] == payload["amount"] * 100
    return r.json()


def verify(client, user, order_id="order_1", payment_id="pay_1", signature=None):
    return client.post("/api/payments/verify", json={
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature or sign(order_id, payment_id),
    }, headers=user["headers"])


def book(client, aspirant, mentor):
    r = client.post("/api/bookings", json={"achiever_id": mentor["user"]["id"], "date": "2030-01-15", "time": "10:00"},
                    headers=aspirant["headers"])
    assert r.status_code == 201, r.text
    return r.json()


def paid_booking(client, aspirant, mentor):
    booking = book(client, aspirant, mentor)
    create_order_ok(client, aspirant, {"amount": 500, "type": "booking", "booking_id": booking["id"]})
    assert verify(client, aspirant).status_code == 200
    return booking


def test_create_order_records_split(client, aspirant, mentor):
    booking = book(client, aspirant, mentor)
    data = create_order_ok(client, aspirant, {"amount": 500, "type": "booking", "booking_id": booking["id"]})
    assert data["order_id"] == "order_1"
    assert data["amount"] == 50000
    assert data["key_id"] == "rzp_test_key"
    payment = data["payment"]
    assert payment["status"] == "created"
    assert (payment["admin_fee"], payment["gateway_fee"], payment["mentor_amount"]) == (50, 10, 440)


def test_create_order_for_topup_has_no_split(client, aspirant):
    payment = create_order_ok(client, aspirant, {"amount": 300, "type": "wallet_topup"})["payment"]
    assert payment["admin_fee"] == 0
    assert payment["mentor_amount"] == 0


def test_create_order_requires_booking_id(client, aspirant):
    r = client.post("/api/payments/create-order", json={"amount": 500, "type": "booking"},
                    headers=aspirant["headers"])
    assert r.status_code == 400


def test_create_order_rejects_bad_amount(client, aspirant):
    r = client.post("/api/payments/create-order", json={"amount": 0, "type": "wallet_topup"},
                    headers=aspirant["headers"])
    assert r.status_code == 422


def test_create_order_gateway_down(client, aspirant):
    with patch("mentorconnect.gateway.create_order", side_effect=GatewayError("Payment gateway request failed")):
        r = client.post("/api/payments/create-order", json={"amount": 300, "type": "wallet_topup"},
                        headers=aspirant["headers"])
    assert r.status_code == 502


def test_create_order_circuit_open(client, aspirant):
    error = GatewayError("Payment gateway temporarily unavailable", circuit_open=True)
    with patch("mentorconnect.gateway.create_order", side_effect=error):
        r = client.post("/api/payments/create-order", json={"amount": 300, "type": "wallet_topup"},
                        headers=aspirant["headers"])
    assert r.status_code == 503


def test_create_order_for_someone_elses_booking(client, aspirant, mentor, signup):
    booking = book(client, aspirant, mentor)
    other = signup("neha@example.com", name="Neha")
    with patch("mentorconnect.gateway.create_order") as create:
        r = client.post("/api/payments/create-order", json={"amount": 500, "type": "booking", "booking_id": booking["id"]},
                        headers=other["headers"])
    assert r.status_code == 403
    create.assert_not_called()


def test_verify_booking_payment_locks_funds(client, aspirant, mentor):
    booking = paid_booking(client, aspirant, mentor)

    r = client.get(f"/api/bookings/{booking['id']}", headers=aspirant["headers"])
    assert r.json()["payment_status"] == "completed"
    assert r.json()["payment_method"] == "gateway"
    assert r.json()["payment_id"] == "pay_1"

    wallet = client.get(f"/api/wallets/user/{aspirant['user']['id']}", headers=aspirant["headers"]).json()
    assert wallet["balance"] == 0
    assert wallet["locked_balance"] == 500
    assert [t["source"] for t in wallet["transactions"]] == ["gateway-payment", "booking"]


def test_verify_is_idempotent(client, aspirant):
    create_order_ok(client, aspirant, {"amount": 300, "type": "wallet_topup"})
    first = verify(client, aspirant)
    second = verify(client, aspirant)
    assert first.json()["message"] == "Payment verified successfully"
    assert second.json()["message"] == "Payment already verified"

    wallet = client.get(f"/api/wallets/user/{aspirant['user']['id']}", headers=aspirant["headers"]).json()
    assert wallet["balance"] == 300
    assert len(wallet["transactions"]) == 1


def test_verify_bad_signature_marks_failed(client, aspirant):
    create_order_ok(client, aspirant, {"amount": 300, "type": "wallet_topup"})
    r = verify(client, aspirant, signature="0" * 64)
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid payment signature"

    status = client.get("/api/payments/status/order_1", headers=aspirant["headers"]).json()
    assert status["status"] == "failed"


def test_verify_unknown_order(client, aspirant):
    r = verify(client, aspirant, order_id="order_missing")
    assert r.status_code == 404


def test_payment_status_access(client, aspirant, signup, admin):
    create_order_ok(client, aspirant, {"amount": 300, "type": "wallet_topup"})
    other = signup("other@example.com")
    assert client.get("/api/payments/status/order_1", headers=other["headers"]).status_code == 403
    assert client.get("/api/payments/status/order_1", headers=admin["headers"]).status_code == 200
    assert client.get("/api/payments/status/nope", headers=admin["headers"]).status_code == 404


def test_user_payments(client, aspirant):
    create_order_ok(client, aspirant, {"amount": 300, "type": "wallet_topup"}, order_id="order_1")
    create_order_ok(client, aspirant, {"amount": 400, "type": "wallet_topup"}, order_id="order_2")
    r = client.get(f"/api/payments/user/{aspirant['user']['id']}", headers=aspirant["headers"])
    assert [p["gateway_order_id"] for p in r.json()] == ["order_2", "order_1"]


def webhook(client, event):
    body = json.dumps(event).encode()
    signature = hmac.new(config.RAZORPAY_WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return client.post("/api/payments/webhook", content=body,
                       headers={"X-Razorpay-Signature": signature, "Content-Type": "application/json"})


def test_webhook_captures_payment(client, aspirant):
    create_order_ok(client, aspirant, {"amount": 300, "type": "wallet_topup"})
    r = webhook(client, {
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": "pay_9", "order_id": "order_1"}}},
    })
    assert r.json()["message"] == "Webhook processed"

    status = client.get("/api/payments/status/order_1", headers=aspirant["headers"]).json()
    assert status["status"] == "completed"
    assert status["gateway_payment_id"] == "pay_9"

    # a later verify for the same order does not credit twice
    verify(client, aspirant, payment_id="pay_9")
    wallet = client.get(f"/api/wallets/user/{aspirant['user']['id']}", headers=aspirant["headers"]).json()
    assert wallet["balance"] == 300


def test_webhook_payment_failed(client, aspirant):
    create_order_ok(client, aspirant, {"amount": 300, "type": "wallet_topup"})
    webhook(client, {
        "event": "payment.failed",
        "payload": {"payment": {"entity": {"id": "pay_9", "order_id": "order_1"}}},
    })
    status = client.get("/api/payments/status/order_1", headers=aspirant["headers"]).json()
    assert status["status"] == "failed"


def test_webhook_rejects_bad_signature(client):
    r = client.post("/api/payments/webhook", json={"event": "payment.captured"},
                    headers={"X-Razorpay-Signature": "forged"})
    assert r.status_code == 400


def test_webhook_rejects_non_object_payload(client):
    assert webhook(client, [1, 2]).status_code == 400


def test_webhook_with_null_payload_ignored(client):
    r = webhook(client, {"event": "payment.captured", "payload": None})
    assert r.status_code == 200
    assert r.json()["message"] == "Webhook ignored"


def test_webhook_unknown_order_ignored(client):
    r = webhook(client, {
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": "pay_9", "order_id": "order_unknown"}}},
    })
    assert r.status_code == 200
    assert r.json()["message"] == "Webhook ignored"


def test_refund_clears_escrow(client, aspirant, mentor, admin):
    booking = paid_booking(client, aspirant, mentor)
    payment = client.get("/api/payments/status/order_1", headers=aspirant["headers"]).json()

    with patch("mentorconnect.gateway.refund_payment", return_value={"id": "rfnd_1"}) as refund:
        r = client.post("/api/payments/refund", json={"payment_id": payment["id"], "reason": "Mentor unavailable"},
                        headers=admin["headers"])
    assert r.status_code == 200, r.text
    assert refund.call_args.args == ("pay_1", 50000)
    assert r.json()["status"] == "refunded"
    assert r.json()["refund_id"] == "rfnd_1"
    assert r.json()["refund_amount"] == 500

    b = client.get(f"/api/bookings/{booking['id']}", headers=aspirant["headers"]).json()
    assert b["status"] == "cancelled"
    assert b["refund_status"] == "processed"

    wallet = client.get(f"/api/wallets/user/{aspirant['user']['id']}", headers=aspirant["headers"]).json()
    assert wallet["locked_balance"] == 0
    assert wallet["balance"] == 0


def test_refund_rules(client, aspirant, admin):
    create_order_ok(client, aspirant, {"amount": 300, "type": "wallet_topup"})
    payment = client.get("/api/payments/status/order_1", headers=aspirant["headers"]).json()

    r = client.post("/api/payments/refund", json={"payment_id": payment["id"]}, headers=admin["headers"])
    assert r.status_code == 400

    verify(client, aspirant)
    r = client.post("/api/payments/refund", json={"payment_id": payment["id"], "amount": 301},
                    headers=admin["headers"])
    assert r.status_code == 400
    assert r.json()["detail"] == "Refund amount exceeds payment amount"

    r = client.post("/api/payments/refund", json={"payment_id": payment["id"]}, headers=aspirant["headers"])
    assert r.status_code == 403


def test_mentor_earnings_and_payout(client, aspirant, mentor, admin):
    booking = paid_booking(client, aspirant, mentor)
    client.put(f"/api/bookings/{booking['id']}/status", json={"status": "completed"}, headers=mentor["headers"])

    earnings = client.get(f"/api/payments/mentor/{mentor['user']['id']}/earnings", headers=mentor["headers"]).json()
    assert earnings["total_earnings"] == 440
    assert earnings["pending_payout"] == 440
    assert earnings["completed_sessions"] == 1

    payment = client.get("/api/payments/status/order_1", headers=aspirant["headers"]).json()
    r = client.post("/api/payments/payout", json={
        "mentor_id": mentor["user"]["id"], "payment_ids": [payment["id"]], "amount": 440,
    }, headers=admin["headers"])
    assert r.status_code == 200
    assert r.json()["payments_updated"] == 1

    earnings = client.get(f"/api/payments/mentor/{mentor['user']['id']}/earnings", headers=mentor["headers"]).json()
    assert earnings["pending_payout"] == 0
    assert earnings["completed_payout"] == 440

    r = client.post("/api/payments/payout", json={
        "mentor_id": mentor["user"]["id"], "payment_ids": [999], "amount": 0,
    }, headers=admin["headers"])
    assert r.status_code == 400


def test_admin_payment_list(client, aspirant, mentor, admin):
    paid_booking(client, aspirant, mentor)
    create_order_ok(client, aspirant, {"amount": 300, "type": "wallet_topup"}, order_id="order_2")

    r = client.get("/api/payments", headers=admin["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert body["statistics"]["total_revenue"] == 500
    assert body["statistics"]["admin_revenue"] == 50
    assert body["statistics"]["mentor_payouts"] == 440

    assert client.get("/api/payments", headers=aspirant["headers"]).status_code == 403
