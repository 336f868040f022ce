import hashlib
import hmac
import json

from mentorconnect import config

BANK = {
    "account_holder_name": "Ravi Kumar",
    "account_number": "123456789012",
    "ifsc_code": "HDFC0001234",
    "bank_name": "HDFC Bank",
}


def request_withdrawal(client, user, amount, bank=BANK):
    return client.post("/api/wallets/withdrawal", json={"amount": amount, "bank_details": bank},
                       headers=user["headers"])


def signed_post(client, path, event):
    body = json.dumps(event).encode()
    signature = hmac.new(config.RAZORPAY_WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return client.post(path, content=body, headers={"X-Razorpay-Signature": signature,
                                                    "Content-Type": "application/json"})


def test_wallet_created_on_first_access(client, aspirant):
    r = client.get(f"/api/wallets/user/{aspirant['user']['id']}", headers=aspirant["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["balance"] == 0
    assert body["locked_balance"] == 0
    assert body["user_type"] == "aspirant"
    assert body["transactions"] == []


def test_wallet_of_other_user_forbidden(client, aspirant, mentor):
    r = client.get(f"/api/wallets/user/{mentor['user']['id']}", headers=aspirant["headers"])
    assert r.status_code == 403


def test_admin_topup(client, aspirant, fund_wallet):
    wallet = fund_wallet(aspirant["user"]["id"], 750)
    assert wallet["balance"] == 750
    txn = wallet["transactions"][0]
    assert (txn["type"], txn["source"], txn["amount"]) == ("credit", "topup", 750)


def test_topup_requires_admin(client, aspirant):
    r = client.post("/api/wallets/topup", json={"user_id": aspirant["user"]["id"], "amount": 100},
                    headers=aspirant["headers"])
    assert r.status_code == 403


def test_withdrawal_fee_minimum(client, mentor, fund_wallet):
    fund_wallet(mentor["user"]["id"], 1000)
    r = request_withdrawal(client, mentor, 300)
    assert r.status_code == 201
    body = r.json()
    assert body["processing_fee"] == 10
    assert body["net_amount"] == 290
    assert body["status"] == "pending"


def test_withdrawal_fee_percentage(client, mentor, fund_wallet):
    fund_wallet(mentor["user"]["id"], 5000)
    body = request_withdrawal(client, mentor, 2000).json()
    assert body["processing_fee"] == 40
    assert body["net_amount"] == 1960


def test_withdrawal_does_not_deduct_until_approved(client, mentor, fund_wallet):
    fund_wallet(mentor["user"]["id"], 1000)
    request_withdrawal(client, mentor, 500)
    wallet = client.get(f"/api/wallets/user/{mentor['user']['id']}", headers=mentor["headers"]).json()
    assert wallet["balance"] == 1000


def test_withdrawal_validation(client, mentor, fund_wallet):
    fund_wallet(mentor["user"]["id"], 100)
    assert request_withdrawal(client, mentor, 0).status_code == 400
    assert request_withdrawal(client, mentor, -5).status_code == 400
    assert request_withdrawal(client, mentor, 500).json()["detail"] == "Insufficient wallet balance"

    r = request_withdrawal(client, mentor, 50, bank={**BANK, "ifsc_code": "hdfc0001234"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid IFSC code format"

    r = request_withdrawal(client, mentor, 50, bank={**BANK, "account_number": ""})
    assert r.json()["detail"] == "Complete bank details are required"


def test_withdrawal_without_wallet(client, mentor):
    r = request_withdrawal(client, mentor, 100)
    assert r.status_code == 404


def test_withdrawal_uses_saved_bank_details(client, mentor, fund_wallet):
    fund_wallet(mentor["user"]["id"], 1000)
    r = client.put(f"/api/wallets/bank-details/{mentor['user']['id']}", json=BANK, headers=mentor["headers"])
    assert r.status_code == 200
    assert r.json()["account_number"] == "XXXXXXXX9012"
    assert r.json()["verified"] is False

    r = client.post("/api/wallets/withdrawal", json={"amount": 200}, headers=mentor["headers"])
    assert r.status_code == 201


def test_bank_details_rejects_bad_ifsc(client, mentor):
    r = client.put(f"/api/wallets/bank-details/{mentor['user']['id']}", json={"ifsc_code": "HDFC1234"},
                   headers=mentor["headers"])
    assert r.status_code == 400


def test_withdrawal_history_masks_account(client, mentor, fund_wallet):
    fund_wallet(mentor["user"]["id"], 1000)
    first = request_withdrawal(client, mentor, 100).json()
    second = request_withdrawal(client, mentor, 200).json()
    r = client.get(f"/api/wallets/withdrawals/{mentor['user']['id']}", headers=mentor["headers"])
    assert r.status_code == 200
    history = r.json()
    assert [w["id"] for w in history] == [second["id"], first["id"]]
    assert history[0]["account_number"].endswith("9012")
    assert history[0]["account_number"].startswith("XXXX")


def approve(client, admin, withdrawal_id, payout_reference="pout_1"):
    return client.put(f"/api/admin/withdrawals/{withdrawal_id}/approve",
                      json={"admin_notes": "ok", "payout_reference": payout_reference}, headers=admin["headers"])


def test_payout_webhook_completes_withdrawal(client, mentor, admin, fund_wallet):
    fund_wallet(mentor["user"]["id"], 1000)
    withdrawal = request_withdrawal(client, mentor, 400).json()
    assert approve(client, admin, withdrawal["id"]).json()["status"] == "processing"

    r = signed_post(client, "/api/wallets/razorpay-webhook", {
        "event": "payout.processed",
        "payload": {"payout": {"entity": {"id": "pout_1", "status": "processed"}}},
    })
    assert r.status_code == 200
    assert r.json()["message"] == "Webhook processed"

    history = client.get(f"/api/wallets/withdrawals/{mentor['user']['id']}", headers=mentor["headers"]).json()
    assert history[0]["status"] == "completed"
    wallet = client.get(f"/api/wallets/user/{mentor['user']['id']}", headers=mentor["headers"]).json()
    assert wallet["balance"] == 600
    assert wallet["total_withdrawn"] == 400


def test_failed_payout_refunds_wallet(client, mentor, admin, fund_wallet):
    fund_wallet(mentor["user"]["id"], 1000)
    withdrawal = request_withdrawal(client, mentor, 400).json()
    approve(client, admin, withdrawal["id"])

    r = signed_post(client, "/api/wallets/razorpay-webhook", {
        "event": "payout.failed",
        "payload": {"payout": {"entity": {"id": "pout_1", "status": "failed", "failure_reason": "Account closed"}}},
    })
    assert r.status_code == 200

    history = client.get(f"/api/wallets/withdrawals/{mentor['user']['id']}", headers=mentor["headers"]).json()
    assert history[0]["status"] == "failed"
    assert history[0]["failure_reason"] == "Account closed"
    wallet = client.get(f"/api/wallets/user/{mentor['user']['id']}", headers=mentor["headers"]).json()
    assert wallet["balance"] == 1000
    assert wallet["total_withdrawn"] == 0


def test_payout_webhook_bad_signature(client):
    r = client.post("/api/wallets/razorpay-webhook", json={"event": "payout.processed"},
                    headers={"X-Razorpay-Signature": "bad"})
    assert r.status_code == 400


def test_payout_webhook_unknown_payout(client):
    r = signed_post(client, "/api/wallets/razorpay-webhook", {
        "event": "payout.processed",
        "payload": {"payout": {"entity": {"id": "pout_missing", "status": "processed"}}},
    })
    assert r.status_code == 200
    assert r.json()["message"] == "Webhook ignored"


def test_payout_webhook_malformed_bodies(client):
    assert signed_post(client, "/api/wallets/razorpay-webhook", [1, 2]).status_code == 400
    r = signed_post(client, "/api/wallets/razorpay-webhook", {"event": "payout.failed", "payload": {"payout": None}})
    assert r.status_code == 200
    assert r.json()["message"] == "Webhook ignored"


def test_admin_overview(client, mentor, admin, fund_wallet):
    fund_wallet(mentor["user"]["id"], 1000)
    request_withdrawal(client, mentor, 300)
    r = client.get("/api/wallets/admin/overview", headers=admin["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["pending_withdrawals"] == 1
    assert body["pending_withdrawal_amount"] == 300
    assert body["total_balance"] == 1000


def test_settlements_info(client, admin):
    r = client.get("/api/wallets/settlements-info", headers=admin["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["platform_fee_percent"] == 10
    assert body["minimum_withdrawal_fee"] == 10
    assert body["recent_withdrawals"] == []
