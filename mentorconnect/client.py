"""
Thin client for the MentorConnect REST API.

Each method maps one user action to one endpoint and returns the decoded
JSON body. Non-2xx responses raise :class:`ApiError`.
"""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

logger = logging.getLogger("mentorconnect.client")

POLL_ATTEMPTS = 12
POLL_INTERVAL = 5.0
TOPUP_WINDOW = timedelta(minutes=5)


class ApiError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class MentorConnectClient:
    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.token = token
        self._http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        r = self._http.request(method, path, headers=headers, **kwargs)
        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = None
            detail = body.get("detail", r.text) if isinstance(body, dict) else r.text
            raise ApiError(r.status_code, str(detail))
        if r.status_code == 204 or not r.content:
            return None
        return r.json()

    # ---------- auth ----------

    def health(self) -> dict:
        return self._request("GET", "/health")

    def signup(self, name: str, email: str, password: str, user_type: str = "aspirant", **profile) -> dict:
        data = self._request("POST", "/api/auth/signup", json={
            "name": name, "email": email, "password": password, "user_type": user_type, **profile,
        })
        self.token = data["token"]
        return data

    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data

    def admin_login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/admin-login", json={"email": email, "password": password})
        self.token = data["token"]
        return data

    # ---------- wallet & payments ----------

    def wallet(self, user_id: int) -> dict:
        return self._request("GET", f"/api/wallets/user/{user_id}")

    def create_order(self, amount: int, type: str = "wallet_topup", booking_id: Optional[int] = None,
                     master_class_id: Optional[int] = None) -> dict:
        payload = {"amount": amount, "type": type}
        if booking_id is not None:
            payload["booking_id"] = booking_id
        if master_class_id is not None:
            payload["master_class_id"] = master_class_id
        return self._request("POST", "/api/payments/create-order", json=payload)

    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> dict:
        return self._request("POST", "/api/payments/verify", json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature,
        })

    def payment_status(self, order_id: str) -> dict:
        return self._request("GET", f"/api/payments/status/{order_id}")

    # ---------- bookings ----------

    def bookings(self, user_id: int, user_type: str) -> list:
        return self._request("GET", f"/api/bookings/user/{user_id}", params={"user_type": user_type})

    def create_booking(self, achiever_id: int, date: str, time: str, **extra) -> dict:
        return self._request("POST", "/api/bookings", json={
            "achiever_id": achiever_id, "date": date, "time": time, **extra,
        })

    def wallet_booking(self, mentor_id: int, date: str, time: str, amount: int, **extra) -> dict:
        return self._request("POST", "/api/bookings/wallet-booking", json={
            "mentor_id": mentor_id, "date": date, "time": time, "amount": amount, **extra,
        })

    # ---------- polling ----------

    def poll_payment_status(self, user_id: int, attempts: int = POLL_ATTEMPTS, interval: float = POLL_INTERVAL,
                            sleep: Callable[[float], None] = time.sleep) -> Optional[dict]:
        """
        Re-read the wallet until a top-up credit from the last five minutes
        shows up. Returns that transaction, or ``None`` after ``attempts``
        reads.
        """
        for attempt in range(1, attempts + 1):
            wallet = self.wallet(user_id)
            txn = recent_topup(wallet)
            if txn is not None:
                logger.info("Top-up found after %s attempt(s)", attempt)
                return txn
            if attempt < attempts:
                sleep(interval)
        logger.warning("No top-up credit after %s attempts", attempts)
        return None


def recent_topup(wallet: dict, now: Optional[datetime] = None) -> Optional[dict]:
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    for txn in reversed(wallet.get("transactions", [])):
        if txn.get("type") != "credit" or txn.get("source") != "topup":
            continue
        stamp = datetime.fromisoformat(txn["timestamp"])
        if stamp.tzinfo is not None:
            stamp = stamp.astimezone(timezone.utc).replace(tzinfo=None)
        if now - stamp <= TOPUP_WINDOW:
            return txn
    return None
