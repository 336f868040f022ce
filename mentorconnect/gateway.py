"""Razorpay REST client: orders, refunds and signature checks."""
import hashlib
import hmac
import logging
import time
from typing import Optional

import httpx
import pybreaker

from mentorconnect import config

logger = logging.getLogger("mentorconnect.gateway")

# Opens after 3 failures, retries after 30s.
GATEWAY_CB = pybreaker.CircuitBreaker(fail_max=3, reset_timeout=30)


class GatewayError(Exception):
    def __init__(self, message: str, circuit_open: bool = False):
        super().__init__(message)
        self.circuit_open = circuit_open


def _client() -> httpx.Client:
    return httpx.Client(
        base_url=config.RAZORPAY_BASE_URL,
        auth=(config.RAZORPAY_KEY_ID, config.RAZORPAY_KEY_SECRET),
        timeout=config.GATEWAY_TIMEOUT,
    )


@GATEWAY_CB
def _post(path: str, payload: dict) -> dict:
    with _client() as client:
        r = client.post(path, json=payload)
    r.raise_for_status()
    return r.json()


def _call(path: str, payload: dict) -> dict:
    try:
        return _post(path, payload)
    except pybreaker.CircuitBreakerError:
        logger.warning("Gateway circuit breaker open, rejecting %s", path)
        raise GatewayError("Payment gateway temporarily unavailable", circuit_open=True)
    except httpx.HTTPError as e:
        logger.warning("Gateway call %s failed, error=%s", path, type(e).__name__)
        raise GatewayError("Payment gateway request failed") from e


def receipt_id() -> str:
    return f"receipt_{int(time.time() * 1000)}"


def create_order(amount_paise: int, receipt: str, notes: Optional[dict] = None) -> dict:
    """Create a gateway order; returns the gateway's order object (``id``, ``amount``, ...)."""
    payload = {
        "amount": amount_paise,
        "currency": config.CURRENCY,
        "receipt": receipt,
        "notes": notes or {},
    }
    order = _call("/orders", payload)
    logger.info("Gateway order %s created for %s paise", order.get("id"), amount_paise)
    return order


def refund_payment(payment_id: str, amount_paise: Optional[int] = None, notes: Optional[dict] = None) -> dict:
    payload: dict = {"notes": notes or {}}
    if amount_paise is not None:
        payload["amount"] = amount_paise
    refund = _call(f"/payments/{payment_id}/refund", payload)
    logger.info("Gateway refund %s issued for payment %s", refund.get("id"), payment_id)
    return refund


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str) -> bool:
    expected = _hmac_hex(config.RAZORPAY_KEY_SECRET, f"{order_id}|{payment_id}".encode("utf-8"))
    return hmac.compare_digest(expected, signature)


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: Optional[str] = None) -> bool:
    secret = config.RAZORPAY_WEBHOOK_SECRET if secret is None else secret
    if not signature:
        return False
    return hmac.compare_digest(_hmac_hex(secret, body), signature)


def webhook_entity(event: dict, kind: str) -> dict:
    """Return ``event["payload"][kind]["entity"]``, or ``{}`` if any level is not an object."""
    node = event
    for key in ("payload", kind, "entity"):
        node = node.get(key) if isinstance(node, dict) else None
    return node if isinstance(node, dict) else {}
