import base64
import hashlib
import hmac
import json
import logging
from urllib import request, error

from farmlink.config.env import RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET, RAZORPAY_WEBHOOK_SECRET
from farmlink.config.constants import PAYMENT_CURRENCY
from farmlink.utils.errors import AppError, DependencyError

RAZORPAY_API_BASE = "https://api.razorpay.com/v1"
REQUEST_TIMEOUT_SECONDS = 15

# normalised gateway outcomes
GATEWAY_SUCCEEDED = "succeeded"
GATEWAY_FAILED = "failed"
GATEWAY_PENDING = "pending"

logger = logging.getLogger(__name__)


def _require_razorpay_config() -> tuple[str, str]:
    if not RAZORPAY_KEY_ID or not RAZORPAY_KEY_SECRET:
        raise AppError("Razorpay keys are not configured")
    return RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET


def _basic_auth_header(key_id: str, key_secret: str) -> str:
    token = f"{key_id}:{key_secret}".encode("utf-8")
    return "Basic " + base64.b64encode(token).decode("utf-8")


def amount_to_paise(amount_inr: float) -> int:
    return int(round(float(amount_inr) * 100))


def _call(method: str, path: str, payload: dict | None = None, *, action: str) -> dict:
    """
    Blocking call to the Razorpay REST API; run it through asyncio.to_thread.
    """
    key_id, key_secret = _require_razorpay_config()

    req = request.Request(
        url=f"{RAZORPAY_API_BASE}{path}",
        data=json.dumps(payload).encode("utf-8") if payload is not None else None,
        headers={
            "Content-Type": "application/json",
            "Authorization": _basic_auth_header(key_id, key_secret),
        },
        method=method,
    )

    try:
        with request.urlopen(req, timeout=REQUEST_TIMEOUT_SECONDS) as resp:
            body = resp.read().decode("utf-8")
            return json.loads(body)
    except error.HTTPError as e:
        details = e.read().decode("utf-8", errors="ignore")
        logger.warning("RAZORPAY_HTTP_ERROR action=%s status=%s", action, e.code)
        raise DependencyError(f"Razorpay {action} failed: {details}")
    except (error.URLError, TimeoutError, ValueError) as e:
        logger.warning("RAZORPAY_UNREACHABLE action=%s error=%s", action, e)
        raise DependencyError(f"Razorpay {action} failed")


# =========================================================
# GATEWAY OPERATIONS
# =========================================================

def create_razorpay_order(*, amount_paise: int, receipt: str, notes: dict | None = None) -> dict:
    payload = {
        "amount": amount_paise,
        "currency": PAYMENT_CURRENCY,
        "receipt": receipt,
        "notes": notes or {},
    }
    return _call("POST", "/orders", payload, action="order create")


def fetch_payment_state(razorpay_order_id: str) -> tuple[str, str | None]:
    """
    Final state of a gateway order, reduced to (outcome, payment_id).
    """
    body = _call("GET", f"/orders/{razorpay_order_id}/payments", action="payment fetch")
    payments = body.get("items") or []

    for p in payments:
        if p.get("status") == "captured":
            return GATEWAY_SUCCEEDED, p.get("id")

    if payments and all(p.get("status") == "failed" for p in payments):
        return GATEWAY_FAILED, payments[-1].get("id")

    return GATEWAY_PENDING, None


def refund_razorpay_payment(*, payment_id: str, amount_paise: int | None = None) -> dict:
    payload = {"amount": amount_paise} if amount_paise else {}
    return _call("POST", f"/payments/{payment_id}/refund", payload, action="refund")


# =========================================================
# SIGNATURES
# =========================================================

def verify_webhook_signature(*, raw_body: bytes, received_signature: str) -> bool:
    if not RAZORPAY_WEBHOOK_SECRET:
        raise AppError("Razorpay webhook secret is not configured")
    expected = hmac.new(RAZORPAY_WEBHOOK_SECRET.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received_signature)
