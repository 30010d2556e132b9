import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from farmlink.config.constants import ROLE_ADMIN, ROLE_BUYER, ROLE_SELLER
from farmlink.database import get_db
from farmlink.utils import payment_service
from farmlink.utils.errors import AuthenticationError, ValidationError
from farmlink.utils.razorpay import verify_webhook_signature
from farmlink.utils.security import get_current_user, require_role
from farmlink.utils.serializers import serialize_doc, serialize_docs

router = APIRouter(prefix="/payments", tags=["Payments"])

logger = logging.getLogger(__name__)


class IntentRequest(BaseModel):
    order_id: str
    amount: Optional[float] = Field(None, gt=0)


class VerifyRequest(BaseModel):
    intent_id: str


# ======================================================
# CREATE INTENT (BUYER)
# ======================================================

@router.post("/intents", status_code=status.HTTP_201_CREATED)
async def create_payment_intent(
    data: IntentRequest,
    buyer=Depends(require_role(ROLE_BUYER)),
    db=Depends(get_db),
):
    payment, client = await payment_service.create_intent(db, buyer, data.order_id, data.amount)
    return {
        "success": True,
        "payment_id": str(payment["_id"]),
        "payment": client,
    }


# ======================================================
# VERIFY (ASK THE GATEWAY, NEVER TRUST THE CLIENT)
# ======================================================

@router.post("/verify")
async def verify_payment(
    data: VerifyRequest,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    payment = await payment_service.verify_payment(db, data.intent_id)
    return {
        "success": True,
        "message": "Payment verified successfully",
        "payment": serialize_doc(payment),
    }


# ======================================================
# REFUND (ADMIN / SELLER OF THE ORDER)
# ======================================================

@router.post("/{payment_id}/refund")
async def refund_payment(
    payment_id: str,
    user=Depends(require_role(ROLE_ADMIN, ROLE_SELLER)),
    db=Depends(get_db),
):
    payment = await payment_service.refund_payment(db, payment_id, user)
    return {
        "success": True,
        "message": "Refund processed successfully",
        "payment": serialize_doc(payment),
    }


# ======================================================
# HISTORY
# ======================================================

@router.get("/history")
async def payment_history(user=Depends(get_current_user), db=Depends(get_db)):
    cursor = db.payments.find({"user_id": user["_id"]}).sort("created_at", -1)
    payments = await cursor.to_list(length=None)
    return {"success": True, "count": len(payments), "payments": serialize_docs(payments)}


# ======================================================
# GATEWAY WEBHOOK
# ======================================================

@router.post("/webhook")
async def razorpay_webhook(request: Request, db=Depends(get_db)):
    """
    Razorpay payment events.

    Guarantees:
    - Signature verified
    - Only moves pending payments, so redelivery is harmless
    """
    signature = request.headers.get("X-Razorpay-Signature")
    if not signature:
        raise AuthenticationError("Missing signature")

    raw_body = await request.body()
    if not verify_webhook_signature(raw_body=raw_body, received_signature=signature):
        raise AuthenticationError("Invalid webhook signature")

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except ValueError:
        raise ValidationError("Invalid JSON payload")

    event = payload.get("event")
    entity = (
        payload.get("payload", {})
        .get("payment", {})
        .get("entity", {})
    )

    result = await payment_service.apply_gateway_event(db, event, entity)
    logger.info("RAZORPAY_WEBHOOK event=%s result=%s", event, result)

    return {"success": True, "result": result}
