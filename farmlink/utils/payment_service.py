import asyncio
import logging
from datetime import datetime

from pymongo import ReturnDocument

from farmlink.config.constants import (
    ORDER_CANCELLED,
    PAYMENT_COMPLETED,
    PAYMENT_CURRENCY,
    PAYMENT_FAILED,
    PAYMENT_METHOD_RAZORPAY,
    PAYMENT_PENDING,
    PAYMENT_REFUNDED,
    ROLE_ADMIN,
    ROLE_SELLER,
)
from farmlink.config.env import RAZORPAY_KEY_ID
from farmlink.utils import razorpay
from farmlink.utils.audit import log_audit
from farmlink.utils.errors import (
    ConflictError,
    NotAuthorized,
    NotFoundError,
    PaymentVerificationFailed,
    RefundNotAllowed,
    ValidationError,
)
from farmlink.utils.guards import parse_object_id
from farmlink.utils.order_service import cancel_order, seller_ids
from farmlink.utils.order_timeline import (
    PAYMENT_COMPLETED as EVT_PAYMENT_COMPLETED,
    PAYMENT_FAILED as EVT_PAYMENT_FAILED,
    PAYMENT_REFUNDED as EVT_PAYMENT_REFUNDED,
    record_order_event,
)
from farmlink.utils.security import active_role

logger = logging.getLogger(__name__)


# ======================================================
# INTENT
# ======================================================

async def create_intent(db, buyer: dict, order_id, amount: float | None = None) -> tuple[dict, dict]:
    oid = parse_object_id(order_id, "order_id")

    order = await db.orders.find_one({"_id": oid})
    if not order:
        raise NotFoundError("Order not found")

    if order["buyer_id"] != buyer["_id"]:
        raise NotAuthorized("Not authorized to pay for this order")

    if order.get("payment_status") == PAYMENT_COMPLETED:
        raise ConflictError("Order is already paid")

    if order["status"] == ORDER_CANCELLED:
        raise ConflictError("Order is cancelled")

    total = order["total_amount"]
    if amount is not None and razorpay.amount_to_paise(amount) != razorpay.amount_to_paise(total):
        raise ValidationError("Amount does not match order total")

    amount_paise = razorpay.amount_to_paise(total)
    gateway_order = await asyncio.to_thread(
        razorpay.create_razorpay_order,
        amount_paise=amount_paise,
        receipt=f"fl_{oid}"[:40],
        notes={"order_id": str(oid), "user_id": str(buyer["_id"])},
    )

    now = datetime.utcnow()
    payment = {
        "order_id": oid,
        "user_id": buyer["_id"],
        "amount": total,
        "currency": PAYMENT_CURRENCY,
        "payment_method": PAYMENT_METHOD_RAZORPAY,
        "status": PAYMENT_PENDING,
        "intent_id": gateway_order["id"],
        "transaction_id": None,
        "created_at": now,
        "updated_at": now,
    }
    result = await db.payments.insert_one(payment)
    payment["_id"] = result.inserted_id

    logger.info("PAYMENT_INTENT payment=%s order=%s intent=%s", payment["_id"], oid, payment["intent_id"])

    client = {
        "gateway": PAYMENT_METHOD_RAZORPAY,
        "key_id": RAZORPAY_KEY_ID,
        "intent_id": gateway_order["id"],
        "amount_paise": gateway_order.get("amount", amount_paise),
        "currency": gateway_order.get("currency", PAYMENT_CURRENCY),
    }
    return payment, client


# ======================================================
# GATEWAY OUTCOMES (verify + webhook)
# ======================================================

async def mark_completed(db, payment: dict, transaction_id: str | None) -> dict:
    now = datetime.utcnow()
    updated = await db.payments.find_one_and_update(
        {"_id": payment["_id"], "status": PAYMENT_PENDING},
        {"$set": {
            "status": PAYMENT_COMPLETED,
            "transaction_id": transaction_id,
            "updated_at": now,
        }},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        # already settled by a concurrent verify/webhook
        return await db.payments.find_one({"_id": payment["_id"]})

    await db.orders.update_one(
        {"_id": payment["order_id"]},
        {"$set": {
            "payment_status": PAYMENT_COMPLETED,
            "payment_id": payment["_id"],
            "updated_at": now,
        }},
    )
    await record_order_event(
        db,
        order_id=payment["order_id"],
        event=EVT_PAYMENT_COMPLETED,
        actor_role="system",
        metadata={"payment_id": str(payment["_id"]), "transaction_id": transaction_id},
    )
    logger.info("PAYMENT_COMPLETED payment=%s txn=%s", payment["_id"], transaction_id)
    return updated


async def mark_failed(db, payment: dict, transaction_id: str | None = None) -> dict | None:
    updated = await db.payments.find_one_and_update(
        {"_id": payment["_id"], "status": PAYMENT_PENDING},
        {"$set": {
            "status": PAYMENT_FAILED,
            "transaction_id": transaction_id,
            "updated_at": datetime.utcnow(),
        }},
        return_document=ReturnDocument.AFTER,
    )
    if updated is not None:
        await record_order_event(
            db,
            order_id=payment["order_id"],
            event=EVT_PAYMENT_FAILED,
            actor_role="system",
            metadata={"payment_id": str(payment["_id"])},
        )
        logger.info("PAYMENT_FAILED payment=%s", payment["_id"])
    return updated


async def verify_payment(db, intent_id: str) -> dict:
    payment = await db.payments.find_one({"intent_id": intent_id})
    if not payment:
        raise NotFoundError("Payment record not found")

    if payment["status"] == PAYMENT_COMPLETED:
        return payment

    if payment["status"] != PAYMENT_PENDING:
        raise PaymentVerificationFailed(f"Payment is {payment['status']}")

    outcome, transaction_id = await asyncio.to_thread(razorpay.fetch_payment_state, intent_id)

    if outcome == razorpay.GATEWAY_SUCCEEDED:
        return await mark_completed(db, payment, transaction_id)

    if outcome == razorpay.GATEWAY_FAILED:
        await mark_failed(db, payment, transaction_id)
        raise PaymentVerificationFailed()

    raise PaymentVerificationFailed("Payment not completed yet")


async def apply_gateway_event(db, event: str, entity: dict) -> str:
    """
    Webhook path. `entity` is the Razorpay payment entity.
    """
    intent_id = entity.get("order_id")
    if not intent_id:
        return "ignored"

    payment = await db.payments.find_one({"intent_id": intent_id})
    if not payment:
        return "not_found"

    if event == "payment.captured":
        await mark_completed(db, payment, entity.get("id"))
        return PAYMENT_COMPLETED

    if event == "payment.failed":
        await mark_failed(db, payment, entity.get("id"))
        return PAYMENT_FAILED

    return "ignored"


# ======================================================
# REFUND
# ======================================================

async def refund_payment(db, payment_id, user: dict) -> dict:
    payment = await db.payments.find_one({"_id": parse_object_id(payment_id, "payment_id")})
    if not payment:
        raise NotFoundError("Payment not found")

    order = await db.orders.find_one({"_id": payment["order_id"]})

    role = active_role(user)
    allowed = role == ROLE_ADMIN or (
        role == ROLE_SELLER and order is not None and user["_id"] in seller_ids(order)
    )
    if not allowed:
        raise NotAuthorized("Not authorized to process refunds")

    if payment["status"] != PAYMENT_COMPLETED:
        raise RefundNotAllowed()

    refund = await asyncio.to_thread(
        razorpay.refund_razorpay_payment,
        payment_id=payment["transaction_id"],
    )

    updated = await db.payments.find_one_and_update(
        {"_id": payment["_id"], "status": PAYMENT_COMPLETED},
        {"$set": {
            "status": PAYMENT_REFUNDED,
            "refund_id": refund.get("id"),
            "updated_at": datetime.utcnow(),
        }},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise RefundNotAllowed("Payment was already refunded")

    if order is not None:
        await cancel_order(
            db,
            order["_id"],
            actor=user,
            reason="REFUNDED",
            payment_status=PAYMENT_REFUNDED,
        )
        await record_order_event(
            db,
            order_id=order["_id"],
            event=EVT_PAYMENT_REFUNDED,
            actor_role=role,
            actor_id=user["_id"],
            metadata={"payment_id": str(payment["_id"]), "refund_id": refund.get("id")},
        )

    await log_audit(
        db,
        user,
        "PAYMENT_REFUNDED",
        target_id=payment["_id"],
        metadata={"order_id": str(payment["order_id"]), "amount": payment["amount"]},
    )

    return updated
