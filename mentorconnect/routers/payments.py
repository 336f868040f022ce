import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from mentorconnect import config, fees, gateway, ledger
from mentorconnect.deps import commit_or_rollback, get_db, get_or_404, load_webhook, raw_body
from mentorconnect.events import publish_event
from mentorconnect.models import BookingDB, MasterClassDB, PaymentDB, UserDB, utcnow
from mentorconnect.schemas import (
    CreateOrderRequest, CreateOrderResponse, MentorEarnings, MessageResponse, PaymentList, PaymentRead,
    PayoutRequest, PayoutResult, RefundRequest, VerifyPaymentRequest, VerifyPaymentResponse,
)
from mentorconnect.security import get_current_user, require_admin

logger = logging.getLogger("mentorconnect.payments")

router = APIRouter(prefix="/api/payments", tags=["payments"])


def gateway_http_error(e: gateway.GatewayError) -> HTTPException:
    if e.circuit_open:
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


def check_owner_or_admin(user: UserDB, owner_id: int) -> None:
    if user.user_type != "admin" and user.id != owner_id:
        raise HTTPException(status_code=403, detail="Access denied")


def payment_event(payment: PaymentDB) -> dict:
    return {
        "payment_id": payment.id,
        "user_id": payment.user_id,
        "type": payment.type,
        "amount": payment.amount,
        "order_id": payment.gateway_order_id,
        "booking_id": payment.booking_id,
        "master_class_id": payment.master_class_id,
    }


def apply_successful_payment(db: Session, payment: PaymentDB, gateway_payment_id: str,
                             signature: str = "") -> bool:
    """
    Complete a payment and apply its effect. Returns ``False`` when the
    payment was already completed, so verify and webhook can both call it.
    """
    if payment.status == "completed":
        return False

    payment.gateway_payment_id = gateway_payment_id
    if signature:
        payment.gateway_signature = signature
    payment.status = "completed"
    user = db.get(UserDB, payment.user_id)

    if payment.booking_id:
        booking = db.get(BookingDB, payment.booking_id)
        if booking is None:
            logger.error("Payment %s references missing booking %s", payment.id, payment.booking_id)
        elif booking.payment_status != "completed":
            wallet = ledger.get_or_create_wallet(db, user)
            booking.amount = payment.amount
            ledger.credit(db, wallet, payment.amount, "gateway-payment",
                          f"Gateway payment for booking {booking.id}", booking_id=booking.id,
                          gateway_reference=gateway_payment_id)
            ledger.lock_booking_funds(db, booking, user, gateway_payment_id)
            booking.payment_status = "completed"
            booking.payment_id = gateway_payment_id
            booking.payment_method = "gateway"
    elif payment.master_class_id:
        master_class = db.get(MasterClassDB, payment.master_class_id)
        if master_class is not None and user not in master_class.participants:
            master_class.participants.append(user)
    elif payment.type == "wallet_topup":
        wallet = ledger.get_or_create_wallet(db, user)
        ledger.credit(db, wallet, payment.amount, "topup", "Wallet top-up via Razorpay",
                      gateway_reference=gateway_payment_id)

    logger.info("Payment %s completed (%s, %s)", payment.id, payment.type, payment.amount)
    return True


def find_payment_by_order(db: Session, order_id: str) -> Optional[PaymentDB]:
    return db.execute(select(PaymentDB).where(PaymentDB.gateway_order_id == order_id)).scalar_one_or_none()


@router.post("/create-order", response_model=CreateOrderResponse, status_code=201)
def create_order(payload: CreateOrderRequest, user: UserDB = Depends(get_current_user),
                 db: Session = Depends(get_db)):
    if payload.type == "booking":
        if not payload.booking_id:
            raise HTTPException(status_code=400, detail="booking_id is required for booking payments")
        booking = get_or_404(db, BookingDB, payload.booking_id, "Booking not found")
        if booking.aspirant_id != user.id:
            raise HTTPException(status_code=403, detail="You can only pay for your own bookings")
        if booking.payment_status == "completed":
            raise HTTPException(status_code=400, detail="Booking is already paid")
    if payload.type == "masterclass":
        if not payload.master_class_id:
            raise HTTPException(status_code=400, detail="master_class_id is required for master class payments")
        get_or_404(db, MasterClassDB, payload.master_class_id, "Master class not found")

    receipt = gateway.receipt_id()
    try:
        order = gateway.create_order(
            fees.to_paise(payload.amount), receipt,
            notes={"user_id": str(user.id), "type": payload.type},
        )
    except gateway.GatewayError as e:
        raise gateway_http_error(e)

    payment = PaymentDB(
        user_id=user.id,
        booking_id=payload.booking_id if payload.type == "booking" else None,
        master_class_id=payload.master_class_id if payload.type == "masterclass" else None,
        type=payload.type,
        gateway_order_id=order["id"],
        amount=payload.amount,
        currency=config.CURRENCY,
        status="created",
    )
    if payload.type != "wallet_topup":
        split = fees.payment_split(payload.amount)
        payment.admin_fee = split.platform_fee
        payment.gateway_fee = split.gateway_fee
        payment.mentor_amount = split.mentor_amount

    db.add(payment)
    commit_or_rollback(db, "Payment record already exists for this order")
    db.refresh(payment)

    return {
        "order_id": order["id"],
        "amount": order.get("amount", fees.to_paise(payload.amount)),
        "currency": order.get("currency", config.CURRENCY),
        "key_id": config.RAZORPAY_KEY_ID,
        "payment": payment,
    }


@router.post("/verify", response_model=VerifyPaymentResponse)
def verify_payment(payload: VerifyPaymentRequest, background_tasks: BackgroundTasks,
                   _: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    payment = find_payment_by_order(db, payload.razorpay_order_id)
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment record not found")

    if not gateway.verify_payment_signature(payload.razorpay_order_id, payload.razorpay_payment_id,
                                            payload.razorpay_signature):
        if payment.status != "completed":
            payment.status = "failed"
            db.commit()
        logger.warning("Signature mismatch for order %s", payload.razorpay_order_id)
        raise HTTPException(status_code=400, detail="Invalid payment signature")

    applied = apply_successful_payment(db, payment, payload.razorpay_payment_id, payload.razorpay_signature)
    commit_or_rollback(db, "Payment update failed")
    db.refresh(payment)

    if applied:
        background_tasks.add_task(publish_event, "payment.success", payment_event(payment))
        if payment.type == "wallet_topup":
            background_tasks.add_task(publish_event, "wallet.credited",
                                      {"user_id": payment.user_id, "amount": payment.amount})
        return {"message": "Payment verified successfully", "payment": payment}
    return {"message": "Payment already verified", "payment": payment}


@router.post("/webhook", response_model=MessageResponse)
def payment_webhook(background_tasks: BackgroundTasks, body: bytes = Depends(raw_body),
                    x_razorpay_signature: Optional[str] = Header(None), db: Session = Depends(get_db)):
    event = load_webhook(body, x_razorpay_signature)

    name = event.get("event", "")
    entity = gateway.webhook_entity(event, "payment")
    payment = find_payment_by_order(db, entity.get("order_id", "")) if entity else None
    if payment is None:
        logger.info("Webhook %s ignored, no matching payment", name)
        return {"message": "Webhook ignored"}

    if name == "payment.captured":
        if apply_successful_payment(db, payment, entity.get("id", "")):
            background_tasks.add_task(publish_event, "payment.success", payment_event(payment))
    elif name == "payment.failed":
        if payment.status != "completed":
            payment.status = "failed"
    else:
        return {"message": "Webhook ignored"}

    commit_or_rollback(db, "Payment update failed")
    return {"message": "Webhook processed"}


@router.get("/status/{order_id}", response_model=PaymentRead)
def payment_status(order_id: str, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    payment = find_payment_by_order(db, order_id)
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    check_owner_or_admin(user, payment.user_id)
    return payment


@router.get("/user/{user_id}", response_model=list[PaymentRead])
def user_payments(user_id: int, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    check_owner_or_admin(user, user_id)
    stmt = select(PaymentDB).where(PaymentDB.user_id == user_id).order_by(PaymentDB.id.desc())
    return db.execute(stmt).scalars().all()


@router.get("/mentor/{mentor_id}/earnings", response_model=MentorEarnings)
def mentor_earnings(mentor_id: int, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    check_owner_or_admin(user, mentor_id)

    booking_ids = db.execute(
        select(BookingDB.id).where(
            BookingDB.achiever_id == mentor_id,
            BookingDB.status == "completed",
            BookingDB.payment_status == "completed",
        )
    ).scalars().all()
    payments = db.execute(
        select(PaymentDB).where(PaymentDB.booking_id.in_(booking_ids), PaymentDB.status == "completed")
    ).scalars().all() if booking_ids else []

    class_ids = db.execute(
        select(MasterClassDB.id).where(MasterClassDB.achiever_id == mentor_id, MasterClassDB.status == "completed")
    ).scalars().all()
    class_payments = db.execute(
        select(PaymentDB).where(PaymentDB.master_class_id.in_(class_ids), PaymentDB.status == "completed")
    ).scalars().all() if class_ids else []

    return {
        "mentor_id": mentor_id,
        "total_earnings": sum(p.mentor_amount for p in payments),
        "pending_payout": sum(p.mentor_amount for p in payments if p.payout_status == "pending"),
        "completed_payout": sum(p.mentor_amount for p in payments if p.payout_status == "completed"),
        "master_class_earnings": sum(p.mentor_amount for p in class_payments),
        "completed_sessions": len(booking_ids),
    }


@router.get("", response_model=PaymentList, summary="All payments with statistics (admin)")
def list_payments(_: UserDB = Depends(require_admin), db: Session = Depends(get_db)):
    payments = db.execute(select(PaymentDB).order_by(PaymentDB.id.desc())).scalars().all()
    completed = [p for p in payments if p.status == "completed"]
    return {
        "count": len(payments),
        "statistics": {
            "total_revenue": sum(p.amount for p in completed),
            "admin_revenue": sum(p.admin_fee for p in completed),
            "mentor_payouts": sum(p.mentor_amount for p in completed),
            "pending_payouts": sum(1 for p in payments if p.payout_status == "pending"),
            "completed_payouts": sum(1 for p in payments if p.payout_status == "completed"),
        },
        "payments": payments,
    }


@router.post("/refund", response_model=PaymentRead, summary="Refund a payment through the gateway (admin)")
def refund_payment(payload: RefundRequest, background_tasks: BackgroundTasks,
                   _: UserDB = Depends(require_admin), db: Session = Depends(get_db)):
    payment = get_or_404(db, PaymentDB, payload.payment_id, "Payment not found")
    if payment.status != "completed" or not payment.gateway_payment_id:
        raise HTTPException(status_code=400, detail="Only completed payments can be refunded")

    amount = payload.amount or payment.amount
    if amount > payment.amount:
        raise HTTPException(status_code=400, detail="Refund amount exceeds payment amount")

    try:
        refund = gateway.refund_payment(payment.gateway_payment_id, fees.to_paise(amount),
                                        notes={"reason": payload.reason})
    except gateway.GatewayError as e:
        raise gateway_http_error(e)

    payment.status = "refunded"
    payment.refund_id = refund.get("id", "")
    payment.refund_amount = amount
    payment.refund_reason = payload.reason

    if payment.booking_id:
        booking = db.get(BookingDB, payment.booking_id)
        if booking is not None:
            ledger.refund_booking_funds(db, booking, payload.reason, credit_wallet=False)
            booking.refund_status = "processed"
            booking.refund_amount = amount
            if booking.status not in ("completed", "rejected"):
                booking.status = "cancelled"
                booking.cancelled_at = utcnow()

    commit_or_rollback(db, "Refund update failed")
    db.refresh(payment)
    background_tasks.add_task(publish_event, "booking.cancelled",
                              {**payment_event(payment), "refund_amount": amount})
    return payment


def record_payout(db: Session, payload: PayoutRequest) -> dict:
    """Mark the listed payments of one mentor as paid out and commit."""
    get_or_404(db, UserDB, payload.mentor_id, "Mentor not found")
    payments = db.execute(
        select(PaymentDB)
        .join(BookingDB, PaymentDB.booking_id == BookingDB.id)
        .where(PaymentDB.id.in_(payload.payment_ids), BookingDB.achiever_id == payload.mentor_id)
    ).scalars().all()
    if not payments:
        raise HTTPException(status_code=400, detail="No matching payments for this mentor")
    now = utcnow()
    for p in payments:
        p.payout_status = "completed"
        p.payout_date = now
    commit_or_rollback(db, "Payout update failed")
    logger.info("Paid out %s payment(s) to mentor %s", len(payments), payload.mentor_id)
    return {"mentor_id": payload.mentor_id, "payments_updated": len(payments), "amount": payload.amount}


@router.post("/payout", response_model=PayoutResult, summary="Mark mentor payments as paid out (admin)")
def payout(payload: PayoutRequest, background_tasks: BackgroundTasks,
           _: UserDB = Depends(require_admin), db: Session = Depends(get_db)):
    result = record_payout(db, payload)
    background_tasks.add_task(publish_event, "payout.processed", result)
    return result
