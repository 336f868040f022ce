import logging
import re
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mentorconnect import config, fees, gateway, ledger
from mentorconnect.deps import commit_or_rollback, get_db, get_or_404, load_webhook, raw_body
from mentorconnect.events import publish_event
from mentorconnect.models import UserDB, WalletDB, WithdrawalRequestDB, utcnow
from mentorconnect.schemas import (
    BankDetailsRead, BankDetailsUpdate, MessageResponse, SettlementsInfo, TopupRequest, WalletOverview,
    WalletRead, WithdrawalCreate, WithdrawalRead, WithdrawalSummary,
)
from mentorconnect.security import get_current_user, require_admin

logger = logging.getLogger("mentorconnect.wallets")

router = APIRouter(prefix="/api/wallets", tags=["wallets"])

IFSC_RE = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")


def check_ifsc(code: str) -> None:
    if not IFSC_RE.match(code or ""):
        raise HTTPException(status_code=400, detail="Invalid IFSC code format")


def check_self_or_admin(user: UserDB, user_id: int) -> None:
    if user.user_type != "admin" and user.id != user_id:
        raise HTTPException(status_code=403, detail="Access denied")


@router.get("/user/{user_id}", response_model=WalletRead)
def get_user_wallet(user_id: int, current: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    check_self_or_admin(current, user_id)
    user = get_or_404(db, UserDB, user_id, "User not found")
    wallet = ledger.get_or_create_wallet(db, user)
    db.commit()
    db.refresh(wallet)
    return wallet


@router.post("/withdrawal", response_model=WithdrawalSummary, status_code=201)
def request_withdrawal(payload: WithdrawalCreate, background_tasks: BackgroundTasks,
                       user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    if payload.amount <= 0:
        raise HTTPException(status_code=400, detail="Invalid withdrawal amount")

    wallet = ledger.get_wallet(db, user.id)
    bank = payload.bank_details.model_dump() if payload.bank_details else (wallet.bank_details if wallet else {})
    if not (bank.get("account_holder_name") and bank.get("account_number") and bank.get("ifsc_code")):
        raise HTTPException(status_code=400, detail="Complete bank details are required")
    check_ifsc(bank["ifsc_code"])

    if wallet is None:
        raise HTTPException(status_code=404, detail="Wallet not found")
    if wallet.balance < payload.amount:
        raise HTTPException(status_code=400, detail="Insufficient wallet balance")

    processing_fee, net_amount = fees.withdrawal_fee(payload.amount)
    withdrawal = WithdrawalRequestDB(
        user_id=user.id,
        wallet_id=wallet.id,
        amount=payload.amount,
        account_holder_name=bank["account_holder_name"],
        account_number=bank["account_number"],
        ifsc_code=bank["ifsc_code"],
        bank_name=bank.get("bank_name") or "Not specified",
        upi_id=bank.get("upi_id") or "",
        processing_fee=processing_fee,
        net_amount=net_amount,
        status="pending",
        requested_at=utcnow(),
    )
    db.add(withdrawal)
    commit_or_rollback(db, "Withdrawal request failed")
    db.refresh(withdrawal)
    logger.info("Withdrawal %s requested by user %s: %s (net %s)", withdrawal.id, user.id,
                payload.amount, net_amount)

    background_tasks.add_task(publish_event, "withdrawal.requested", {
        "withdrawal_id": withdrawal.id, "user_id": user.id, "email": user.email,
        "amount": withdrawal.amount, "processing_fee": processing_fee, "net_amount": net_amount,
    })
    return withdrawal


@router.get("/withdrawals/{user_id}", response_model=list[WithdrawalRead])
def list_withdrawals(user_id: int, current: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    check_self_or_admin(current, user_id)
    stmt = (
        select(WithdrawalRequestDB)
        .where(WithdrawalRequestDB.user_id == user_id)
        .order_by(WithdrawalRequestDB.requested_at.desc(), WithdrawalRequestDB.id.desc())
    )
    return db.execute(stmt).scalars().all()


@router.put("/bank-details/{user_id}", response_model=BankDetailsRead)
def update_bank_details(user_id: int, payload: BankDetailsUpdate, current: UserDB = Depends(get_current_user),
                        db: Session = Depends(get_db)):
    check_self_or_admin(current, user_id)
    user = get_or_404(db, UserDB, user_id, "User not found")
    if payload.ifsc_code is not None:
        check_ifsc(payload.ifsc_code)

    wallet = ledger.get_or_create_wallet(db, user)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(wallet, f"bank_{field}", value)
    wallet.bank_verified = False
    commit_or_rollback(db, "Bank details update failed")
    db.refresh(wallet)
    return wallet.bank_details


@router.get("/admin/overview", response_model=WalletOverview)
def admin_overview(_: UserDB = Depends(require_admin), db: Session = Depends(get_db)):
    admin_wallet = db.execute(select(WalletDB).where(WalletDB.user_type == "admin").limit(1)).scalar_one_or_none()
    totals = db.execute(
        select(func.count(WalletDB.id), func.coalesce(func.sum(WalletDB.balance), 0),
               func.coalesce(func.sum(WalletDB.locked_balance), 0))
    ).one()

    def withdrawals_in(status: str) -> tuple[int, int]:
        row = db.execute(
            select(func.count(WithdrawalRequestDB.id), func.coalesce(func.sum(WithdrawalRequestDB.amount), 0))
            .where(WithdrawalRequestDB.status == status)
        ).one()
        return row[0], row[1]

    pending_count, pending_amount = withdrawals_in("pending")
    processing_count, processing_amount = withdrawals_in("processing")
    return {
        "admin_balance": admin_wallet.balance if admin_wallet else 0,
        "total_admin_fees": admin_wallet.total_earnings if admin_wallet else 0,
        "total_wallets": totals[0],
        "total_balance": totals[1],
        "total_locked": totals[2],
        "pending_withdrawals": pending_count,
        "pending_withdrawal_amount": pending_amount,
        "processing_withdrawals": processing_count,
        "processing_withdrawal_amount": processing_amount,
    }


@router.post("/razorpay-webhook", response_model=MessageResponse, summary="Payout status updates from the gateway")
def payout_webhook(body: bytes = Depends(raw_body), x_razorpay_signature: Optional[str] = Header(None),
                   db: Session = Depends(get_db)):
    event = load_webhook(body, x_razorpay_signature)

    name = event.get("event", "")
    if name not in ("payout.processed", "payout.failed", "payout.reversed"):
        return {"message": "Webhook ignored"}

    payout = gateway.webhook_entity(event, "payout")
    withdrawal = db.execute(
        select(WithdrawalRequestDB).where(WithdrawalRequestDB.gateway_payout_id == payout.get("id"))
    ).scalar_one_or_none() if payout.get("id") else None
    if withdrawal is None:
        logger.info("No withdrawal request for payout %s", payout.get("id"))
        return {"message": "Webhook ignored"}
    if withdrawal.status != "processing":
        return {"message": "Withdrawal already settled"}

    payout_status = payout.get("status") or name.split(".", 1)[1]
    if payout_status == "processed":
        withdrawal.status = "completed"
        withdrawal.completed_at = utcnow()
    elif payout_status in ("failed", "reversed"):
        withdrawal.status = "failed"
        withdrawal.failure_reason = payout.get("failure_reason") or "Payout failed"
        wallet = db.get(WalletDB, withdrawal.wallet_id)
        if wallet is not None:
            ledger.credit(db, wallet, withdrawal.amount, "withdrawal",
                          f"Withdrawal refund - {withdrawal.failure_reason}")
            wallet.total_withdrawn = max(0, wallet.total_withdrawn - withdrawal.amount)
        logger.warning("Payout %s %s, refunded %s to wallet", payout.get("id"), payout_status, withdrawal.amount)
    else:
        return {"message": "Webhook ignored"}

    commit_or_rollback(db, "Withdrawal update failed")
    return {"message": "Webhook processed"}


@router.get("/settlements-info", response_model=SettlementsInfo)
def settlements_info(_: UserDB = Depends(require_admin), db: Session = Depends(get_db)):
    recent = db.execute(
        select(WithdrawalRequestDB)
        .where(WithdrawalRequestDB.status == "completed", WithdrawalRequestDB.gateway_payout_id.is_not(None))
        .order_by(WithdrawalRequestDB.completed_at.desc())
        .limit(10)
    ).scalars().all()
    return {
        "platform_fee_percent": config.PLATFORM_FEE_RATE * 100,
        "gateway_fee_percent": config.GATEWAY_FEE_RATE * 100,
        "withdrawal_fee_percent": config.WITHDRAWAL_FEE_RATE * 100,
        "minimum_withdrawal_fee": config.WITHDRAWAL_MIN_FEE,
        "settlement_cycle": "T+2 working days",
        "currency": config.CURRENCY,
        "recent_withdrawals": recent,
    }


@router.post("/topup", response_model=WalletRead, summary="Manually credit a wallet (admin)")
def manual_topup(payload: TopupRequest, background_tasks: BackgroundTasks,
                 admin: UserDB = Depends(require_admin), db: Session = Depends(get_db)):
    user = get_or_404(db, UserDB, payload.user_id, "User not found")
    wallet = ledger.get_or_create_wallet(db, user)
    ledger.credit(db, wallet, payload.amount, "topup", payload.note, gateway_reference=f"admin:{admin.id}")
    commit_or_rollback(db, "Wallet update failed")
    db.refresh(wallet)
    background_tasks.add_task(publish_event, "wallet.credited", {"user_id": user.id, "amount": payload.amount})
    return wallet
