"""
Wallet arithmetic.

Every balance change goes through :func:`credit` or :func:`debit` so a
wallet's balance always equals the sum of its credits minus its debits.
Booking money is moved into ``locked_balance`` while a session is pending
and leaves it either as a release (mentor and platform are paid) or as a
refund (back to the aspirant's spendable balance).

Functions here only stage changes on the session; callers commit.
"""
import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from mentorconnect import fees
from mentorconnect.models import (
    BookingDB, LockedTransactionDB, UserDB, WalletDB, WalletTransactionDB, utcnow,
)

logger = logging.getLogger("mentorconnect.ledger")


def get_wallet(db: Session, user_id: int) -> Optional[WalletDB]:
    return db.execute(select(WalletDB).where(WalletDB.user_id == user_id)).scalar_one_or_none()


def get_or_create_wallet(db: Session, user: UserDB) -> WalletDB:
    wallet = get_wallet(db, user.id)
    if wallet is None:
        wallet = WalletDB(user_id=user.id, user_type=user.user_type, balance=0, locked_balance=0,
                          total_earnings=0, total_withdrawn=0)
        db.add(wallet)
        db.flush()
        logger.info("Created wallet for user %s (%s)", user.id, user.user_type)
    return wallet


def get_admin_wallet(db: Session) -> Optional[WalletDB]:
    admin = db.execute(
        select(UserDB).where(UserDB.user_type == "admin").order_by(UserDB.id).limit(1)
    ).scalar_one_or_none()
    if admin is None:
        return None
    return get_or_create_wallet(db, admin)


def credit(db: Session, wallet: WalletDB, amount: int, source: str, description: str,
           booking_id: Optional[int] = None, session_id: Optional[int] = None,
           gateway_reference: Optional[str] = None) -> WalletTransactionDB:
    if amount <= 0:
        raise HTTPException(status_code=400, detail="Amount must be greater than 0")
    wallet.balance += amount
    txn = WalletTransactionDB(type="credit", amount=amount, source=source, description=description,
                              booking_id=booking_id, session_id=session_id,
                              gateway_reference=gateway_reference, timestamp=utcnow())
    wallet.transactions.append(txn)
    logger.info("Wallet %s credited %s (%s)", wallet.id, amount, source)
    return txn


def debit(db: Session, wallet: WalletDB, amount: int, source: str, description: str,
          booking_id: Optional[int] = None, gateway_reference: Optional[str] = None) -> WalletTransactionDB:
    if amount <= 0:
        raise HTTPException(status_code=400, detail="Amount must be greater than 0")
    if wallet.balance < amount:
        raise HTTPException(status_code=400, detail="Insufficient wallet balance")
    wallet.balance -= amount
    txn = WalletTransactionDB(type="debit", amount=amount, source=source, description=description,
                              booking_id=booking_id, gateway_reference=gateway_reference,
                              timestamp=utcnow())
    wallet.transactions.append(txn)
    logger.info("Wallet %s debited %s (%s)", wallet.id, amount, source)
    return txn


def ledger_balance(wallet: WalletDB) -> int:
    total = 0
    for txn in wallet.transactions:
        total += txn.amount if txn.type == "credit" else -txn.amount
    return total


def get_lock(db: Session, booking_id: int) -> Optional[LockedTransactionDB]:
    return db.execute(
        select(LockedTransactionDB).where(LockedTransactionDB.booking_id == booking_id)
    ).scalar_one_or_none()


def lock_booking_funds(db: Session, booking: BookingDB, aspirant: UserDB,
                       gateway_payment_id: str = "") -> LockedTransactionDB:
    """Move ``booking.amount`` from the aspirant's balance into escrow."""
    wallet = get_or_create_wallet(db, aspirant)
    debit(db, wallet, booking.amount, "booking",
          f"Payment for session with {booking.mentor_name}", booking_id=booking.id,
          gateway_reference=gateway_payment_id or None)
    wallet.locked_balance += booking.amount

    split = fees.payment_split(booking.amount)
    lock = LockedTransactionDB(
        booking_id=booking.id,
        aspirant_id=booking.aspirant_id,
        achiever_id=booking.achiever_id,
        amount=booking.amount,
        platform_fee=split.platform_fee,
        gateway_fee=split.gateway_fee,
        achiever_amount=split.mentor_amount,
        status="locked",
        gateway_payment_id=gateway_payment_id,
        locked_at=utcnow(),
    )
    db.add(lock)
    logger.info("Locked %s for booking %s", booking.amount, booking.id)
    return lock


def release_booking_funds(db: Session, booking: BookingDB) -> Optional[LockedTransactionDB]:
    lock = get_lock(db, booking.id)
    if lock is None or lock.status != "locked":
        return None

    aspirant_wallet = get_wallet(db, lock.aspirant_id)
    if aspirant_wallet is not None:
        aspirant_wallet.locked_balance = max(0, aspirant_wallet.locked_balance - lock.amount)

    achiever = db.get(UserDB, lock.achiever_id)
    if achiever is not None and lock.achiever_amount > 0:
        achiever_wallet = get_or_create_wallet(db, achiever)
        credit(db, achiever_wallet, lock.achiever_amount, "session-payment",
               f"Earnings for session with {booking.aspirant_name}", booking_id=booking.id)
        achiever_wallet.total_earnings += lock.achiever_amount

    admin_wallet = get_admin_wallet(db)
    if admin_wallet is not None and lock.platform_fee > 0:
        credit(db, admin_wallet, lock.platform_fee, "admin-fee",
               f"Platform fee for booking {booking.id}", booking_id=booking.id)
        admin_wallet.total_earnings += lock.platform_fee
    elif lock.platform_fee > 0:
        logger.warning("No admin account, platform fee for booking %s not credited", booking.id)

    lock.status = "released"
    lock.released_at = utcnow()
    return lock


def refund_booking_funds(db: Session, booking: BookingDB, reason: str,
                         credit_wallet: bool = True) -> Optional[LockedTransactionDB]:
    """
    Undo a lock. With ``credit_wallet=False`` the money went back through the
    gateway, so only the escrow is cleared.
    """
    lock = get_lock(db, booking.id)
    if lock is None or lock.status != "locked":
        return None

    wallet = get_wallet(db, lock.aspirant_id)
    if wallet is None:
        logger.error("Locked funds for booking %s have no aspirant wallet", booking.id)
        return None
    wallet.locked_balance = max(0, wallet.locked_balance - lock.amount)
    if credit_wallet:
        credit(db, wallet, lock.amount, "refund", f"Refund for booking {booking.id}: {reason}",
               booking_id=booking.id)

    lock.status = "refunded"
    lock.refunded_at = utcnow()
    lock.notes = reason[:255]
    booking.refund_status = "processed"
    booking.refund_amount = lock.amount
    return lock
