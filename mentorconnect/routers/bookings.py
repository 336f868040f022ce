import logging
from datetime import date as calendar_date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from mentorconnect import config, fees, ledger, slots
from mentorconnect.deps import commit_or_rollback, get_db, get_or_404
from mentorconnect.events import publish_event
from mentorconnect.models import BookingDB, PaymentDB, UserDB, VideoSessionDB, utcnow
from mentorconnect.schemas import (
    BookingCreate, BookingRead, BookingReject, BookingStatusUpdate, WalletBookingCreate,
    WalletBookingResponse,
)
from mentorconnect.security import get_current_user, require_admin, require_aspirant

logger = logging.getLogger("mentorconnect.bookings")

router = APIRouter(prefix="/api/bookings", tags=["bookings"])

CLOSED_STATUSES = ("completed", "cancelled", "rejected")


def booking_event(booking: BookingDB) -> dict:
    return {
        "booking_id": booking.id,
        "aspirant_id": booking.aspirant_id,
        "achiever_id": booking.achiever_id,
        "aspirant_email": booking.aspirant_email,
        "mentor_name": booking.mentor_name,
        "date": booking.date,
        "time": booking.time,
        "duration": booking.duration,
        "amount": booking.amount,
        "status": booking.status,
    }


def get_bookable_mentor(db: Session, mentor_id: int) -> UserDB:
    mentor = db.get(UserDB, mentor_id)
    if not mentor or mentor.user_type != "achiever":
        raise HTTPException(status_code=404, detail="Mentor not found")
    if not mentor.approved:
        raise HTTPException(status_code=400, detail="Mentor is not approved yet")
    return mentor


def check_participant(booking: BookingDB, user: UserDB) -> None:
    if user.user_type != "admin" and user.id not in (booking.aspirant_id, booking.achiever_id):
        raise HTTPException(status_code=403, detail="Not a participant of this booking")


def complete_booking(db: Session, booking: BookingDB) -> None:
    """Mark the booking completed and pay out its escrow. Closed bookings are left alone. Caller commits."""
    if booking.status in CLOSED_STATUSES:
        return
    booking.status = "completed"
    ledger.release_booking_funds(db, booking)
    mentor = db.get(UserDB, booking.achiever_id)
    if mentor is not None:
        mentor.sessions_completed += 1
    logger.info("Booking %s completed", booking.id)


def cancel_booking(db: Session, booking: BookingDB, reason: str) -> None:
    ledger.refund_booking_funds(db, booking, reason)
    slots.release_booking_slot(db, booking.achiever_id, booking.id)


@router.post("", response_model=BookingRead, status_code=201, summary="Create new booking")
def create_booking(payload: BookingCreate, background_tasks: BackgroundTasks,
                   user: UserDB = Depends(require_aspirant), db: Session = Depends(get_db)):
    mentor = get_bookable_mentor(db, payload.achiever_id)
    amount = payload.amount or fees.session_price(mentor.hourly_rate or config.DEFAULT_HOURLY_RATE,
                                                  payload.duration)

    db_book = BookingDB(
        aspirant_id=user.id,
        achiever_id=mentor.id,
        aspirant_name=user.name,
        aspirant_email=user.email,
        mentor_name=mentor.name,
        mentor_exam=payload.mentor_exam or mentor.exam_cleared or mentor.exam_type,
        date=payload.date,
        time=payload.time,
        duration=payload.duration,
        amount=amount,
        message=payload.message,
        status="pending",
        payment_method="gateway",
        payment_status="pending",
    )
    db.add(db_book)
    commit_or_rollback(db, "Booking create failed")
    db.refresh(db_book)

    background_tasks.add_task(publish_event, "booking.created", booking_event(db_book))
    return db_book


@router.post("/wallet-booking", response_model=WalletBookingResponse, status_code=201,
             summary="Book a session paid from the wallet balance")
def create_wallet_booking(payload: WalletBookingCreate, background_tasks: BackgroundTasks,
                          user: UserDB = Depends(require_aspirant), db: Session = Depends(get_db)):
    wallet = ledger.get_wallet(db, user.id)
    if wallet is None or wallet.balance < payload.amount:
        raise HTTPException(status_code=400, detail="Insufficient wallet balance")
    mentor = get_bookable_mentor(db, payload.mentor_id)

    slot = None
    if payload.slot_end_time:
        availability = slots.get_availability(db, mentor.id)
        if availability is not None:
            slot = slots.find_specific_slot(availability, calendar_date.fromisoformat(payload.date),
                                            payload.time, payload.slot_end_time)
        if slot is None or slot.is_booked:
            raise HTTPException(status_code=400, detail="Slot not found or already booked")

    db_book = BookingDB(
        aspirant_id=user.id,
        achiever_id=mentor.id,
        aspirant_name=user.name,
        aspirant_email=user.email,
        mentor_name=mentor.name,
        mentor_exam=mentor.exam_cleared or "General",
        date=payload.date,
        time=payload.time,
        duration=payload.duration,
        amount=payload.amount,
        message=payload.message or "Booked via wallet",
        status="pending",
        payment_method="wallet",
        payment_status="completed",
    )
    db.add(db_book)
    db.flush()

    ledger.lock_booking_funds(db, db_book, user)
    if slot is not None:
        slot.is_booked = True
        slot.booking_id = db_book.id

    commit_or_rollback(db, "Booking create failed")
    db.refresh(db_book)
    db.refresh(wallet)

    background_tasks.add_task(publish_event, "booking.created", booking_event(db_book))
    return {"booking": db_book, "wallet_balance": wallet.balance}


@router.get("", response_model=list[BookingRead], summary="All bookings (admin)")
def list_bookings(limit: int = 50, offset: int = 0, _: UserDB = Depends(require_admin),
                  db: Session = Depends(get_db)):
    stmt = select(BookingDB).order_by(BookingDB.id.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.get("/user/{user_id}", response_model=list[BookingRead])
def list_user_bookings(user_id: int, user_type: Optional[str] = None, _: UserDB = Depends(get_current_user),
                       db: Session = Depends(get_db)):
    if user_type == "aspirant":
        column = BookingDB.aspirant_id
    elif user_type == "achiever":
        column = BookingDB.achiever_id
    else:
        raise HTTPException(status_code=400, detail="Invalid user type")
    stmt = select(BookingDB).where(column == user_id).order_by(BookingDB.created_at.desc(), BookingDB.id.desc())
    return db.execute(stmt).scalars().all()


@router.get("/{booking_id}", response_model=BookingRead, summary="Get a single booking")
def get_booking(booking_id: int, _: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_or_404(db, BookingDB, booking_id, "Booking not found")


@router.put("/{booking_id}/status", response_model=BookingRead, summary="Update booking status")
def update_booking_status(booking_id: int, payload: BookingStatusUpdate, background_tasks: BackgroundTasks,
                          user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    book = get_or_404(db, BookingDB, booking_id, "Booking not found")
    check_participant(book, user)
    if book.status in CLOSED_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot change a {book.status} booking")

    if payload.status == "cancelled":
        book.status = "cancelled"
        book.cancelled_at = utcnow()
        book.cancelled_by = payload.cancelled_by or ("achiever" if user.id == book.achiever_id else "aspirant")
        cancel_booking(db, book, f"Booking cancelled by {book.cancelled_by}")
    elif payload.status == "completed":
        complete_booking(db, book)
    else:
        book.status = payload.status

    commit_or_rollback(db, "Booking update failed")
    db.refresh(book)
    background_tasks.add_task(publish_event, f"booking.{book.status}", booking_event(book))
    return book


@router.put("/{booking_id}/reject", response_model=BookingRead, summary="Reject a booking")
def reject_booking(booking_id: int, payload: BookingReject, background_tasks: BackgroundTasks,
                   user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    book = get_or_404(db, BookingDB, booking_id, "Booking not found")
    check_participant(book, user)
    if book.status in CLOSED_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot reject a {book.status} booking")

    book.status = "rejected"
    book.rejection_reason = payload.rejection_reason
    book.rejected_by = payload.rejected_by
    book.rejected_at = utcnow()
    cancel_booking(db, book, f"Booking rejected: {payload.rejection_reason}")

    commit_or_rollback(db, "Booking update failed")
    db.refresh(book)
    background_tasks.add_task(publish_event, "booking.rejected",
                              {**booking_event(book), "reason": book.rejection_reason})
    return book


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_booking(booking_id: int, _: UserDB = Depends(require_admin), db: Session = Depends(get_db)) -> Response:
    book = get_or_404(db, BookingDB, booking_id, "Booking not found")
    delete_booking_record(db, book)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def delete_booking_record(db: Session, book: BookingDB) -> None:
    """Delete a booking with its escrow, session and payment links."""
    lock = ledger.get_lock(db, book.id)
    if lock is not None and lock.status == "locked":
        ledger.refund_booking_funds(db, book, "Booking deleted")
    if lock is not None:
        db.delete(lock)
    slots.release_booking_slot(db, book.achiever_id, book.id)
    for session in db.execute(select(VideoSessionDB).where(VideoSessionDB.booking_id == book.id)).scalars():
        db.delete(session)
    for payment in db.execute(select(PaymentDB).where(PaymentDB.booking_id == book.id)).scalars():
        payment.booking_id = None
    db.flush()
    db.delete(book)
