import logging
from collections import defaultdict
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from mentorconnect import ledger
from mentorconnect.deps import commit_or_rollback, get_db, get_or_404
from mentorconnect.events import publish_event
from mentorconnect.models import (
    AvailabilityDB, BookingDB, ExamPriceDB, FollowDB, MasterClassDB, MentorPostDB, PaymentDB, ResourceDB,
    UserDB, VideoSessionDB, WalletDB, WithdrawalRequestDB, utcnow,
)
from mentorconnect.routers.bookings import delete_booking_record
from mentorconnect.routers.payments import record_payout
from mentorconnect.routers.users import filter_users
from mentorconnect.schemas import (
    AdminStats, BookingRead, ExamPriceIn, ExamPriceRead, PayoutRequest, PayoutResult, PendingPayoutGroup, PostRead,
    RejectUserRequest, UserRead, WithdrawalDecision, WithdrawalRead,
)
from mentorconnect.security import require_admin

logger = logging.getLogger("mentorconnect.admin")

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def count(db: Session, model, *criteria) -> int:
    return db.execute(select(func.count()).select_from(model).where(*criteria)).scalar_one()


@router.get("/stats", response_model=AdminStats)
def stats(db: Session = Depends(get_db)):
    completed = db.execute(select(PaymentDB).where(PaymentDB.status == "completed")).scalars().all()
    return {
        "total_users": count(db, UserDB),
        "total_aspirants": count(db, UserDB, UserDB.user_type == "aspirant"),
        "total_achievers": count(db, UserDB, UserDB.user_type == "achiever"),
        "pending_approvals": count(db, UserDB, UserDB.user_type == "achiever", UserDB.approval_status == "pending"),
        "approved_achievers": count(db, UserDB, UserDB.user_type == "achiever", UserDB.approval_status == "approved"),
        "total_bookings": count(db, BookingDB),
        "pending_bookings": count(db, BookingDB, BookingDB.status == "pending"),
        "confirmed_bookings": count(db, BookingDB, BookingDB.status == "confirmed"),
        "completed_bookings": count(db, BookingDB, BookingDB.status == "completed"),
        "cancelled_bookings": count(db, BookingDB, BookingDB.status == "cancelled"),
        "total_revenue": sum(p.amount for p in completed),
        "admin_revenue": sum(p.admin_fee for p in completed),
        "mentor_earnings": sum(p.mentor_amount for p in completed),
        "pending_payouts": sum(1 for p in completed if p.payout_status == "pending"),
        "total_sessions": count(db, VideoSessionDB),
        "completed_sessions": count(db, VideoSessionDB, VideoSessionDB.status == "completed"),
        "total_master_classes": count(db, MasterClassDB),
        "total_resources": count(db, ResourceDB),
        "total_posts": count(db, MentorPostDB),
        "pending_withdrawals": count(db, WithdrawalRequestDB, WithdrawalRequestDB.status == "pending"),
    }


# ---------- Users ----------

@router.get("/users", response_model=list[UserRead])
def list_users(user_type: Optional[str] = None, approved: Optional[bool] = None, search: Optional[str] = None,
               db: Session = Depends(get_db)):
    stmt = filter_users(select(UserDB), user_type=user_type, approved=approved, search=search)
    return db.execute(stmt.order_by(UserDB.created_at.desc(), UserDB.id.desc())).scalars().all()


@router.get("/users/pending-approval", response_model=list[UserRead])
def pending_approval(db: Session = Depends(get_db)):
    stmt = (
        select(UserDB)
        .where(UserDB.user_type == "achiever", UserDB.approval_status == "pending")
        .order_by(UserDB.created_at.desc(), UserDB.id.desc())
    )
    return db.execute(stmt).scalars().all()


@router.put("/users/{user_id}/approve", response_model=UserRead)
def approve_user(user_id: int, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    user = get_or_404(db, UserDB, user_id, "User not found")
    user.approved = True
    user.approval_status = "approved"
    commit_or_rollback(db, "User update failed")
    db.refresh(user)
    logger.info("Approved user %s", user.id)
    background_tasks.add_task(publish_event, "user.approved", {"user_id": user.id, "email": user.email, "name": user.name})
    return user


@router.put("/users/{user_id}/reject", response_model=UserRead)
def reject_user(user_id: int, payload: RejectUserRequest, background_tasks: BackgroundTasks,
                db: Session = Depends(get_db)):
    user = get_or_404(db, UserDB, user_id, "User not found")
    user.approved = False
    user.approval_status = "rejected"
    commit_or_rollback(db, "User update failed")
    db.refresh(user)
    background_tasks.add_task(publish_event, "user.rejected",
                              {"user_id": user.id, "email": user.email, "name": user.name, "reason": payload.reason})
    return user


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: int, admin: UserDB = Depends(require_admin), db: Session = Depends(get_db)) -> Response:
    user = get_or_404(db, UserDB, user_id, "User not found")
    if user.id == admin.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    bookings = db.execute(
        select(BookingDB).where(or_(BookingDB.aspirant_id == user.id, BookingDB.achiever_id == user.id))
    ).scalars().all()
    for book in bookings:
        delete_booking_record(db, book)

    for model, column in (
        (MentorPostDB, MentorPostDB.mentor_id),
        (MasterClassDB, MasterClassDB.achiever_id),
        (ResourceDB, ResourceDB.uploaded_by),
        (AvailabilityDB, AvailabilityDB.user_id),
        (WithdrawalRequestDB, WithdrawalRequestDB.user_id),
        (PaymentDB, PaymentDB.user_id),
        (WalletDB, WalletDB.user_id),
    ):
        for obj in db.execute(select(model).where(column == user.id)).scalars():
            db.delete(obj)
    db.execute(delete(FollowDB).where(or_(FollowDB.follower_id == user.id, FollowDB.following_id == user.id)))

    db.flush()
    db.delete(user)
    db.commit()
    logger.info("Deleted user %s", user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Bookings ----------

@router.get("/bookings", response_model=list[BookingRead])
def list_bookings(status: Optional[str] = None, db: Session = Depends(get_db)):
    stmt = select(BookingDB)
    if status:
        stmt = stmt.where(BookingDB.status == status)
    return db.execute(stmt.order_by(BookingDB.created_at.desc(), BookingDB.id.desc())).scalars().all()


@router.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_booking(booking_id: int, db: Session = Depends(get_db)) -> Response:
    book = get_or_404(db, BookingDB, booking_id, "Booking not found")
    delete_booking_record(db, book)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Payouts ----------

@router.get("/payments/pending-payouts", response_model=list[PendingPayoutGroup])
def pending_payouts(db: Session = Depends(get_db)):
    rows = db.execute(
        select(PaymentDB, UserDB)
        .join(BookingDB, PaymentDB.booking_id == BookingDB.id)
        .join(UserDB, BookingDB.achiever_id == UserDB.id)
        .where(PaymentDB.status == "completed", PaymentDB.payout_status == "pending",
               BookingDB.status == "completed")
        .order_by(UserDB.id, PaymentDB.id)
    ).all()

    groups = {}
    payments_by_mentor = defaultdict(list)
    for payment, mentor in rows:
        groups.setdefault(mentor.id, mentor)
        payments_by_mentor[mentor.id].append(payment)

    return [
        {
            "mentor_id": mentor.id,
            "mentor_name": mentor.name,
            "mentor_email": mentor.email,
            "total_amount": sum(p.mentor_amount for p in payments_by_mentor[mentor.id]),
            "payments": payments_by_mentor[mentor.id],
        }
        for mentor in groups.values()
    ]


@router.post("/payments/process-payout", response_model=PayoutResult)
def process_payout(payload: PayoutRequest, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    result = record_payout(db, payload)
    background_tasks.add_task(publish_event, "payout.processed", result)
    return result


# ---------- Posts ----------

@router.get("/posts", response_model=list[PostRead])
def list_posts(db: Session = Depends(get_db)):
    return db.execute(select(MentorPostDB).order_by(MentorPostDB.created_at.desc(), MentorPostDB.id.desc())).scalars().all()


@router.delete("/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(post_id: int, db: Session = Depends(get_db)) -> Response:
    post = get_or_404(db, MentorPostDB, post_id, "Post not found")
    db.delete(post)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Withdrawals ----------

@router.get("/withdrawals", response_model=list[WithdrawalRead])
def list_withdrawals(status: Optional[str] = None, db: Session = Depends(get_db)):
    stmt = select(WithdrawalRequestDB)
    if status:
        stmt = stmt.where(WithdrawalRequestDB.status == status)
    return db.execute(stmt.order_by(WithdrawalRequestDB.requested_at.desc(), WithdrawalRequestDB.id.desc())).scalars().all()


def get_pending_withdrawal(db: Session, withdrawal_id: int) -> WithdrawalRequestDB:
    withdrawal = get_or_404(db, WithdrawalRequestDB, withdrawal_id, "Withdrawal request not found")
    if withdrawal.status != "pending":
        raise HTTPException(status_code=400, detail=f"Withdrawal request is already {withdrawal.status}")
    return withdrawal


@router.put("/withdrawals/{withdrawal_id}/approve", response_model=WithdrawalRead)
def approve_withdrawal(withdrawal_id: int, payload: WithdrawalDecision, background_tasks: BackgroundTasks,
                       admin: UserDB = Depends(require_admin), db: Session = Depends(get_db)):
    withdrawal = get_pending_withdrawal(db, withdrawal_id)
    wallet = get_or_404(db, WalletDB, withdrawal.wallet_id, "Wallet not found")

    ledger.debit(db, wallet, withdrawal.amount, "withdrawal",
                 f"Withdrawal to {withdrawal.bank_name} (fee {withdrawal.processing_fee})",
                 gateway_reference=payload.payout_reference)
    wallet.total_withdrawn += withdrawal.amount

    now = utcnow()
    withdrawal.status = "processing"
    withdrawal.processed_at = now
    withdrawal.approved_by = admin.id
    withdrawal.approved_at = now
    withdrawal.admin_notes = payload.admin_notes
    if payload.payout_reference:
        withdrawal.gateway_payout_id = payload.payout_reference

    commit_or_rollback(db, "Withdrawal update failed")
    db.refresh(withdrawal)
    logger.info("Withdrawal %s approved by admin %s", withdrawal.id, admin.id)
    background_tasks.add_task(publish_event, "withdrawal.approved", {
        "withdrawal_id": withdrawal.id, "user_id": withdrawal.user_id,
        "amount": withdrawal.amount, "net_amount": withdrawal.net_amount,
    })
    return withdrawal


@router.put("/withdrawals/{withdrawal_id}/reject", response_model=WithdrawalRead)
def reject_withdrawal(withdrawal_id: int, payload: WithdrawalDecision, background_tasks: BackgroundTasks,
                      admin: UserDB = Depends(require_admin), db: Session = Depends(get_db)):
    withdrawal = get_pending_withdrawal(db, withdrawal_id)
    withdrawal.status = "rejected"
    withdrawal.rejected_by = admin.id
    withdrawal.rejected_at = utcnow()
    withdrawal.rejection_reason = payload.reason or "Rejected by admin"
    withdrawal.admin_notes = payload.admin_notes

    commit_or_rollback(db, "Withdrawal update failed")
    db.refresh(withdrawal)
    background_tasks.add_task(publish_event, "withdrawal.rejected", {
        "withdrawal_id": withdrawal.id, "user_id": withdrawal.user_id, "reason": withdrawal.rejection_reason,
    })
    return withdrawal


# ---------- Exam prices ----------

@router.get("/exam-prices", response_model=list[ExamPriceRead])
def list_exam_prices(db: Session = Depends(get_db)):
    return db.execute(select(ExamPriceDB).order_by(ExamPriceDB.category, ExamPriceDB.sub_category)).scalars().all()


def upsert_exam_prices(db: Session, prices: list[ExamPriceIn]) -> int:
    changed = 0
    for item in prices:
        price = db.execute(
            select(ExamPriceDB).where(ExamPriceDB.sub_category == item.sub_category)
        ).scalar_one_or_none()
        if price is None:
            price = ExamPriceDB(sub_category=item.sub_category)
            db.add(price)
        for field, value in item.model_dump().items():
            setattr(price, field, value)
        changed += 1
    return changed


@router.put("/exam-prices", response_model=list[ExamPriceRead])
def update_exam_prices(payload: list[ExamPriceIn], db: Session = Depends(get_db)):
    upsert_exam_prices(db, payload)
    commit_or_rollback(db, "Exam price update failed")
    return list_exam_prices(db)
