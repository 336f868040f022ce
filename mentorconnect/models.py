from datetime import date as calendar_date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Table, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # naive UTC, SQLite drops tzinfo on the way back
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


# ---------- Users & auth ----------

class UserDB(TimestampMixin, Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    user_type: Mapped[str] = mapped_column(String(20), index=True, nullable=False)

    exam_type: Mapped[str] = mapped_column(String(120), default="")
    exam_category: Mapped[str] = mapped_column(String(120), default="")
    exam_sub_category: Mapped[str] = mapped_column(String(120), default="")
    exam_cleared: Mapped[str] = mapped_column(String(120), default="")
    rank: Mapped[str] = mapped_column(String(40), default="")
    year: Mapped[str] = mapped_column(String(10), default="")
    bio: Mapped[str] = mapped_column(Text, default="")
    photo_url: Mapped[str] = mapped_column(String(500), default="")
    scorecard_url: Mapped[str] = mapped_column(String(500), default="")
    hourly_rate: Mapped[int] = mapped_column(Integer, default=500)
    experience: Mapped[str] = mapped_column(String(40), default="1")
    rating: Mapped[float] = mapped_column(Float, default=4.8)
    reviews_count: Mapped[int] = mapped_column(Integer, default=0)
    sessions_completed: Mapped[int] = mapped_column(Integer, default=0)
    students_helped: Mapped[int] = mapped_column(Integer, default=0)

    approved: Mapped[bool] = mapped_column(Boolean, default=False)
    approval_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    phone: Mapped[str] = mapped_column(String(20), default="")
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    otp_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    tokens: Mapped[list["AuthTokenDB"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class FollowDB(Base):
    __tablename__ = "follows"
    __table_args__ = (UniqueConstraint("follower_id", "following_id"),)
    id: Mapped[int] = mapped_column(primary_key=True)
    follower_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    following_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class AuthTokenDB(Base):
    __tablename__ = "auth_tokens"
    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    user: Mapped[UserDB] = relationship(back_populates="tokens")


class OTPDB(Base):
    __tablename__ = "otps"
    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    purpose: Mapped[str] = mapped_column(String(20), default="signup")
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ExamPriceDB(TimestampMixin, Base):
    __tablename__ = "exam_prices"
    id: Mapped[int] = mapped_column(primary_key=True)
    category: Mapped[str] = mapped_column(String(120), index=True, nullable=False)
    sub_category: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    hourly_rate: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


# ---------- Bookings & sessions ----------

class BookingDB(TimestampMixin, Base):
    __tablename__ = "bookings"
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    aspirant_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    achiever_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    aspirant_name: Mapped[str] = mapped_column(String(120), nullable=False)
    aspirant_email: Mapped[str] = mapped_column(String(255), nullable=False)
    mentor_name: Mapped[str] = mapped_column(String(120), nullable=False)
    mentor_exam: Mapped[str] = mapped_column(String(120), default="")
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, default=60)
    message: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    payment_id: Mapped[str] = mapped_column(String(100), default="")
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")
    payment_method: Mapped[str] = mapped_column(String(20), default="gateway")
    amount: Mapped[int] = mapped_column(Integer, default=500)
    refund_status: Mapped[str] = mapped_column(String(20), default="none")
    refund_amount: Mapped[int] = mapped_column(Integer, default=0)
    rejection_reason: Mapped[str] = mapped_column(Text, default="")
    rejected_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    meeting_link: Mapped[str] = mapped_column(String(255), default="")


class VideoSessionDB(TimestampMixin, Base):
    __tablename__ = "sessions"
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), unique=True)
    aspirant_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    achiever_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    room_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="scheduled", index=True)
    scheduled_start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    scheduled_end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    actual_start_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    aspirant_joined: Mapped[bool] = mapped_column(Boolean, default=False)
    achiever_joined: Mapped[bool] = mapped_column(Boolean, default=False)
    aspirant_join_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    achiever_join_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    attendance_pattern: Mapped[str] = mapped_column(String(20), default="neither-joined")
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    feedback: Mapped[str] = mapped_column(Text, default="")
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


# ---------- Money ----------

class WalletDB(TimestampMixin, Base):
    __tablename__ = "wallets"
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, index=True)
    user_type: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    balance: Mapped[int] = mapped_column(Integer, default=0)
    locked_balance: Mapped[int] = mapped_column(Integer, default=0)
    total_earnings: Mapped[int] = mapped_column(Integer, default=0)
    total_withdrawn: Mapped[int] = mapped_column(Integer, default=0)

    bank_account_holder_name: Mapped[str] = mapped_column(String(120), default="")
    bank_account_number: Mapped[str] = mapped_column(String(40), default="")
    bank_ifsc_code: Mapped[str] = mapped_column(String(11), default="")
    bank_name: Mapped[str] = mapped_column(String(120), default="")
    bank_upi_id: Mapped[str] = mapped_column(String(120), default="")
    bank_verified: Mapped[bool] = mapped_column(Boolean, default=False)

    transactions: Mapped[list["WalletTransactionDB"]] = relationship(
        back_populates="wallet",
        cascade="all, delete-orphan",
        order_by="WalletTransactionDB.id",
    )

    @property
    def bank_details(self) -> dict:
        return {
            "account_holder_name": self.bank_account_holder_name,
            "account_number": self.bank_account_number,
            "ifsc_code": self.bank_ifsc_code,
            "bank_name": self.bank_name,
            "upi_id": self.bank_upi_id,
            "verified": self.bank_verified,
        }


class WalletTransactionDB(Base):
    __tablename__ = "wallet_transactions"
    id: Mapped[int] = mapped_column(primary_key=True)
    wallet_id: Mapped[int] = mapped_column(ForeignKey("wallets.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    booking_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    session_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gateway_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    wallet: Mapped[WalletDB] = relationship(back_populates="transactions")


class WithdrawalRequestDB(TimestampMixin, Base):
    __tablename__ = "withdrawal_requests"
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    wallet_id: Mapped[int] = mapped_column(ForeignKey("wallets.id"))
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    account_holder_name: Mapped[str] = mapped_column(String(120), nullable=False)
    account_number: Mapped[str] = mapped_column(String(40), nullable=False)
    ifsc_code: Mapped[str] = mapped_column(String(11), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(120), default="Not specified")
    upi_id: Mapped[str] = mapped_column(String(120), default="")
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    gateway_payout_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    processing_fee: Mapped[int] = mapped_column(Integer, default=0)
    net_amount: Mapped[int] = mapped_column(Integer, default=0)
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failure_reason: Mapped[str] = mapped_column(String(255), default="")
    admin_notes: Mapped[str] = mapped_column(String(255), default="")
    approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[str] = mapped_column(String(255), default="")


class PaymentDB(TimestampMixin, Base):
    __tablename__ = "payments"
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    booking_id: Mapped[Optional[int]] = mapped_column(ForeignKey("bookings.id"), nullable=True)
    master_class_id: Mapped[Optional[int]] = mapped_column(ForeignKey("master_classes.id"), nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    gateway_order_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    gateway_payment_id: Mapped[str] = mapped_column(String(100), default="")
    gateway_signature: Mapped[str] = mapped_column(String(255), default="")
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    status: Mapped[str] = mapped_column(String(20), default="created", index=True)
    refund_id: Mapped[str] = mapped_column(String(100), default="")
    refund_amount: Mapped[int] = mapped_column(Integer, default=0)
    refund_reason: Mapped[str] = mapped_column(String(255), default="")
    admin_fee: Mapped[int] = mapped_column(Integer, default=0)
    gateway_fee: Mapped[int] = mapped_column(Integer, default=0)
    mentor_amount: Mapped[int] = mapped_column(Integer, default=0)
    payout_status: Mapped[str] = mapped_column(String(20), default="pending")
    payout_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class LockedTransactionDB(TimestampMixin, Base):
    __tablename__ = "locked_transactions"
    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), unique=True)
    aspirant_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    achiever_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    gateway_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    achiever_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="locked", index=True)
    gateway_payment_id: Mapped[str] = mapped_column(String(100), default="")
    locked_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[str] = mapped_column(String(255), default="")


# ---------- Availability ----------

class AvailabilityDB(TimestampMixin, Base):
    __tablename__ = "availability"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, index=True)
    timezone: Mapped[str] = mapped_column(String(64), default="Asia/Kolkata")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    weekly_slots: Mapped[list["WeeklySlotDB"]] = relationship(
        cascade="all, delete-orphan", order_by="WeeklySlotDB.id"
    )
    specific_slots: Mapped[list["SpecificSlotDB"]] = relationship(
        cascade="all, delete-orphan", order_by="SpecificSlotDB.id"
    )


class WeeklySlotDB(Base):
    __tablename__ = "weekly_slots"
    id: Mapped[int] = mapped_column(primary_key=True)
    availability_id: Mapped[int] = mapped_column(ForeignKey("availability.id", ondelete="CASCADE"), index=True)
    day: Mapped[str] = mapped_column(String(10), nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)


class SpecificSlotDB(Base):
    __tablename__ = "specific_slots"
    id: Mapped[int] = mapped_column(primary_key=True)
    availability_id: Mapped[int] = mapped_column(ForeignKey("availability.id", ondelete="CASCADE"), index=True)
    date: Mapped[calendar_date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    is_booked: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    booking_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


# ---------- Social & content ----------

masterclass_participants = Table(
    "masterclass_participants",
    Base.metadata,
    Column("master_class_id", ForeignKey("master_classes.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

post_likes = Table(
    "post_likes",
    Base.metadata,
    Column("post_id", ForeignKey("mentor_posts.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

resource_likes = Table(
    "resource_likes",
    Base.metadata,
    Column("resource_id", ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

resource_downloads = Table(
    "resource_downloads",
    Base.metadata,
    Column("resource_id", ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class MasterClassDB(TimestampMixin, Base):
    __tablename__ = "master_classes"
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    achiever_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    achiever_name: Mapped[str] = mapped_column(String(120), nullable=False)
    exam_type: Mapped[str] = mapped_column(String(120), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, default=5)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="upcoming", index=True)
    meeting_link: Mapped[str] = mapped_column(String(255), default="")
    room_id: Mapped[str] = mapped_column(String(64), default="")
    participants: Mapped[list[UserDB]] = relationship(secondary=masterclass_participants)

    @property
    def participant_ids(self) -> list[int]:
        return [u.id for u in self.participants]


class MentorPostDB(TimestampMixin, Base):
    __tablename__ = "mentor_posts"
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    mentor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    mentor_name: Mapped[str] = mapped_column(String(120), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    media_url: Mapped[str] = mapped_column(String(500), default="")
    media_type: Mapped[str] = mapped_column(String(10), default="none")
    likes: Mapped[int] = mapped_column(Integer, default=0)
    liked_by: Mapped[list[UserDB]] = relationship(secondary=post_likes)
    comments: Mapped[list["PostCommentDB"]] = relationship(
        cascade="all, delete-orphan", order_by="PostCommentDB.id"
    )

    @property
    def liked_by_ids(self) -> list[int]:
        return [u.id for u in self.liked_by]


class PostCommentDB(Base):
    __tablename__ = "post_comments"
    id: Mapped[int] = mapped_column(primary_key=True)
    post_id: Mapped[int] = mapped_column(ForeignKey("mentor_posts.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    user_name: Mapped[str] = mapped_column(String(120), default="")
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ResourceDB(TimestampMixin, Base):
    __tablename__ = "resources"
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    uploaded_by: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    uploader_name: Mapped[str] = mapped_column(String(120), nullable=False)
    exam_type: Mapped[str] = mapped_column(String(120), nullable=False)
    file_url: Mapped[str] = mapped_column(String(500), default="#")
    file_type: Mapped[str] = mapped_column(String(20), default="PDF")
    file_size: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    downloads: Mapped[int] = mapped_column(Integer, default=0)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=True)
    liked_by: Mapped[list[UserDB]] = relationship(secondary=resource_likes)
    downloaded_by: Mapped[list[UserDB]] = relationship(secondary=resource_downloads)

    @property
    def liked_by_ids(self) -> list[int]:
        return [u.id for u in self.liked_by]
