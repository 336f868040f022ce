from datetime import date, datetime
from typing import Annotated, Literal, Optional

from annotated_types import Ge, Le
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator


def _calendar_date(value: str) -> str:
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"{value} is not a valid calendar date")
    return value


# ---------- Reusable type aliases ----------
NameStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]
TextStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=5000)]
PasswordStr = Annotated[str, StringConstraints(min_length=6, max_length=128)]
DateStr = Annotated[str, StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}$"), AfterValidator(_calendar_date)]
TimeStr = Annotated[str, StringConstraints(pattern=r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")]
OTPStr = Annotated[str, StringConstraints(pattern=r"^\d{6}$")]
PositiveInt = Annotated[int, Ge(1)]
NonNegativeInt = Annotated[int, Ge(0)]
Rating = Annotated[int, Ge(1), Le(5)]

UserType = Literal["aspirant", "achiever", "admin"]
SignupUserType = Literal["aspirant", "achiever"]
BookingStatus = Literal["pending", "confirmed", "completed", "cancelled"]
PaymentType = Literal["booking", "masterclass", "wallet_topup"]
MediaType = Literal["none", "photo", "video"]
OTPPurpose = Literal["signup", "login", "reset"]
DayName = Literal["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
ResourceCategory = Literal["Notes", "PDF", "Tips", "Mock Test", "Previous Year", "Strategy"]
MasterClassStatus = Literal["upcoming", "ongoing", "completed", "cancelled"]


def mask_account_number(value: str) -> str:
    if not value or len(value) <= 4:
        return value
    return "X" * (len(value) - 4) + value[-4:]


class MessageResponse(BaseModel):
    message: str


# ---------- Users & auth ----------

class SignupRequest(BaseModel):
    name: NameStr
    email: EmailStr
    password: PasswordStr
    user_type: SignupUserType
    phone: str = ""
    exam_type: str = ""
    exam_category: str = ""
    exam_sub_category: str = ""
    exam_cleared: str = ""
    rank: str = ""
    year: str = ""
    bio: str = ""
    scorecard_url: str = ""


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserSummary(BaseModel):
    id: int
    name: str
    email: str
    user_type: UserType
    exam_type: str
    rank: str
    approved: bool
    approval_status: str

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    token: str
    user: UserSummary


class OTPRequest(BaseModel):
    email: EmailStr
    purpose: OTPPurpose = "signup"


class OTPVerify(BaseModel):
    email: EmailStr
    otp: OTPStr


class UserPublic(BaseModel):
    id: int
    name: str
    email: str
    user_type: UserType
    exam_cleared: str
    rank: str
    year: str

    model_config = ConfigDict(from_attributes=True)


class UserRead(BaseModel):
    id: int
    name: str
    email: str
    user_type: UserType
    exam_type: str
    exam_category: str
    exam_sub_category: str
    exam_cleared: str
    rank: str
    year: str
    bio: str
    photo_url: str
    scorecard_url: str
    hourly_rate: int
    experience: str
    rating: float
    reviews_count: int
    sessions_completed: int
    students_helped: int
    approved: bool
    approval_status: str
    phone: str
    is_email_verified: bool
    last_login: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserProfileUpdate(BaseModel):
    name: Optional[NameStr] = None
    phone: Optional[str] = None
    exam_type: Optional[str] = None
    exam_category: Optional[str] = None
    exam_sub_category: Optional[str] = None
    exam_cleared: Optional[str] = None
    rank: Optional[str] = None
    year: Optional[str] = None
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    scorecard_url: Optional[str] = None
    hourly_rate: Optional[NonNegativeInt] = None
    experience: Optional[str] = None


class ExamPriceIn(BaseModel):
    category: NameStr
    sub_category: NameStr
    hourly_rate: NonNegativeInt
    description: str = ""
    is_active: bool = True


class ExamPriceRead(ExamPriceIn):
    id: int

    model_config = ConfigDict(from_attributes=True)


# ---------- Bookings ----------

class BookingCreate(BaseModel):
    achiever_id: PositiveInt
    date: DateStr
    time: TimeStr
    duration: PositiveInt = 60
    amount: Optional[PositiveInt] = None
    message: str = ""
    mentor_exam: str = ""


class WalletBookingCreate(BaseModel):
    mentor_id: PositiveInt
    date: DateStr
    time: TimeStr
    duration: PositiveInt = 60
    amount: PositiveInt
    message: str = ""
    # set to reserve the matching specific slot as well
    slot_end_time: Optional[TimeStr] = None


class BookingRead(BaseModel):
    id: int
    aspirant_id: int
    achiever_id: int
    aspirant_name: str
    aspirant_email: str
    mentor_name: str
    mentor_exam: str
    date: str
    time: str
    duration: int
    message: str
    status: str
    payment_id: str
    payment_status: str
    payment_method: str
    amount: int
    refund_status: str
    refund_amount: int
    rejection_reason: str
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    meeting_link: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WalletBookingResponse(BaseModel):
    booking: BookingRead
    wallet_balance: int


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    cancelled_by: Optional[Literal["aspirant", "achiever"]] = None


class BookingReject(BaseModel):
    rejection_reason: TextStr
    rejected_by: PositiveInt


# ---------- Sessions ----------

class SessionCreate(BaseModel):
    booking_id: PositiveInt


class SessionComplete(BaseModel):
    rating: Optional[Rating] = None
    feedback: str = ""


class SessionRead(BaseModel):
    id: int
    booking_id: int
    aspirant_id: int
    achiever_id: int
    room_id: str
    status: str
    scheduled_start_time: datetime
    scheduled_end_time: datetime
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    aspirant_joined: bool
    achiever_joined: bool
    attendance_pattern: str
    rating: Optional[int] = None
    feedback: str
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---------- Wallets ----------

class TransactionRead(BaseModel):
    id: int
    type: Literal["credit", "debit"]
    amount: int
    source: str
    description: str
    booking_id: Optional[int] = None
    session_id: Optional[int] = None
    gateway_reference: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class BankDetails(BaseModel):
    account_holder_name: str = ""
    account_number: str = ""
    ifsc_code: str = ""
    bank_name: str = ""
    upi_id: str = ""


class BankDetailsUpdate(BaseModel):
    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    ifsc_code: Optional[str] = None
    bank_name: Optional[str] = None
    upi_id: Optional[str] = None


class BankDetailsRead(BankDetails):
    verified: bool = False

    @field_validator("account_number")
    @classmethod
    def mask(cls, v: str) -> str:
        return mask_account_number(v)


class WalletRead(BaseModel):
    id: int
    user_id: int
    user_type: UserType
    balance: int
    locked_balance: int
    total_earnings: int
    total_withdrawn: int
    bank_details: BankDetailsRead
    transactions: list[TransactionRead]
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WithdrawalCreate(BaseModel):
    amount: int
    bank_details: Optional[BankDetails] = None


class WithdrawalSummary(BaseModel):
    id: int
    amount: int
    processing_fee: int
    net_amount: int
    status: str

    model_config = ConfigDict(from_attributes=True)


class WithdrawalRead(WithdrawalSummary):
    user_id: int
    wallet_id: int
    account_holder_name: str
    account_number: str
    ifsc_code: str
    bank_name: str
    gateway_payout_id: Optional[str] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failure_reason: str
    admin_notes: str
    rejection_reason: str

    @field_validator("account_number")
    @classmethod
    def mask(cls, v: str) -> str:
        return mask_account_number(v)


class WithdrawalDecision(BaseModel):
    admin_notes: str = ""
    reason: str = ""
    # payout id from the gateway dashboard, matched by the payout webhook
    payout_reference: Optional[str] = None


class TopupRequest(BaseModel):
    user_id: PositiveInt
    amount: PositiveInt
    note: str = "Manual credit by admin"


# ---------- Payments ----------

class CreateOrderRequest(BaseModel):
    amount: PositiveInt
    type: PaymentType
    booking_id: Optional[PositiveInt] = None
    master_class_id: Optional[PositiveInt] = None


class PaymentRead(BaseModel):
    id: int
    user_id: int
    booking_id: Optional[int] = None
    master_class_id: Optional[int] = None
    type: PaymentType
    gateway_order_id: str
    gateway_payment_id: str
    amount: int
    currency: str
    status: str
    refund_id: str
    refund_amount: int
    admin_fee: int
    gateway_fee: int
    mentor_amount: int
    payout_status: str
    payout_date: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreateOrderResponse(BaseModel):
    order_id: str
    amount: int
    currency: str
    key_id: str
    payment: PaymentRead


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)


class RefundRequest(BaseModel):
    payment_id: PositiveInt
    amount: Optional[PositiveInt] = None
    reason: str = "Booking cancelled"


class PayoutRequest(BaseModel):
    mentor_id: PositiveInt
    payment_ids: list[int]
    amount: NonNegativeInt


# ---------- Availability ----------

class WeeklySlotIn(BaseModel):
    day: DayName
    start_time: TimeStr
    end_time: TimeStr


class WeeklySlotRead(WeeklySlotIn):
    id: int

    model_config = ConfigDict(from_attributes=True)


class SpecificSlotIn(BaseModel):
    id: Optional[int] = None
    date: date
    start_time: TimeStr
    end_time: TimeStr


class SpecificSlotRead(BaseModel):
    id: int
    date: date
    start_time: str
    end_time: str
    duration: int
    is_booked: bool
    booking_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class AvailabilityUpdate(BaseModel):
    weekly_slots: Optional[list[WeeklySlotIn]] = None
    specific_slots: Optional[list[SpecificSlotIn]] = None
    timezone: Optional[str] = None


class AvailabilityRead(BaseModel):
    id: Optional[int] = None
    user_id: int
    timezone: str
    is_active: bool = True
    weekly_slots: list[WeeklySlotRead] = []
    specific_slots: list[SpecificSlotRead] = []

    model_config = ConfigDict(from_attributes=True)


class OpenSlot(BaseModel):
    type: Literal["specific", "weekly"]
    date: date
    start_time: str
    end_time: str
    duration: Optional[int] = None
    day: Optional[str] = None
    slot_id: Optional[int] = None


class BookSlotRequest(BaseModel):
    mentor_id: PositiveInt
    date: date
    start_time: TimeStr
    end_time: TimeStr
    booking_id: PositiveInt


class UnbookSlotRequest(BaseModel):
    mentor_id: PositiveInt
    booking_id: PositiveInt


# ---------- Admin ----------

class RejectUserRequest(BaseModel):
    reason: str = ""


# ---------- Social & content ----------

class FollowStatus(BaseModel):
    is_following: bool


class LikeResult(BaseModel):
    likes: int
    is_liked: bool


class PostCreate(BaseModel):
    content: TextStr
    media_url: str = ""
    media_type: MediaType = "none"


class CommentCreate(BaseModel):
    comment: TextStr


class CommentRead(BaseModel):
    id: int
    user_id: int
    user_name: str
    comment: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PostRead(BaseModel):
    id: int
    mentor_id: int
    mentor_name: str
    content: str
    media_url: str
    media_type: MediaType
    likes: int
    liked_by_ids: list[int]
    comments: list[CommentRead]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MasterClassCreate(BaseModel):
    title: NameStr
    description: TextStr
    exam_type: NameStr
    date: DateStr
    time: TimeStr
    duration: PositiveInt
    price: NonNegativeInt


class MasterClassUpdate(BaseModel):
    title: Optional[NameStr] = None
    description: Optional[TextStr] = None
    exam_type: Optional[NameStr] = None
    date: Optional[DateStr] = None
    time: Optional[TimeStr] = None
    duration: Optional[PositiveInt] = None
    price: Optional[NonNegativeInt] = None
    status: Optional[MasterClassStatus] = None
    meeting_link: Optional[str] = None


class MasterClassRead(BaseModel):
    id: int
    title: str
    description: str
    achiever_id: int
    achiever_name: str
    exam_type: str
    date: str
    time: str
    duration: int
    max_participants: int
    price: int
    status: MasterClassStatus
    meeting_link: str
    participant_ids: list[int]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ResourceCreate(BaseModel):
    title: NameStr
    description: TextStr
    category: ResourceCategory
    exam_type: NameStr
    file_url: str = "#"
    file_type: str = "PDF"
    file_size: NonNegativeInt = 0


class ResourceRead(BaseModel):
    id: int
    title: str
    description: str
    category: ResourceCategory
    uploaded_by: int
    uploader_name: str
    exam_type: str
    file_url: str
    file_type: str
    file_size: int
    likes: int
    downloads: int
    liked_by_ids: list[int]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DownloadResult(BaseModel):
    downloads: int


class VerifyPaymentResponse(BaseModel):
    message: str
    payment: PaymentRead


class MentorEarnings(BaseModel):
    mentor_id: int
    total_earnings: int
    pending_payout: int
    completed_payout: int
    master_class_earnings: int
    completed_sessions: int


class PaymentStatistics(BaseModel):
    total_revenue: int
    admin_revenue: int
    mentor_payouts: int
    pending_payouts: int
    completed_payouts: int


class PaymentList(BaseModel):
    count: int
    statistics: PaymentStatistics
    payments: list[PaymentRead]


class PayoutResult(BaseModel):
    mentor_id: int
    payments_updated: int
    amount: int


class PendingPayoutGroup(BaseModel):
    mentor_id: int
    mentor_name: str
    mentor_email: str
    total_amount: int
    payments: list[PaymentRead]


class WalletOverview(BaseModel):
    admin_balance: int
    total_admin_fees: int
    total_wallets: int
    total_balance: int
    total_locked: int
    pending_withdrawals: int
    pending_withdrawal_amount: int
    processing_withdrawals: int
    processing_withdrawal_amount: int


class SettlementsInfo(BaseModel):
    platform_fee_percent: float
    gateway_fee_percent: float
    withdrawal_fee_percent: float
    minimum_withdrawal_fee: int
    settlement_cycle: str
    currency: str
    recent_withdrawals: list[WithdrawalRead]


class AdminStats(BaseModel):
    total_users: int
    total_aspirants: int
    total_achievers: int
    pending_approvals: int
    approved_achievers: int
    total_bookings: int
    pending_bookings: int
    confirmed_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    total_revenue: int
    admin_revenue: int
    mentor_earnings: int
    pending_payouts: int
    total_sessions: int
    completed_sessions: int
    total_master_classes: int
    total_resources: int
    total_posts: int
    pending_withdrawals: int
