import hmac
import logging
import secrets
from datetime import timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from mentorconnect import config
from mentorconnect.deps import commit_or_rollback, get_db
from mentorconnect.events import publish_event
from mentorconnect.ledger import get_or_create_wallet
from mentorconnect.models import ExamPriceDB, OTPDB, UserDB, utcnow
from mentorconnect.schemas import (
    AuthResponse, LoginRequest, MessageResponse, OTPRequest, OTPVerify, SignupRequest, UserRead,
)
from mentorconnect.security import get_current_user, hash_password, issue_token, verify_password

logger = logging.getLogger("mentorconnect.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


def hourly_rate_for(db: Session, sub_category: str) -> int:
    if sub_category:
        price = db.execute(
            select(ExamPriceDB).where(ExamPriceDB.sub_category == sub_category, ExamPriceDB.is_active.is_(True))
        ).scalar_one_or_none()
        if price is not None:
            return price.hourly_rate
    return config.DEFAULT_HOURLY_RATE


def find_user_by_email(db: Session, email: str):
    return db.execute(select(UserDB).where(UserDB.email == email.lower())).scalar_one_or_none()


@router.post("/signup", response_model=AuthResponse, status_code=201, summary="Register an aspirant or achiever")
def signup(payload: SignupRequest, db: Session = Depends(get_db)):
    email = payload.email.lower()
    if find_user_by_email(db, email):
        raise HTTPException(status_code=400, detail="User already exists with this email")

    data = payload.model_dump(exclude={"password", "email"})
    user = UserDB(**data, email=email, password_hash=hash_password(payload.password))
    if payload.user_type == "achiever":
        user.hourly_rate = hourly_rate_for(db, payload.exam_sub_category)
        user.approved = False
        user.approval_status = "pending"
    else:
        user.hourly_rate = config.DEFAULT_HOURLY_RATE
        user.approved = True
        user.approval_status = "approved"

    db.add(user)
    commit_or_rollback(db, "User already exists with this email")
    db.refresh(user)

    token = issue_token(db, user)
    db.commit()
    logger.info("New %s signed up, id=%s", user.user_type, user.id)
    return {"token": token, "user": user}


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = find_user_by_email(db, payload.email)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    user.last_login = utcnow()
    token = issue_token(db, user)
    db.commit()
    db.refresh(user)
    return {"token": token, "user": user}


@router.post("/send-otp", response_model=MessageResponse)
def send_otp(payload: OTPRequest, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    email = payload.email.lower()
    code = f"{secrets.randbelow(1_000_000):06d}"

    db.execute(delete(OTPDB).where(OTPDB.email == email))
    db.add(OTPDB(email=email, code=code, purpose=payload.purpose,
                 expires_at=utcnow() + timedelta(minutes=config.OTP_TTL_MINUTES)))
    db.commit()

    background_tasks.add_task(publish_event, "auth.otp",
                              {"email": email, "otp": code, "purpose": payload.purpose})
    return {"message": "OTP sent successfully"}


@router.post("/verify-otp", response_model=MessageResponse)
def verify_otp(payload: OTPVerify, db: Session = Depends(get_db)):
    email = payload.email.lower()
    record = db.execute(
        select(OTPDB).where(
            OTPDB.email == email,
            OTPDB.code == payload.otp,
            OTPDB.verified.is_(False),
            OTPDB.expires_at > utcnow(),
        )
    ).scalar_one_or_none()
    if record is None:
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")

    record.verified = True
    user = find_user_by_email(db, email)
    if user:
        user.otp_verified = True
        user.is_email_verified = True
    db.commit()
    return {"message": "OTP verified successfully"}


@router.post("/admin-login", response_model=AuthResponse)
def admin_login(payload: LoginRequest, db: Session = Depends(get_db)):
    if not config.ADMIN_EMAIL or not config.ADMIN_PASSWORD:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin credentials")

    email_ok = hmac.compare_digest(payload.email.lower().encode(), config.ADMIN_EMAIL.lower().encode())
    password_ok = hmac.compare_digest(payload.password.encode(), config.ADMIN_PASSWORD.encode())
    if not (email_ok and password_ok):
        logger.warning("Rejected admin login attempt")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin credentials")

    admin = find_user_by_email(db, config.ADMIN_EMAIL)
    if admin is None:
        admin = UserDB(name="Admin", email=config.ADMIN_EMAIL.lower(), user_type="admin",
                       password_hash=hash_password(config.ADMIN_PASSWORD),
                       approved=True, approval_status="approved")
        db.add(admin)
        commit_or_rollback(db, "Admin account create failed")
        db.refresh(admin)
        logger.info("Created admin account id=%s", admin.id)

    get_or_create_wallet(db, admin)
    admin.last_login = utcnow()
    token = issue_token(db, admin)
    db.commit()
    db.refresh(admin)
    return {"token": token, "user": admin}


@router.get("/me", response_model=UserRead)
def me(user: UserDB = Depends(get_current_user)):
    return user
