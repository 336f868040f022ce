import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from mentorconnect import config
from mentorconnect.deps import commit_or_rollback, get_db, get_or_404
from mentorconnect.events import publish_event
from mentorconnect.models import BookingDB, UserDB, VideoSessionDB, utcnow
from mentorconnect.routers.bookings import booking_event, check_participant, complete_booking
from mentorconnect.schemas import SessionComplete, SessionCreate, SessionRead
from mentorconnect.security import get_current_user

logger = logging.getLogger("mentorconnect.sessions")

router = APIRouter(prefix="/api/sessions", tags=["sessions"])

JOIN_EARLY = timedelta(minutes=15)
JOIN_LATE = timedelta(minutes=30)


def new_room_id() -> str:
    return f"room_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def scheduled_window(booking: BookingDB) -> tuple[datetime, datetime]:
    """Booking date/time are local to the platform timezone; returns naive UTC."""
    local = datetime.strptime(f"{booking.date} {booking.time}", "%Y-%m-%d %H:%M")
    start = local.replace(tzinfo=ZoneInfo(config.DEFAULT_TIMEZONE)).astimezone(timezone.utc).replace(tzinfo=None)
    return start, start + timedelta(minutes=booking.duration)


def attendance_pattern(session: VideoSessionDB) -> str:
    if session.aspirant_joined and session.achiever_joined:
        return "both-joined"
    if session.aspirant_joined:
        return "aspirant-only"
    if session.achiever_joined:
        return "achiever-only"
    return "neither-joined"


def check_session_participant(session: VideoSessionDB, user: UserDB) -> None:
    if user.id not in (session.aspirant_id, session.achiever_id):
        raise HTTPException(status_code=403, detail="Not a participant of this session")


@router.post("", response_model=SessionRead, status_code=201, summary="Create the video session for a booking")
def create_session(payload: SessionCreate, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    booking = get_or_404(db, BookingDB, payload.booking_id, "Booking not found")
    check_participant(booking, user)
    if booking.status != "confirmed":
        raise HTTPException(status_code=400, detail="Sessions can only be created for confirmed bookings")

    existing = db.execute(select(VideoSessionDB).where(VideoSessionDB.booking_id == booking.id)).scalar_one_or_none()
    if existing is not None:
        raise HTTPException(status_code=400, detail="Session already exists for this booking")

    start, end = scheduled_window(booking)
    session = VideoSessionDB(
        booking_id=booking.id,
        aspirant_id=booking.aspirant_id,
        achiever_id=booking.achiever_id,
        room_id=new_room_id(),
        status="scheduled",
        scheduled_start_time=start,
        scheduled_end_time=end,
    )
    db.add(session)
    booking.meeting_link = f"/session/{session.room_id}"
    commit_or_rollback(db, "Session already exists for this booking")
    db.refresh(session)
    return session


@router.get("/booking/{booking_id}", response_model=SessionRead)
def get_session_by_booking(booking_id: int, _: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    session = db.execute(select(VideoSessionDB).where(VideoSessionDB.booking_id == booking_id)).scalar_one_or_none()
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.get("/user/{user_id}", response_model=list[SessionRead])
def list_user_sessions(user_id: int, _: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    stmt = (
        select(VideoSessionDB)
        .where(or_(VideoSessionDB.aspirant_id == user_id, VideoSessionDB.achiever_id == user_id))
        .order_by(VideoSessionDB.scheduled_start_time.desc())
    )
    return db.execute(stmt).scalars().all()


@router.get("/{session_id}", response_model=SessionRead)
def get_session(session_id: int, _: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_or_404(db, VideoSessionDB, session_id, "Session not found")


@router.put("/{session_id}/join", response_model=SessionRead)
def join_session(session_id: int, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    session = get_or_404(db, VideoSessionDB, session_id, "Session not found")
    check_session_participant(session, user)
    if session.status in ("completed", "cancelled"):
        raise HTTPException(status_code=400, detail=f"Session is {session.status}")

    now = utcnow()
    if now < session.scheduled_start_time - JOIN_EARLY or now > session.scheduled_end_time + JOIN_LATE:
        raise HTTPException(
            status_code=400,
            detail="Session join window is not active. You can join 15 minutes before to 30 minutes after the scheduled time.",
        )

    if user.id == session.aspirant_id:
        session.aspirant_joined = True
        session.aspirant_join_time = now
    else:
        session.achiever_joined = True
        session.achiever_join_time = now
    session.attendance_pattern = attendance_pattern(session)

    if session.status == "scheduled":
        session.status = "ongoing"
        session.actual_start_time = now

    commit_or_rollback(db, "Session update failed")
    db.refresh(session)
    return session


@router.put("/{session_id}/complete", response_model=SessionRead)
def complete_session(session_id: int, payload: SessionComplete, background_tasks: BackgroundTasks,
                     user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    session = get_or_404(db, VideoSessionDB, session_id, "Session not found")
    check_session_participant(session, user)
    if session.status == "completed":
        raise HTTPException(status_code=400, detail="Session already completed")

    now = utcnow()
    session.status = "completed"
    session.actual_end_time = now
    session.completed_at = now
    if payload.rating is not None:
        session.rating = payload.rating
    if payload.feedback:
        session.feedback = payload.feedback

    booking = db.get(BookingDB, session.booking_id)
    if booking is not None:
        complete_booking(db, booking)

    commit_or_rollback(db, "Session update failed")
    db.refresh(session)
    logger.info("Session %s completed (%s)", session.id, session.attendance_pattern)
    if booking is not None:
        background_tasks.add_task(publish_event, "booking.completed", booking_event(booking))
    return session
