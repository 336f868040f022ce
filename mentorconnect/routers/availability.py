import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from mentorconnect import config, slots
from mentorconnect.deps import commit_or_rollback, get_db
from mentorconnect.models import AvailabilityDB, UserDB, WeeklySlotDB
from mentorconnect.schemas import (
    AvailabilityRead, AvailabilityUpdate, BookSlotRequest, MessageResponse, OpenSlot, SpecificSlotRead,
    UnbookSlotRequest,
)
from mentorconnect.security import get_current_user

logger = logging.getLogger("mentorconnect.availability")

router = APIRouter(prefix="/api/availability", tags=["availability"])


def get_or_create_availability(db: Session, user_id: int) -> AvailabilityDB:
    availability = slots.get_availability(db, user_id)
    if availability is None:
        availability = AvailabilityDB(user_id=user_id, timezone=config.DEFAULT_TIMEZONE, is_active=True)
        db.add(availability)
        commit_or_rollback(db, "Availability create failed")
        db.refresh(availability)
    return availability


@router.get("", response_model=AvailabilityRead, summary="Own availability")
def get_own_availability(user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_or_create_availability(db, user.id)


# declared before /{mentor_id} so "slots" is not read as an id
@router.get("/slots", response_model=list[OpenSlot], summary="Open slots in a date range")
def get_open_slots(start_date: date, end_date: date, user_id: Optional[int] = None,
                   user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    availability = slots.get_availability(db, user_id or user.id)
    if availability is None or not availability.is_active:
        return []
    return slots.open_slots(availability, start_date, end_date)


@router.get("/{mentor_id}", response_model=AvailabilityRead, summary="A mentor's availability")
def get_mentor_availability(mentor_id: int, _: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    availability = slots.get_availability(db, mentor_id)
    if availability is None:
        return {"user_id": mentor_id, "timezone": config.DEFAULT_TIMEZONE, "weekly_slots": [], "specific_slots": []}
    return availability


@router.put("", response_model=AvailabilityRead, summary="Replace weekly and specific slots")
def update_availability(payload: AvailabilityUpdate, user: UserDB = Depends(get_current_user),
                        db: Session = Depends(get_db)):
    availability = get_or_create_availability(db, user.id)
    try:
        if payload.timezone is not None:
            slots.zone(payload.timezone)
            availability.timezone = payload.timezone

        if payload.weekly_slots is not None:
            weekly = []
            for w in payload.weekly_slots:
                start, end = slots.normalize_time(w.start_time), slots.normalize_time(w.end_time)
                slots.check_window(start, end)
                weekly.append(WeeklySlotDB(day=w.day, start_time=start, end_time=end))
            availability.weekly_slots = weekly

        if payload.specific_slots is not None:
            availability.specific_slots = slots.merge_specific_slots(
                availability.specific_slots, payload.specific_slots
            )
    except slots.SlotError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    commit_or_rollback(db, "Availability update failed")
    db.refresh(availability)
    logger.info("User %s now has %s weekly and %s specific slots", user.id,
                len(availability.weekly_slots), len(availability.specific_slots))
    return availability


@router.post("/book-slot", response_model=SpecificSlotRead)
def book_slot(payload: BookSlotRequest, _: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    availability = slots.get_availability(db, payload.mentor_id)
    if availability is None:
        raise HTTPException(status_code=404, detail="Mentor availability not found")

    slot = slots.find_specific_slot(availability, payload.date, payload.start_time, payload.end_time)
    if slot is None or slot.is_booked:
        raise HTTPException(status_code=400, detail="Slot not available")

    slot.is_booked = True
    slot.booking_id = payload.booking_id
    commit_or_rollback(db, "Slot booking failed")
    db.refresh(slot)
    return slot


@router.post("/unbook-slot", response_model=MessageResponse)
def unbook_slot(payload: UnbookSlotRequest, _: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    slot = slots.release_booking_slot(db, payload.mentor_id, payload.booking_id)
    if slot is None:
        return {"message": "No slot held by this booking"}
    db.commit()
    return {"message": "Slot unbooked successfully"}
