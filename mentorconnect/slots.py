"""Availability slot rules: validation, duration and open-slot expansion."""
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.orm import Session

from mentorconnect import config
from mentorconnect.models import AvailabilityDB, SpecificSlotDB

DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class SlotError(ValueError):
    pass


def to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def normalize_time(hhmm: str) -> str:
    """``9:05`` -> ``09:05``"""
    m = to_minutes(hhmm)
    return f"{m // 60:02d}:{m % 60:02d}"


def slot_duration(start_time: str, end_time: str) -> int:
    return to_minutes(end_time) - to_minutes(start_time)


def check_window(start_time: str, end_time: str, min_minutes: int = 0) -> int:
    duration = slot_duration(start_time, end_time)
    if duration <= 0:
        raise SlotError("End time must be after start time")
    if duration < min_minutes:
        raise SlotError(f"Slot must be at least {min_minutes} minutes long")
    return duration


def zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise SlotError(f"Unknown timezone: {name}")


def merge_specific_slots(existing: list[SpecificSlotDB], incoming: list) -> list[SpecificSlotDB]:
    """
    Build the new specific-slot list from submitted slots.

    A submitted slot with the same date, start and end as a stored one keeps
    the stored row, so its booked flag and booking id survive the update.
    """
    by_key = {(s.date, s.start_time, s.end_time): s for s in existing}
    merged = []
    seen = set()
    for slot in incoming:
        start, end = normalize_time(slot.start_time), normalize_time(slot.end_time)
        key = (slot.date, start, end)
        if key in seen:
            continue
        seen.add(key)
        if key in by_key:
            merged.append(by_key[key])
            continue
        duration = check_window(start, end, config.MIN_SLOT_MINUTES)
        merged.append(SpecificSlotDB(date=slot.date, start_time=start, end_time=end,
                                     duration=duration, is_booked=False))
    return merged


def open_slots(availability: AvailabilityDB, start_date: date, end_date: date,
               now: Optional[datetime] = None) -> list[dict]:
    if now is None:
        now = datetime.now(zone(availability.timezone or config.DEFAULT_TIMEZONE))
    today = now.date()
    now_minutes = now.hour * 60 + now.minute

    def started(day: date, start_time: str) -> bool:
        return day == today and to_minutes(start_time) <= now_minutes

    result = []
    specific_dates = set()
    for s in availability.specific_slots:
        if start_date <= s.date <= end_date:
            specific_dates.add(s.date)
            if not s.is_booked and not started(s.date, s.start_time):
                result.append({
                    "type": "specific",
                    "date": s.date,
                    "start_time": s.start_time,
                    "end_time": s.end_time,
                    "duration": s.duration,
                    "slot_id": s.id,
                })

    day = start_date
    while day <= end_date:
        if day not in specific_dates:
            day_name = DAYS[day.weekday()]
            for w in availability.weekly_slots:
                if w.day == day_name and not started(day, w.start_time):
                    result.append({
                        "type": "weekly",
                        "date": day,
                        "day": day_name,
                        "start_time": w.start_time,
                        "end_time": w.end_time,
                        "duration": slot_duration(w.start_time, w.end_time),
                    })
        day += timedelta(days=1)

    result.sort(key=lambda s: (s["date"], s["start_time"]))
    return result


def get_availability(db: Session, user_id: int) -> Optional[AvailabilityDB]:
    return db.execute(select(AvailabilityDB).where(AvailabilityDB.user_id == user_id)).scalar_one_or_none()


def find_specific_slot(availability: AvailabilityDB, day: date, start_time: str,
                       end_time: str) -> Optional[SpecificSlotDB]:
    start, end = normalize_time(start_time), normalize_time(end_time)
    for s in availability.specific_slots:
        if s.date == day and s.start_time == start and s.end_time == end:
            return s
    return None


def release_booking_slot(db: Session, mentor_id: int, booking_id: int) -> Optional[SpecificSlotDB]:
    availability = get_availability(db, mentor_id)
    if availability is None:
        return None
    for s in availability.specific_slots:
        if s.booking_id == booking_id:
            s.is_booked = False
            s.booking_id = None
            return s
    return None
