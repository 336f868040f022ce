import logging
import secrets
import time
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mentorconnect import config
from mentorconnect.deps import commit_or_rollback, get_db, get_or_404
from mentorconnect.events import publish_event
from mentorconnect.models import BookingDB, MasterClassDB, UserDB
from mentorconnect.schemas import MasterClassCreate, MasterClassRead, MasterClassUpdate
from mentorconnect.security import get_current_user, require_achiever

logger = logging.getLogger("mentorconnect.masterclass")

router = APIRouter(prefix="/api/masterclass", tags=["master classes"])


def completed_bookings(db: Session, achiever_id: int) -> int:
    return db.execute(
        select(func.count(BookingDB.id)).where(BookingDB.achiever_id == achiever_id, BookingDB.status == "completed")
    ).scalar_one()


@router.post("", response_model=MasterClassRead, status_code=201)
def create_master_class(payload: MasterClassCreate, user: UserDB = Depends(require_achiever),
                        db: Session = Depends(get_db)):
    done = completed_bookings(db, user.id)
    if done < config.MASTERCLASS_REQUIRED_SESSIONS:
        raise HTTPException(
            status_code=403,
            detail=f"You need at least {config.MASTERCLASS_REQUIRED_SESSIONS} completed sessions "
                   f"to host a master class ({done} so far)",
        )

    master_class = MasterClassDB(
        **payload.model_dump(),
        achiever_id=user.id,
        achiever_name=user.name,
        max_participants=config.MASTERCLASS_MAX_PARTICIPANTS,
        status="upcoming",
        room_id=f"masterclass_{int(time.time() * 1000)}_{secrets.token_hex(4)}",
    )
    db.add(master_class)
    commit_or_rollback(db, "Master class create failed")
    db.refresh(master_class)
    logger.info("Achiever %s created master class %s", user.id, master_class.id)
    return master_class


@router.get("", response_model=list[MasterClassRead])
def list_master_classes(status: Optional[str] = None, achiever_id: Optional[int] = None,
                        db: Session = Depends(get_db)):
    stmt = select(MasterClassDB)
    if status:
        stmt = stmt.where(MasterClassDB.status == status)
    if achiever_id is not None:
        stmt = stmt.where(MasterClassDB.achiever_id == achiever_id)
    return db.execute(stmt.order_by(MasterClassDB.date, MasterClassDB.time)).scalars().all()


@router.get("/{class_id}", response_model=MasterClassRead)
def get_master_class(class_id: int, db: Session = Depends(get_db)):
    return get_or_404(db, MasterClassDB, class_id, "Master class not found")


@router.post("/{class_id}/enroll", response_model=MasterClassRead)
def enroll(class_id: int, background_tasks: BackgroundTasks, user: UserDB = Depends(get_current_user),
           db: Session = Depends(get_db)):
    master_class = get_or_404(db, MasterClassDB, class_id, "Master class not found")
    if user in master_class.participants:
        raise HTTPException(status_code=400, detail="Already enrolled in this master class")
    if len(master_class.participants) >= master_class.max_participants:
        raise HTTPException(status_code=400, detail="Master class is full")

    master_class.participants.append(user)
    commit_or_rollback(db, "Enrollment failed")
    db.refresh(master_class)
    background_tasks.add_task(publish_event, "masterclass.enrolled",
                              {"master_class_id": master_class.id, "user_id": user.id, "title": master_class.title})
    return master_class


@router.put("/{class_id}", response_model=MasterClassRead)
def update_master_class(class_id: int, payload: MasterClassUpdate, user: UserDB = Depends(get_current_user),
                        db: Session = Depends(get_db)):
    master_class = get_or_404(db, MasterClassDB, class_id, "Master class not found")
    if master_class.achiever_id != user.id:
        raise HTTPException(status_code=403, detail="Not authorized to update this master class")
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(master_class, field, value)
    commit_or_rollback(db, "Master class update failed")
    db.refresh(master_class)
    return master_class


@router.delete("/{class_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_master_class(class_id: int, user: UserDB = Depends(get_current_user),
                        db: Session = Depends(get_db)) -> Response:
    master_class = get_or_404(db, MasterClassDB, class_id, "Master class not found")
    if master_class.achiever_id != user.id and user.user_type != "admin":
        raise HTTPException(status_code=403, detail="Not authorized to delete this master class")
    db.delete(master_class)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
