from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from mentorconnect.deps import commit_or_rollback, get_db, get_or_404
from mentorconnect.models import UserDB
from mentorconnect.schemas import UserProfileUpdate, UserRead
from mentorconnect.security import get_current_user

router = APIRouter(prefix="/api/users", tags=["users"])


def filter_users(stmt, user_type: Optional[str] = None, approved: Optional[bool] = None,
                 exam_category: Optional[str] = None, search: Optional[str] = None):
    if user_type:
        stmt = stmt.where(UserDB.user_type == user_type)
    if approved is not None:
        stmt = stmt.where(UserDB.approved.is_(approved))
    if exam_category:
        stmt = stmt.where(UserDB.exam_category == exam_category)
    if search:
        like = f"%{search.lower()}%"
        stmt = stmt.where(or_(
            UserDB.name.ilike(like),
            UserDB.email.ilike(like),
            UserDB.exam_type.ilike(like),
            UserDB.exam_cleared.ilike(like),
        ))
    return stmt


@router.get("", response_model=list[UserRead], summary="Browse users (mentors with user_type=achiever&approved=true)")
def list_users(
    user_type: Optional[str] = None,
    approved: Optional[bool] = None,
    exam_category: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    stmt = filter_users(select(UserDB), user_type, approved, exam_category, search)
    stmt = stmt.order_by(UserDB.id).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.get("/email/{email}", response_model=UserRead)
def get_user_by_email(email: str, db: Session = Depends(get_db)):
    user = db.execute(select(UserDB).where(UserDB.email == email.lower())).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def apply_profile(user: UserDB, payload: UserProfileUpdate) -> None:
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(user, field, value)


@router.put("/profile", response_model=UserRead)
def update_profile(payload: UserProfileUpdate, user: UserDB = Depends(get_current_user),
                   db: Session = Depends(get_db)):
    apply_profile(user, payload)
    commit_or_rollback(db, "Profile update failed")
    db.refresh(user)
    return user


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, db: Session = Depends(get_db)):
    return get_or_404(db, UserDB, user_id, "User not found")


@router.put("/{user_id}", response_model=UserRead)
def update_user(user_id: int, payload: UserProfileUpdate, current: UserDB = Depends(get_current_user),
                db: Session = Depends(get_db)):
    if current.id != user_id and current.user_type != "admin":
        raise HTTPException(status_code=403, detail="Not allowed to update this user")
    user = get_or_404(db, UserDB, user_id, "User not found")
    apply_profile(user, payload)
    commit_or_rollback(db, "User update failed")
    db.refresh(user)
    return user
