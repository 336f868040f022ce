from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from mentorconnect.deps import commit_or_rollback, get_db, get_or_404
from mentorconnect.models import FollowDB, UserDB
from mentorconnect.schemas import FollowStatus, MessageResponse, UserPublic
from mentorconnect.security import get_current_user

router = APIRouter(prefix="/api/follow", tags=["follow"])


def find_follow(db: Session, follower_id: int, following_id: int):
    return db.execute(
        select(FollowDB).where(FollowDB.follower_id == follower_id, FollowDB.following_id == following_id)
    ).scalar_one_or_none()


@router.post("/{user_id}", response_model=MessageResponse)
def follow_user(user_id: int, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    if user_id == user.id:
        raise HTTPException(status_code=400, detail="You cannot follow yourself")
    get_or_404(db, UserDB, user_id, "User not found")

    if find_follow(db, user.id, user_id) is None:
        db.add(FollowDB(follower_id=user.id, following_id=user_id))
        commit_or_rollback(db, "Already following this user")
    return {"message": "Followed successfully"}


@router.delete("/{user_id}", response_model=MessageResponse)
def unfollow_user(user_id: int, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    follow = find_follow(db, user.id, user_id)
    if follow is not None:
        db.delete(follow)
        db.commit()
    return {"message": "Unfollowed successfully"}


@router.get("/{user_id}/followers", response_model=list[UserPublic])
def followers(user_id: int, _: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    stmt = (
        select(UserDB)
        .join(FollowDB, FollowDB.follower_id == UserDB.id)
        .where(FollowDB.following_id == user_id)
        .order_by(FollowDB.id)
    )
    return db.execute(stmt).scalars().all()


@router.get("/{user_id}/following", response_model=list[UserPublic])
def following(user_id: int, _: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    stmt = (
        select(UserDB)
        .join(FollowDB, FollowDB.following_id == UserDB.id)
        .where(FollowDB.follower_id == user_id)
        .order_by(FollowDB.id)
    )
    return db.execute(stmt).scalars().all()


@router.get("/{user_id}/status/{target_id}", response_model=FollowStatus)
def follow_status(user_id: int, target_id: int, _: UserDB = Depends(get_current_user),
                  db: Session = Depends(get_db)):
    return {"is_following": find_follow(db, user_id, target_id) is not None}
