from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from mentorconnect.deps import commit_or_rollback, get_db, get_or_404
from mentorconnect.models import MentorPostDB, PostCommentDB, UserDB
from mentorconnect.schemas import CommentCreate, CommentRead, LikeResult, PostCreate, PostRead
from mentorconnect.security import get_current_user, require_achiever

router = APIRouter(prefix="/api/mentorposts", tags=["mentor posts"])


@router.post("", response_model=PostRead, status_code=201)
def create_post(payload: PostCreate, user: UserDB = Depends(require_achiever), db: Session = Depends(get_db)):
    post = MentorPostDB(mentor_id=user.id, mentor_name=user.name, **payload.model_dump())
    db.add(post)
    commit_or_rollback(db, "Post create failed")
    db.refresh(post)
    return post


@router.get("", response_model=list[PostRead])
def list_posts(mentor_id: Optional[int] = None, limit: int = 50, offset: int = 0, db: Session = Depends(get_db)):
    stmt = select(MentorPostDB)
    if mentor_id is not None:
        stmt = stmt.where(MentorPostDB.mentor_id == mentor_id)
    stmt = stmt.order_by(MentorPostDB.created_at.desc(), MentorPostDB.id.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.post("/{post_id}/like", response_model=LikeResult)
def toggle_like(post_id: int, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    post = get_or_404(db, MentorPostDB, post_id, "Post not found")
    if user in post.liked_by:
        post.liked_by.remove(user)
        post.likes = max(0, post.likes - 1)
        liked = False
    else:
        post.liked_by.append(user)
        post.likes += 1
        liked = True
    commit_or_rollback(db, "Like update failed")
    return {"likes": post.likes, "is_liked": liked}


@router.post("/{post_id}/comments", response_model=CommentRead, status_code=201)
def add_comment(post_id: int, payload: CommentCreate, user: UserDB = Depends(get_current_user),
                db: Session = Depends(get_db)):
    post = get_or_404(db, MentorPostDB, post_id, "Post not found")
    comment = PostCommentDB(user_id=user.id, user_name=user.name, comment=payload.comment)
    post.comments.append(comment)
    commit_or_rollback(db, "Comment create failed")
    db.refresh(comment)
    return comment


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(post_id: int, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)) -> Response:
    post = get_or_404(db, MentorPostDB, post_id, "Post not found")
    if post.mentor_id != user.id and user.user_type != "admin":
        raise HTTPException(status_code=403, detail="Not authorized to delete this post")
    db.delete(post)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
