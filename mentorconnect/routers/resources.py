from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from mentorconnect.deps import commit_or_rollback, get_db, get_or_404
from mentorconnect.models import ResourceDB, UserDB
from mentorconnect.schemas import DownloadResult, LikeResult, ResourceCreate, ResourceRead
from mentorconnect.security import get_current_user

router = APIRouter(prefix="/api/resources", tags=["resources"])


@router.post("", response_model=ResourceRead, status_code=201)
def create_resource(payload: ResourceCreate, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    if user.user_type not in ("achiever", "admin"):
        raise HTTPException(status_code=403, detail="Only achievers can upload resources")
    resource = ResourceDB(**payload.model_dump(), uploaded_by=user.id, uploader_name=user.name, is_approved=True)
    db.add(resource)
    commit_or_rollback(db, "Resource create failed")
    db.refresh(resource)
    return resource


@router.get("", response_model=list[ResourceRead])
def list_resources(category: Optional[str] = None, exam_type: Optional[str] = None, search: Optional[str] = None,
                   db: Session = Depends(get_db)):
    stmt = select(ResourceDB).where(ResourceDB.is_approved.is_(True))
    if category and category != "All":
        stmt = stmt.where(ResourceDB.category == category)
    if exam_type and exam_type != "All":
        stmt = stmt.where(ResourceDB.exam_type == exam_type)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(ResourceDB.title.ilike(like), ResourceDB.description.ilike(like)))
    return db.execute(stmt.order_by(ResourceDB.created_at.desc(), ResourceDB.id.desc())).scalars().all()


@router.get("/{resource_id}", response_model=ResourceRead)
def get_resource(resource_id: int, db: Session = Depends(get_db)):
    return get_or_404(db, ResourceDB, resource_id, "Resource not found")


@router.post("/{resource_id}/like", response_model=LikeResult)
def toggle_like(resource_id: int, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    resource = get_or_404(db, ResourceDB, resource_id, "Resource not found")
    if user in resource.liked_by:
        resource.liked_by.remove(user)
        resource.likes = max(0, resource.likes - 1)
        liked = False
    else:
        resource.liked_by.append(user)
        resource.likes += 1
        liked = True
    commit_or_rollback(db, "Like update failed")
    return {"likes": resource.likes, "is_liked": liked}


@router.post("/{resource_id}/download", response_model=DownloadResult)
def download(resource_id: int, user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    resource = get_or_404(db, ResourceDB, resource_id, "Resource not found")
    resource.downloads += 1
    if user not in resource.downloaded_by:
        resource.downloaded_by.append(user)
    commit_or_rollback(db, "Download update failed")
    return {"downloads": resource.downloads}


@router.delete("/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_resource(resource_id: int, user: UserDB = Depends(get_current_user),
                    db: Session = Depends(get_db)) -> Response:
    resource = get_or_404(db, ResourceDB, resource_id, "Resource not found")
    if resource.uploaded_by != user.id and user.user_type != "admin":
        raise HTTPException(status_code=403, detail="Not authorized to delete this resource")
    db.delete(resource)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
