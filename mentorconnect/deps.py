import json
import logging
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mentorconnect import config, gateway
from mentorconnect.database import SessionLocal

logger = logging.getLogger("mentorconnect.deps")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit_or_rollback(db: Session, error_msg: str):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=error_msg)


def get_or_404(db: Session, model, obj_id: int, detail: str):
    obj = db.get(model, obj_id)
    if not obj:
        raise HTTPException(status_code=404, detail=detail)
    return obj


async def raw_body(request: Request) -> bytes:
    return await request.body()


def load_webhook(body: bytes, signature: Optional[str]) -> dict:
    """Check a gateway webhook signature and decode its event object."""
    if config.RAZORPAY_WEBHOOK_SECRET:
        if not gateway.verify_webhook_signature(body, signature):
            logger.warning("Rejected webhook with bad signature")
            raise HTTPException(status_code=400, detail="Invalid webhook signature")
    else:
        logger.warning("RAZORPAY_WEBHOOK_SECRET not set, accepting unsigned webhook")

    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    return event
