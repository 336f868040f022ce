"""
Password hashing and bearer-token authentication.

Tokens are opaque random strings kept in the ``auth_tokens`` table; an
expired token is deleted the first time it is presented.
"""
import logging
import secrets
from datetime import timedelta
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from mentorconnect import config
from mentorconnect.deps import get_db
from mentorconnect.models import AuthTokenDB, UserDB, utcnow

logger = logging.getLogger("mentorconnect.auth")

bearer = HTTPBearer(auto_error=False)


def _to_bcrypt_secret(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_to_bcrypt_secret(password), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_to_bcrypt_secret(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


def issue_token(db: Session, user: UserDB) -> str:
    if user.user_type == "admin":
        ttl = timedelta(hours=config.ADMIN_TOKEN_TTL_HOURS)
    else:
        ttl = timedelta(days=config.TOKEN_TTL_DAYS)
    token = secrets.token_urlsafe(32)
    db.add(AuthTokenDB(token=token, user_id=user.id, expires_at=utcnow() + ttl))
    return token


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> UserDB:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")

    record = db.get(AuthTokenDB, credentials.credentials)
    if record is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    if record.expires_at < utcnow():
        db.delete(record)
        db.commit()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")

    return record.user


def require_admin(user: UserDB = Depends(get_current_user)) -> UserDB:
    if user.user_type != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def require_achiever(user: UserDB = Depends(get_current_user)) -> UserDB:
    if user.user_type != "achiever":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Achiever access required")
    return user


def require_aspirant(user: UserDB = Depends(get_current_user)) -> UserDB:
    if user.user_type != "aspirant":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only aspirants can book sessions")
    return user
