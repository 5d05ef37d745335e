"""
Caller authentication: admin session JWTs and the shared scheduler token.
"""
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

SCHEDULER_TOKEN_HEADER = "X-Sync-Token"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign an admin session token; sub is the user email"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.AUTH_ALGORITHM)


def _user_from_token(db: Session, token: str) -> Optional[User]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.AUTH_ALGORITHM])
    except JWTError:
        return None
    email = payload.get("sub")
    if not email:
        return None
    return db.query(User).filter(User.email == email).first()


def _unauthorized(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Admin session dependency"""
    if not credentials:
        raise _unauthorized("Authentication required")
    user = _user_from_token(db, credentials.credentials)
    if not user:
        raise _unauthorized("Invalid or expired token")
    return user


def is_scheduler_token(value: Optional[str]) -> bool:
    """Constant-time match against SYNC_AUTH_TOKEN. Always False while the token is unset."""
    expected = settings.SYNC_AUTH_TOKEN
    if not expected or not value:
        return False
    return hmac.compare_digest(value.encode(), expected.encode())


@dataclass
class SyncCaller:
    kind: str  # "scheduler" or "admin"
    user: Optional[User] = None

    @property
    def is_scheduler(self) -> bool:
        return self.kind == "scheduler"

    @property
    def store_id(self) -> Optional[str]:
        return self.user.store_id if self.user else None


def get_sync_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> SyncCaller:
    """
    Scheduler: X-Sync-Token header or Bearer SYNC_AUTH_TOKEN.
    Admin: Bearer session JWT of a user. Anything else is 401.
    """
    if is_scheduler_token(request.headers.get(SCHEDULER_TOKEN_HEADER)):
        return SyncCaller(kind="scheduler")
    if credentials:
        if is_scheduler_token(credentials.credentials):
            return SyncCaller(kind="scheduler")
        user = _user_from_token(db, credentials.credentials)
        if user:
            return SyncCaller(kind="admin", user=user)
    logger.warning("Unauthorized sync attempt from %s", request.client.host if request.client else "unknown")
    raise _unauthorized("Unauthorized. Provide a scheduler token or an admin session.")
