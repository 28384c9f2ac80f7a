from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from family_finance.core.clock import Clock, SystemClock
from family_finance.core.config import COOKIE_NAME
from family_finance.core.database import SessionLocal
from family_finance.core.models import User
from family_finance.core.security import TokenError, decode_token

bearer = HTTPBearer(auto_error=False)
system_clock = SystemClock()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_clock() -> Clock:
    return system_clock

def _token_from(request: Request, creds: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if creds and creds.scheme.lower() == "bearer":
        return creds.credentials
    return request.cookies.get(COOKIE_NAME)

def get_current_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    token = _token_from(request, creds)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthenticated")

    try:
        user_id = decode_token(token)
    except TokenError:
        raise HTTPException(status_code=401, detail="Invalid authentication token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="Unauthenticated")
    return user

def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "ADMIN":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user

def forbid_view_only(user: User, action: str) -> None:
    if user.role == "VIEW_ONLY":
        raise HTTPException(status_code=403, detail=f"View-only members cannot {action}")
