# vetclinic/api/deps.py
from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from vetclinic.core.config import settings
from vetclinic.db.session import SessionLocal
from vetclinic.models.client import Owner
from vetclinic.models.user import User


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =========================================================
# AUTH HELPERS
# =========================================================
def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_token(raw_token: str) -> dict:
    try:
        return jwt.decode(raw_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    raw = _extract_bearer(authorization)
    if not raw:
        raise HTTPException(status_code=401, detail="Missing token")

    payload = _decode_token(raw)
    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user: Optional[User] = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User inactive")
    return user


def require_staff(user: User = Depends(current_user)) -> User:
    """Dashboard routes: clinic staff only."""
    if not user.is_staff:
        raise HTTPException(status_code=403, detail="Not permitted")
    return user


def current_owner(
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
) -> Owner:
    """Account pages: the owner record linked to the logged-in user."""
    owner = db.query(Owner).filter(Owner.user_id == user.id).first()
    if not owner:
        raise HTTPException(status_code=403, detail="No client account linked to this user")
    return owner
