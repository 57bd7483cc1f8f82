# vetclinic/api/routes_auth.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from vetclinic.api.deps import current_user, get_db
from vetclinic.core.security import verify_password
from vetclinic.models.user import User
from vetclinic.schemas.auth import LoginIn, MeOut, TokenOut
from vetclinic.utils.jwt import create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    """
    E-mail + password login for staff and client accounts.
    Returns a bearer token whose `sub` is the user's e-mail.
    """
    email = payload.email.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login for %s", email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User inactive")
    return TokenOut(access_token=create_access_token(user.email))


@router.get("/me", response_model=MeOut)
def me(user: User = Depends(current_user)):
    return MeOut(id=user.id, name=user.name, email=user.email,
                 role=user.role, is_staff=user.is_staff)
