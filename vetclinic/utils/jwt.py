# vetclinic/utils/jwt.py
from datetime import datetime, timedelta
from typing import Optional

from jose import jwt

from vetclinic.core.config import settings


def create_access_token(subject: str,
                        expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": subject,  # user email
        "iat": now,
        "exp": now + (expires_delta or timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)
