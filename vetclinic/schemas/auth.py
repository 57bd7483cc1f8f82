# vetclinic/schemas/auth.py
from pydantic import BaseModel, Field


class LoginIn(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: int
    name: str
    email: str
    role: str
    is_staff: bool
