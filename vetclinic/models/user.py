# vetclinic/models/user.py
from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from vetclinic.db.base import Base, MYSQL_ARGS

STAFF_ROLES = {"admin", "vet", "staff"}


class User(Base):
    __tablename__ = "users"
    __table_args__ = MYSQL_ARGS

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(191), unique=True,
                   nullable=False)  # <= 191, no index=True
    password_hash = Column(String(255), nullable=False, default="")

    # admin | vet | staff | client
    role = Column(String(20), nullable=False, default="staff")

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_staff(self) -> bool:
        return (self.role or "") in STAFF_ROLES
