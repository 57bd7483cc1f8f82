# vetclinic/models/client.py
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    ForeignKey,
    Text,
)
from sqlalchemy.orm import relationship

from vetclinic.db.base import Base, MYSQL_ARGS


class Owner(Base):
    """
    Pet owner (the billed client).
    user_id links the owner to a login for the account pages.
    """
    __tablename__ = "owners"
    __table_args__ = MYSQL_ARGS

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, unique=True)

    full_name = Column(String(200), nullable=False)
    email = Column(String(191), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(255), nullable=True)
    tax_id = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    patients = relationship("Patient", back_populates="owner")
    invoices = relationship("Invoice", back_populates="owner")


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = MYSQL_ARGS

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("owners.id"), nullable=False, index=True)

    name = Column(String(120), nullable=False)
    species = Column(String(60), nullable=True)
    breed = Column(String(120), nullable=True)
    birth_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    owner = relationship("Owner", back_populates="patients")
