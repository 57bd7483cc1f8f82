# vetclinic/schemas/clinical.py
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConsumedItemIn(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=255)


class ClinicalRecordIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    patient_id: int
    record_date: Optional[date] = None
    record_type: str = Field("consultation", min_length=1, max_length=60)
    description: str = ""
    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    notes: Optional[str] = None

    # products used during the visit, consumed from stock
    items: List[ConsumedItemIn] = []


class ClinicalRecordItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    notes: Optional[str] = None


class ClinicalRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    record_date: date
    record_type: str
    description: str
    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    notes: Optional[str] = None
    invoice_id: Optional[int] = None
    vet_id: Optional[int] = None
    created_at: Optional[datetime] = None
    items: List[ClinicalRecordItemOut] = []
