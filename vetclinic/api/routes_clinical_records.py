# vetclinic/api/routes_clinical_records.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from vetclinic.api.deps import get_db, require_staff
from vetclinic.api.response import ok
from vetclinic.models.user import User
from vetclinic.schemas.clinical import ClinicalRecordIn, ClinicalRecordOut
from vetclinic.services import clinical_record_service as svc

router = APIRouter(prefix="/clinical-records", tags=["Clinical Records"])


@router.post("", response_model=ClinicalRecordOut, status_code=201)
def create_record(
        payload: ClinicalRecordIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return svc.create_clinical_record(db, payload, user=user)


@router.get("/{record_id}", response_model=ClinicalRecordOut)
def get_record(
        record_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return svc.get_clinical_record(db, record_id)


@router.put("/{record_id}", response_model=ClinicalRecordOut)
def update_record(
        record_id: int,
        payload: ClinicalRecordIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return svc.update_clinical_record(db, record_id, payload, user=user)


@router.delete("/{record_id}")
def delete_record(
        record_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    svc.delete_clinical_record(db, record_id, user=user)
    return ok({"id": record_id, "deleted": True})
