# vetclinic/services/clinical_record_service.py
from __future__ import annotations

import logging
from datetime import date

from fastapi import HTTPException
from sqlalchemy.orm import Session, selectinload

from vetclinic.models.client import Patient
from vetclinic.models.clinical import ClinicalRecord
from vetclinic.models.user import User
from vetclinic.schemas.clinical import ClinicalRecordIn
from vetclinic.services.clinical_consumption import (
    replace_clinical_record_consumption,
    reverse_consumption_for_clinical_record,
)
from vetclinic.services.tx import commit_or_500, field_error, rollback_on_error

logger = logging.getLogger(__name__)


def get_clinical_record(db: Session, record_id: int) -> ClinicalRecord:
    rec = (db.query(ClinicalRecord).options(selectinload(
        ClinicalRecord.items)).filter(ClinicalRecord.id == record_id).first())
    if not rec:
        raise HTTPException(status_code=404, detail="Clinical record not found")
    return rec


def _apply_fields(db: Session, rec: ClinicalRecord,
                  payload: ClinicalRecordIn) -> None:
    if not db.get(Patient, payload.patient_id):
        raise field_error(422, "Invalid clinical record",
                          patient_id="Patient not found")
    rec.patient_id = payload.patient_id
    rec.record_date = payload.record_date or rec.record_date or date.today()
    rec.record_type = payload.record_type
    rec.description = payload.description or ""
    rec.diagnosis = payload.diagnosis
    rec.treatment = payload.treatment
    rec.notes = payload.notes


@rollback_on_error
def create_clinical_record(db: Session, payload: ClinicalRecordIn, *,
                           user: User) -> ClinicalRecord:
    rec = ClinicalRecord(vet_id=user.id)
    _apply_fields(db, rec, payload)
    db.add(rec)
    db.flush()

    replace_clinical_record_consumption(db,
                                        record=rec,
                                        items=payload.items,
                                        user=user)

    commit_or_500(db, "creating the clinical record")
    db.refresh(rec)
    return rec


@rollback_on_error
def update_clinical_record(db: Session, record_id: int,
                           payload: ClinicalRecordIn, *,
                           user: User) -> ClinicalRecord:
    """Edits the record and swaps its consumed products (reverse, then re-apply)."""
    rec = get_clinical_record(db, record_id)
    _apply_fields(db, rec, payload)

    replace_clinical_record_consumption(db,
                                        record=rec,
                                        items=payload.items,
                                        user=user)

    commit_or_500(db, "updating the clinical record")
    db.refresh(rec)
    return rec


@rollback_on_error
def delete_clinical_record(db: Session, record_id: int, *, user: User) -> None:
    rec = get_clinical_record(db, record_id)
    reverse_consumption_for_clinical_record(db, record_id=rec.id, user=user)
    db.delete(rec)
    commit_or_500(db, "deleting the clinical record")
    logger.info("Clinical record %s deleted by user %s", record_id, user.id)
