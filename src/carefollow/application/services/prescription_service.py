from __future__ import annotations

import re
from dataclasses import dataclass

from carefollow.core.errors import NotFound, ValidationError
from carefollow.core.ids import new_case_reference, new_uuid
from carefollow.core.time import now_utc_iso
from carefollow.domain.models.prescription import PRESCRIPTION_ACTIVE, Prescription
from carefollow.infrastructure.db.repos.prescription_repo import PrescriptionRepo

MIN_PHONE_DIGITS = 10


@dataclass(slots=True)
class PrescriptionInput:
    doctor_id: str
    medicine_name: str
    dosage: str
    duration: str
    patient_phone: str
    patient_name: str | None = None
    patient_email: str | None = None
    condition: str | None = None
    notes: str | None = None


class PrescriptionService:
    def __init__(self, prescription_repo: PrescriptionRepo) -> None:
        self.prescription_repo = prescription_repo

    def create(self, data: PrescriptionInput) -> Prescription:
        required = {
            "medicine_name": data.medicine_name,
            "dosage": data.dosage,
            "duration": data.duration,
            "patient_phone": data.patient_phone,
            "doctor_id": data.doctor_id,
        }
        missing = [name for name, value in required.items() if not _opt_str(value)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        _validate_phone(data.patient_phone)

        now = now_utc_iso()
        prescription = Prescription(
            id=new_uuid(),
            case_reference=new_case_reference(),
            doctor_id=data.doctor_id.strip(),
            medicine_name=data.medicine_name.strip(),
            dosage=data.dosage.strip(),
            duration=data.duration.strip(),
            patient_phone=data.patient_phone.strip(),
            patient_name=_opt_str(data.patient_name),
            patient_email=_opt_str(data.patient_email),
            condition=_opt_str(data.condition),
            notes=_opt_str(data.notes),
            status=PRESCRIPTION_ACTIVE,
            created_at=now,
            updated_at=now,
        )
        self.prescription_repo.insert(prescription)
        return prescription

    def get(self, prescription_id: str) -> Prescription:
        prescription = self.prescription_repo.get_by_id(prescription_id)
        if prescription is None:
            raise NotFound(f"Prescription not found: {prescription_id}")
        return prescription

    def list_for_doctor(self, doctor_id: str, limit: int = 200) -> list[Prescription]:
        return self.prescription_repo.list_for_doctor(doctor_id, limit=limit)

    def list_all(self, limit: int = 200) -> list[Prescription]:
        return self.prescription_repo.list_all(limit=limit)

    def update_patient_details(
        self,
        prescription_id: str,
        *,
        patient_phone: str | None = None,
        patient_email: str | None = None,
        patient_name: str | None = None,
    ) -> Prescription:
        self.get(prescription_id)

        updates: dict[str, object] = {}
        if patient_phone is not None:
            _validate_phone(patient_phone)
            updates["patient_phone"] = patient_phone.strip()
        if patient_email is not None:
            updates["patient_email"] = _opt_str(patient_email)
        if patient_name is not None:
            updates["patient_name"] = _opt_str(patient_name)
        updates["updated_at"] = now_utc_iso()

        self.prescription_repo.update_fields(prescription_id, updates)
        return self.get(prescription_id)

    def set_status(self, prescription_id: str, status: str) -> None:
        self.prescription_repo.update_fields(prescription_id, {"status": status, "updated_at": now_utc_iso()})


def _validate_phone(phone: str) -> None:
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) < MIN_PHONE_DIGITS:
        raise ValidationError(f"Invalid phone number format (minimum {MIN_PHONE_DIGITS} digits required)")


def _opt_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None
