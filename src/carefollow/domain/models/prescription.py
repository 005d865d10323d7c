from __future__ import annotations

from dataclasses import dataclass

PRESCRIPTION_ACTIVE = "active"
PRESCRIPTION_FOLLOW_UP_SENT = "follow_up_sent"
PRESCRIPTION_COMPLETED = "completed"


@dataclass(slots=True)
class Prescription:
    id: str
    case_reference: str
    doctor_id: str
    medicine_name: str
    dosage: str
    duration: str
    patient_phone: str
    patient_name: str | None
    patient_email: str | None
    condition: str | None
    notes: str | None
    status: str
    created_at: str
    updated_at: str
