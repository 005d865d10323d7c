from __future__ import annotations

from pathlib import Path

from carefollow.domain.models.prescription import Prescription
from carefollow.infrastructure.db.sqlite import get_connection


class PrescriptionRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, prescription: Prescription) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO prescriptions (
                    id, case_reference, doctor_id, medicine_name, dosage, duration,
                    patient_phone, patient_name, patient_email, condition, notes,
                    status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    prescription.id,
                    prescription.case_reference,
                    prescription.doctor_id,
                    prescription.medicine_name,
                    prescription.dosage,
                    prescription.duration,
                    prescription.patient_phone,
                    prescription.patient_name,
                    prescription.patient_email,
                    prescription.condition,
                    prescription.notes,
                    prescription.status,
                    prescription.created_at,
                    prescription.updated_at,
                ),
            )
            conn.commit()

    def get_by_id(self, prescription_id: str) -> Prescription | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM prescriptions WHERE id = ?",
                (prescription_id,),
            ).fetchone()
        return self._to_model(row) if row else None

    def list_for_doctor(self, doctor_id: str, limit: int = 200) -> list[Prescription]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM prescriptions
                WHERE doctor_id = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (doctor_id, limit),
            ).fetchall()
        return [self._to_model(r) for r in rows]

    def list_all(self, limit: int = 200) -> list[Prescription]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM prescriptions ORDER BY created_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._to_model(r) for r in rows]

    def update_fields(self, prescription_id: str, updates: dict[str, object]) -> None:
        allowed = {"patient_phone", "patient_name", "patient_email", "status", "updated_at"}
        unknown = set(updates) - allowed
        if unknown:
            raise ValueError(f"Unsupported prescription fields: {sorted(unknown)}")
        if not updates:
            return
        assignments = ", ".join(f"{name} = ?" for name in updates)
        with get_connection(self.db_path) as conn:
            conn.execute(
                f"UPDATE prescriptions SET {assignments} WHERE id = ?",
                (*updates.values(), prescription_id),
            )
            conn.commit()

    @staticmethod
    def _to_model(row) -> Prescription:
        return Prescription(
            id=row["id"],
            case_reference=row["case_reference"],
            doctor_id=row["doctor_id"],
            medicine_name=row["medicine_name"],
            dosage=row["dosage"],
            duration=row["duration"],
            patient_phone=row["patient_phone"],
            patient_name=row["patient_name"],
            patient_email=row["patient_email"],
            condition=row["condition"],
            notes=row["notes"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
