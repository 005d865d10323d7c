from __future__ import annotations

import json
from pathlib import Path

from carefollow.domain.models.case import CaseFile
from carefollow.infrastructure.db.sqlite import get_connection

_JSON_FIELDS = {
    "urgency_indicators": "urgency_indicators_json",
    "personalized_questions": "personalized_questions_json",
    "drafts": "drafts_json",
}

_PLAIN_FIELDS = {
    "status",
    "doctor_id",
    "patient_phone",
    "patient_name",
    "drug_name",
    "verdict_json",
    "summary",
    "summary_error",
    "resolution",
    "updated_at",
    "closed_at",
}


class CaseFileRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, case: CaseFile) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO case_files (
                    id, kind, case_reference, status, doctor_id, prescription_id,
                    patient_phone, patient_name, drug_name, initial_report, reporter_type,
                    is_urgent, urgency_indicators_json, personalized_questions_json,
                    drafts_json, verdict_json, summary, summary_error, resolution,
                    created_at, updated_at, closed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    case.id,
                    case.kind,
                    case.case_reference,
                    case.status,
                    case.doctor_id,
                    case.prescription_id,
                    case.patient_phone,
                    case.patient_name,
                    case.drug_name,
                    case.initial_report,
                    case.reporter_type,
                    int(case.is_urgent),
                    json.dumps(case.urgency_indicators, ensure_ascii=True),
                    json.dumps(case.personalized_questions, ensure_ascii=True),
                    json.dumps(case.drafts, ensure_ascii=True) if case.drafts is not None else None,
                    case.verdict_json,
                    case.summary,
                    case.summary_error,
                    case.resolution,
                    case.created_at,
                    case.updated_at,
                    case.closed_at,
                ),
            )
            conn.commit()

    def get_by_id(self, case_id: str, kind: str | None = None) -> CaseFile | None:
        query = "SELECT * FROM case_files WHERE id = ?"
        params: list[object] = [case_id]
        if kind is not None:
            query += " AND kind = ?"
            params.append(kind)
        with get_connection(self.db_path) as conn:
            row = conn.execute(query, params).fetchone()
        return self._to_model(row) if row else None

    def list_for_doctor(self, kind: str, doctor_id: str, limit: int = 200) -> list[CaseFile]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM case_files
                WHERE kind = ? AND doctor_id = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (kind, doctor_id, limit),
            ).fetchall()
        return [self._to_model(r) for r in rows]

    def list_cases(self, kind: str | None = None, limit: int = 200) -> list[CaseFile]:
        query = "SELECT * FROM case_files"
        params: list[object] = []
        if kind is not None:
            query += " WHERE kind = ?"
            params.append(kind)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        with get_connection(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._to_model(r) for r in rows]

    def update_fields(self, case_id: str, updates: dict[str, object]) -> None:
        if not updates:
            return
        assignments: list[str] = []
        params: list[object] = []
        for name, value in updates.items():
            if name in _JSON_FIELDS:
                assignments.append(f"{_JSON_FIELDS[name]} = ?")
                params.append(json.dumps(value, ensure_ascii=True) if value is not None else None)
            elif name in _PLAIN_FIELDS:
                assignments.append(f"{name} = ?")
                params.append(value)
            else:
                raise ValueError(f"Unsupported case field: {name}")
        params.append(case_id)
        with get_connection(self.db_path) as conn:
            conn.execute(
                f"UPDATE case_files SET {', '.join(assignments)} WHERE id = ?",
                params,
            )
            conn.commit()

    @staticmethod
    def _to_model(row) -> CaseFile:
        drafts_raw = row["drafts_json"]
        return CaseFile(
            id=row["id"],
            kind=row["kind"],
            case_reference=row["case_reference"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            doctor_id=row["doctor_id"],
            prescription_id=row["prescription_id"],
            patient_phone=row["patient_phone"],
            patient_name=row["patient_name"],
            drug_name=row["drug_name"],
            initial_report=row["initial_report"],
            reporter_type=row["reporter_type"],
            is_urgent=bool(row["is_urgent"]),
            urgency_indicators=json.loads(row["urgency_indicators_json"] or "[]"),
            personalized_questions=json.loads(row["personalized_questions_json"] or "[]"),
            drafts=json.loads(drafts_raw) if drafts_raw else None,
            verdict_json=row["verdict_json"],
            summary=row["summary"],
            summary_error=row["summary_error"],
            resolution=row["resolution"],
            closed_at=row["closed_at"],
        )
