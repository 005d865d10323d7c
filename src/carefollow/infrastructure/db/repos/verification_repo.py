from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from carefollow.core.time import parse_iso, to_iso
from carefollow.domain.models.answers import StructuredAnswerSet
from carefollow.domain.models.verification import VerificationRecord
from carefollow.infrastructure.db.sqlite import get_connection

_COLUMNS = (
    "id",
    "owner_id",
    "status",
    "secret",
    "secret_expires_at",
    "verified",
    "verified_at",
    "attempts",
    "consent",
    "consented_at",
    "answers_json",
)

_UPDATABLE = {
    "owner_id": "owner_id",
    "status": "status",
    "secret": "secret",
    "secret_expires_at": "secret_expires_at",
    "verified": "verified",
    "verified_at": "verified_at",
    "attempts": "attempts",
    "consent": "consent",
    "consented_at": "consented_at",
    "answers": "answers_json",
}


class SqliteVerificationStore:
    """SQLite-backed record store for the verification gate."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def get(self, record_id: str) -> VerificationRecord | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM verification_records WHERE id = ?",
                (record_id,),
            ).fetchone()
        return self._to_record(row) if row else None

    def set(self, record: VerificationRecord) -> None:
        values = (
            record.id,
            record.owner_id,
            record.status,
            record.secret,
            to_iso(record.secret_expires_at),
            int(record.verified),
            to_iso(record.verified_at),
            int(record.attempts),
            int(record.consent),
            to_iso(record.consented_at),
            _answers_json(record.answers),
        )
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with get_connection(self.db_path) as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO verification_records ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                values,
            )
            conn.commit()

    def update(self, record_id: str, **fields: object) -> None:
        if not fields:
            return
        assignments: list[str] = []
        params: list[object] = []
        for name, value in fields.items():
            column = _UPDATABLE.get(name)
            if column is None:
                raise ValueError(f"Unknown verification record field: {name}")
            assignments.append(f"{column} = ?")
            params.append(_to_column_value(name, value))
        params.append(record_id)
        with get_connection(self.db_path) as conn:
            conn.execute(
                f"UPDATE verification_records SET {', '.join(assignments)} WHERE id = ?",
                params,
            )
            conn.commit()

    @staticmethod
    def _to_record(row) -> VerificationRecord:
        answers_raw = row["answers_json"]
        return VerificationRecord(
            id=row["id"],
            owner_id=row["owner_id"],
            status=row["status"],
            secret=row["secret"],
            secret_expires_at=parse_iso(row["secret_expires_at"]),
            verified=bool(row["verified"]),
            verified_at=parse_iso(row["verified_at"]),
            attempts=int(row["attempts"]),
            consent=bool(row["consent"]),
            consented_at=parse_iso(row["consented_at"]),
            answers=StructuredAnswerSet.from_dict(json.loads(answers_raw)) if answers_raw else None,
        )


def _answers_json(answers: StructuredAnswerSet | None) -> str | None:
    if answers is None:
        return None
    return json.dumps(answers.to_dict(), ensure_ascii=True, sort_keys=True)


def _to_column_value(name: str, value: object) -> object:
    if name == "answers":
        return _answers_json(value)  # type: ignore[arg-type]
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, bool):
        return int(value)
    return value
