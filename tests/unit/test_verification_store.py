from datetime import datetime, timedelta, timezone
from pathlib import Path

from carefollow.application.services.verification_gate import VerificationGate
from carefollow.domain.models.answers import StructuredAnswerSet
from carefollow.domain.models.verification import VerificationRecord
from carefollow.infrastructure.db.repos.verification_repo import SqliteVerificationStore
from carefollow.infrastructure.db.sqlite import initialize_schema


def _store(tmp_path: Path) -> SqliteVerificationStore:
    db_path = tmp_path / "carefollow.db"
    schema_path = (
        Path(__file__).resolve().parents[2]
        / "src"
        / "carefollow"
        / "infrastructure"
        / "db"
        / "schema.sql"
    )
    initialize_schema(db_path, schema_path)
    return SqliteVerificationStore(db_path)


def test_set_then_get_round_trips_a_record(tmp_path: Path) -> None:
    store = _store(tmp_path)
    expires = datetime(2026, 3, 1, 9, 10, tzinfo=timezone.utc)

    store.set(VerificationRecord(id="rec-1", secret="0042", secret_expires_at=expires, owner_id="doc-1"))
    record = store.get("rec-1")

    assert record is not None
    assert record.secret == "0042"
    assert record.secret_expires_at == expires
    assert record.verified is False
    assert record.owner_id == "doc-1"
    assert store.get("missing") is None


def test_update_persists_flags_timestamps_and_answers(tmp_path: Path) -> None:
    store = _store(tmp_path)
    now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
    store.set(VerificationRecord(id="rec-1", secret="1111", secret_expires_at=now + timedelta(minutes=10)))

    answers = StructuredAnswerSet.from_payload({"outcome": "resolved", "symptoms": ["rash"]})
    store.update("rec-1", attempts=2, verified=True, verified_at=now, consent=True, answers=answers)
    record = store.get("rec-1")

    assert record.attempts == 2
    assert record.verified is True
    assert record.verified_at == now
    assert record.consent is True
    assert record.answers == answers


def test_gate_runs_against_sqlite_store(tmp_path: Path) -> None:
    store = _store(tmp_path)
    gate = VerificationGate(store)

    issued = gate.initiate("rec-1", owner_id="doc-1")
    gate.verify("rec-1", issued.secret)
    gate.record_consent("rec-1", {"severity": "mild"}, True)

    assert gate.require_disclosable("rec-1", "doc-1").answers.severity == "mild"


def test_initialize_schema_twice_keeps_existing_records(tmp_path: Path) -> None:
    store = _store(tmp_path)
    expires = datetime(2026, 3, 1, 9, 10, tzinfo=timezone.utc)
    store.set(VerificationRecord(id="rec-1", secret="0042", secret_expires_at=expires))

    initialize_schema(store.db_path)

    assert store.get("rec-1") is not None
