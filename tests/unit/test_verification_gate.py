from datetime import datetime, timedelta, timezone

import pytest

from carefollow.application.services.verification_gate import VerificationGate
from carefollow.core.errors import (
    AttemptsExceeded,
    ConsentRequired,
    Expired,
    Forbidden,
    InvalidAnswers,
    InvalidCode,
    NotFound,
    PendingConsent,
    Unauthorized,
)
from carefollow.infrastructure.memory_store import InMemoryVerificationStore


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def _gate(**kwargs) -> tuple[VerificationGate, InMemoryVerificationStore, _Clock]:
    store = InMemoryVerificationStore()
    clock = _Clock()
    gate = VerificationGate(store, clock=clock, **kwargs)
    return gate, store, clock


def _wrong(secret: str) -> str:
    return "".join("1" if ch != "1" else "2" for ch in secret)


ANSWERS = {
    "time_to_onset": {"selected": "hours"},
    "symptoms": {"selected": ["rash"]},
    "severity": {"selected": "mild"},
}


def test_initiate_issues_numeric_code_with_ttl() -> None:
    gate, store, clock = _gate()

    issued = gate.initiate("rec-1", owner_id="doc-1")

    assert len(issued.secret) == 4
    assert issued.secret.isdigit()
    assert issued.expires_at == clock.now + timedelta(minutes=10)
    record = store.get("rec-1")
    assert record is not None
    assert record.verified is False
    assert record.attempts == 0
    assert record.owner_id == "doc-1"
    assert record.status == "initiated"


def test_code_length_is_configurable() -> None:
    gate, _, _ = _gate(code_length=6)
    assert len(gate.initiate("rec-1").secret) == 6


def test_verify_with_correct_code_unlocks_record() -> None:
    gate, _, _ = _gate()
    issued = gate.initiate("rec-1")

    assert gate.is_unlocked("rec-1") is False
    record = gate.verify("rec-1", issued.secret)

    assert record.verified is True
    assert record.status == "verified"
    assert gate.is_unlocked("rec-1") is True


def test_verify_unknown_record_is_not_found() -> None:
    gate, _, _ = _gate()
    with pytest.raises(NotFound):
        gate.verify("missing", "1234")
    assert gate.is_unlocked("missing") is False


def test_expiry_boundary_is_inclusive() -> None:
    gate, _, clock = _gate()
    issued = gate.initiate("rec-1")

    clock.now = issued.expires_at + timedelta(milliseconds=1)
    with pytest.raises(Expired):
        gate.verify("rec-1", issued.secret)

    clock.now = issued.expires_at - timedelta(milliseconds=1)
    assert gate.verify("rec-1", issued.secret).verified is True


def test_expiry_is_checked_before_attempts() -> None:
    gate, store, clock = _gate()
    issued = gate.initiate("rec-1")
    store.update("rec-1", attempts=5)
    clock.advance(minutes=11)

    with pytest.raises(Expired):
        gate.verify("rec-1", issued.secret)


def test_six_wrong_codes_lock_out_the_correct_code() -> None:
    gate, store, _ = _gate()
    issued = gate.initiate("rec-1")

    for _ in range(5):
        with pytest.raises(InvalidCode):
            gate.verify("rec-1", _wrong(issued.secret))
    with pytest.raises(AttemptsExceeded):
        gate.verify("rec-1", _wrong(issued.secret))
    with pytest.raises(AttemptsExceeded):
        gate.verify("rec-1", issued.secret)

    assert store.get("rec-1").attempts == 5
    assert gate.is_unlocked("rec-1") is False


def test_successful_attempt_is_counted() -> None:
    gate, store, _ = _gate()
    issued = gate.initiate("rec-1")

    with pytest.raises(InvalidCode):
        gate.verify("rec-1", _wrong(issued.secret))
    gate.verify("rec-1", issued.secret)

    assert store.get("rec-1").attempts == 2


def test_verify_on_verified_record_is_a_no_op() -> None:
    gate, store, clock = _gate()
    issued = gate.initiate("rec-1")
    gate.verify("rec-1", issued.secret)
    clock.advance(hours=1)

    record = gate.verify("rec-1", "0000")

    assert record.verified is True
    assert store.get("rec-1").attempts == 1


def test_reinitiate_resets_verification_and_issues_new_secret() -> None:
    gate, store, _ = _gate()
    first = gate.initiate("rec-1", owner_id="doc-1")
    gate.verify("rec-1", first.secret)
    gate.record_consent("rec-1", ANSWERS, True)

    second = gate.initiate("rec-1")
    record = store.get("rec-1")

    assert record.verified is False
    assert record.attempts == 0
    assert record.consent is False
    assert record.owner_id == "doc-1"
    assert record.answers is not None
    assert second.expires_at >= first.expires_at
    assert len({gate.initiate("rec-1").secret for _ in range(20)}) > 1
    with pytest.raises(PendingConsent):
        gate.require_disclosable("rec-1", "doc-1")


def test_record_consent_requires_unlock_first() -> None:
    gate, _, _ = _gate()
    gate.initiate("rec-1")

    with pytest.raises(Unauthorized):
        gate.record_consent("rec-1", ANSWERS, True)


@pytest.mark.parametrize("flag", ["true", 1, "yes", None, False])
def test_record_consent_needs_boolean_true(flag) -> None:
    gate, store, _ = _gate()
    issued = gate.initiate("rec-1")
    gate.verify("rec-1", issued.secret)

    with pytest.raises(ConsentRequired):
        gate.record_consent("rec-1", ANSWERS, flag)

    record = store.get("rec-1")
    assert record.consent is False
    assert record.answers is None


def test_record_consent_rejects_malformed_answers_without_writing() -> None:
    gate, store, _ = _gate()
    issued = gate.initiate("rec-1")
    gate.verify("rec-1", issued.secret)

    with pytest.raises(InvalidAnswers):
        gate.record_consent("rec-1", {"severity": ["mild", "severe"]}, True)

    assert store.get("rec-1").consent is False


def test_record_consent_stores_answers_and_marks_submitted() -> None:
    gate, store, clock = _gate()
    issued = gate.initiate("rec-1")
    gate.verify("rec-1", issued.secret)

    gate.record_consent("rec-1", ANSWERS, True)
    record = store.get("rec-1")

    assert record.consent is True
    assert record.consented_at == clock.now
    assert record.status == "submitted"
    assert record.answers.time_to_onset == "hours"
    assert record.answers.symptoms == ("rash",)


def test_second_submission_is_rejected() -> None:
    gate, _, _ = _gate()
    issued = gate.initiate("rec-1")
    gate.verify("rec-1", issued.secret)
    gate.record_consent("rec-1", ANSWERS, True)

    with pytest.raises(Unauthorized):
        gate.record_consent("rec-1", {"severity": "severe"}, True)


def test_disclosure_requires_ownership_and_consent() -> None:
    gate, _, _ = _gate()
    issued = gate.initiate("rec-1", owner_id="doc-1")
    gate.verify("rec-1", issued.secret)

    with pytest.raises(PendingConsent):
        gate.require_disclosable("rec-1", "doc-1")

    gate.record_consent("rec-1", ANSWERS, True)

    with pytest.raises(Forbidden):
        gate.require_disclosable("rec-1", "doc-2")
    with pytest.raises(Forbidden):
        gate.require_disclosable("rec-1", None)
    assert gate.is_disclosable("rec-1", "doc-1") is True


def test_close_only_after_submission_by_owner() -> None:
    gate, store, _ = _gate()
    issued = gate.initiate("rec-1", owner_id="doc-1")
    gate.verify("rec-1", issued.secret)

    with pytest.raises(PendingConsent):
        gate.close("rec-1", "doc-1")

    gate.record_consent("rec-1", ANSWERS, True)
    with pytest.raises(Forbidden):
        gate.close("rec-1", "doc-2")

    gate.close("rec-1", "doc-1")
    assert store.get("rec-1").status == "closed"


def test_closing_a_closed_case_is_a_no_op() -> None:
    gate, store, _ = _gate()
    issued = gate.initiate("rec-1", owner_id="doc-1")
    gate.verify("rec-1", issued.secret)
    gate.record_consent("rec-1", ANSWERS, True)
    gate.close("rec-1", "doc-1")

    record = gate.close("rec-1", "doc-1")

    assert record.status == "closed"
    assert store.get("rec-1").status == "closed"
    with pytest.raises(Forbidden):
        gate.close("rec-1", "doc-2")
