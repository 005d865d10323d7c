import json
from pathlib import Path

import pytest

from carefollow.application.services.case_assessor import CaseAssessor
from carefollow.application.services.follow_up_service import FollowUpService
from carefollow.application.services.prescription_service import PrescriptionInput, PrescriptionService
from carefollow.application.services.verification_gate import VerificationGate
from carefollow.core.config import Settings
from carefollow.core.errors import (
    ConsentRequired,
    Forbidden,
    GenerationError,
    NotFound,
    PendingConsent,
    Unauthorized,
    ValidationError,
)
from carefollow.infrastructure.db.repos.case_repo import CaseFileRepo
from carefollow.infrastructure.db.repos.prescription_repo import PrescriptionRepo
from carefollow.infrastructure.db.repos.verification_repo import SqliteVerificationStore
from carefollow.infrastructure.db.sqlite import initialize_schema
from carefollow.infrastructure.generation.template_generator import TemplateGenerator
from carefollow.infrastructure.messaging.channels import DeliveryResult


class _FakeChannel:
    name = "fake"

    def __init__(self, delivered: bool = True) -> None:
        self.delivered = delivered
        self.sent: list[tuple[str, str, str, str]] = []

    def send(self, destination: str, secret: str, link: str, case_reference: str) -> DeliveryResult:
        self.sent.append((destination, secret, link, case_reference))
        return DeliveryResult(delivered=self.delivered, channel=self.name, error=None if self.delivered else "down")


class _FakeGenerator(TemplateGenerator):
    def __init__(self, fail_summary: bool = False, fail_drafts: bool = False) -> None:
        self.fail_summary = fail_summary
        self.fail_drafts = fail_drafts
        self.calls: list[str] = []

    def personalized_questions(self, prescription):
        self.calls.append("questions")
        return super().personalized_questions(prescription)

    def draft_statements(self, prescription):
        self.calls.append("drafts")
        if self.fail_drafts:
            raise GenerationError("model unavailable")
        return super().draft_statements(prescription)

    def doctor_summary(self, prescription, answers, verdict):
        self.calls.append("summary")
        if self.fail_summary:
            raise GenerationError("model unavailable")
        return "LLM SUMMARY"


def _bootstrap(tmp_path: Path, channel=None, generator=None):
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

    prescriptions = PrescriptionService(PrescriptionRepo(db_path))
    store = SqliteVerificationStore(db_path)
    channel = channel or _FakeChannel()
    generator = generator or _FakeGenerator()
    service = FollowUpService(
        prescription_service=prescriptions,
        case_repo=CaseFileRepo(db_path),
        gate=VerificationGate(store),
        assessor=CaseAssessor(),
        channel=channel,
        generator=generator,
        settings=Settings(frontend_url="https://care.example.org/"),
    )
    prescription = prescriptions.create(
        PrescriptionInput(
            doctor_id="doc-1",
            medicine_name="Amoxicillin",
            dosage="500mg",
            duration="7 days",
            patient_phone="9876543210",
            condition="Sinusitis",
        )
    )
    return service, prescription, store, channel, generator


def _started(tmp_path: Path, **kwargs):
    service, prescription, store, channel, generator = _bootstrap(tmp_path, **kwargs)
    started = service.start(prescription.id, "doc-1")
    secret = store.get(started.follow_up_id).secret
    return service, prescription, started, secret, channel, generator


def test_start_delivers_code_and_hides_secret(tmp_path: Path) -> None:
    service, prescription, started, secret, channel, generator = _started(tmp_path)

    assert started.delivered is True
    assert started.code is None
    assert started.delivered_channels == ["fake"]
    assert started.verification_link == f"https://care.example.org/verify/{started.follow_up_id}"
    assert channel.sent == [("9876543210", secret, started.verification_link, prescription.case_reference)]
    assert service.prescription_service.get(prescription.id).status == "follow_up_sent"
    assert generator.calls == []


def test_start_returns_code_for_manual_sharing_when_undelivered(tmp_path: Path) -> None:
    _, _, started, secret, _, _ = _started(tmp_path, channel=_FakeChannel(delivered=False))

    assert started.delivered is False
    assert started.code == secret


def test_start_checks_prescription_ownership(tmp_path: Path) -> None:
    service, prescription, _, _, _ = _bootstrap(tmp_path)

    with pytest.raises(Forbidden):
        service.start(prescription.id, "doc-2")
    with pytest.raises(NotFound):
        service.start("missing", "doc-1")


def test_drafts_require_verification(tmp_path: Path) -> None:
    service, _, started, _, _, generator = _started(tmp_path)

    with pytest.raises(Unauthorized):
        service.drafts(started.follow_up_id)
    assert generator.calls == []


def test_drafts_are_generated_once_and_cached(tmp_path: Path) -> None:
    service, _, started, secret, _, generator = _started(tmp_path)
    service.verify(started.follow_up_id, secret)

    first = service.drafts(started.follow_up_id)
    second = service.drafts(started.follow_up_id)

    assert first.drafts["medication_adherence"] == "I took Amoxicillin 500mg as prescribed"
    assert second.drafts == first.drafts
    assert len(first.personalized_questions) == 3
    assert generator.calls.count("drafts") == 1
    assert generator.calls.count("questions") == 1


def test_draft_generation_failure_surfaces(tmp_path: Path) -> None:
    service, _, started, secret, _, _ = _started(tmp_path, generator=_FakeGenerator(fail_drafts=True))
    service.verify(started.follow_up_id, secret)

    with pytest.raises(GenerationError):
        service.drafts(started.follow_up_id)


def test_submit_then_owner_reads_summary(tmp_path: Path) -> None:
    service, _, started, secret, _, _ = _started(tmp_path)
    service.verify(started.follow_up_id, secret)

    with pytest.raises(PendingConsent):
        service.summary(started.follow_up_id, "doc-1")

    submitted = service.submit(
        started.follow_up_id,
        {"medication_adherence": "I took Amoxicillin 500mg as prescribed", "outcome": "resolved"},
        True,
    )

    assert submitted.status == "ready_for_review"
    assert submitted.summary_ready is True
    view = service.summary(started.follow_up_id, "doc-1")
    assert view.summary == "LLM SUMMARY"
    assert view.responses["statements"] == {"medication_adherence": "I took Amoxicillin 500mg as prescribed"}
    assert view.submitted_at is not None
    with pytest.raises(Forbidden):
        service.summary(started.follow_up_id, "doc-2")


def test_submit_without_boolean_consent_is_rejected(tmp_path: Path) -> None:
    service, _, started, secret, _, _ = _started(tmp_path)
    service.verify(started.follow_up_id, secret)

    with pytest.raises(ConsentRequired):
        service.submit(started.follow_up_id, {"outcome": "resolved"}, "true")


def test_summary_failure_keeps_consent(tmp_path: Path) -> None:
    service, _, started, secret, _, _ = _started(tmp_path, generator=_FakeGenerator(fail_summary=True))
    service.verify(started.follow_up_id, secret)

    submitted = service.submit(started.follow_up_id, {"side_effects": "None"}, True)

    assert submitted.summary_ready is True
    view = service.summary(started.follow_up_id, "doc-1")
    assert view.summary_error == "model unavailable"
    assert "PATIENT-VERIFIED RESPONSES:" in (view.summary or "")
    assert service.gate.get(started.follow_up_id).consent is True


def test_close_marks_case_and_prescription(tmp_path: Path) -> None:
    service, prescription, started, secret, _, _ = _started(tmp_path)
    service.verify(started.follow_up_id, secret)
    service.submit(started.follow_up_id, {"outcome": "resolved"}, True)

    case = service.close(started.follow_up_id, "doc-1", None)

    assert case.status == "closed"
    assert case.resolution == "Reviewed and closed"
    assert service.prescription_service.get(prescription.id).status == "completed"


def test_resend_code_resets_verification(tmp_path: Path) -> None:
    service, _, started, secret, channel, _ = _started(tmp_path)
    service.verify(started.follow_up_id, secret)

    resent = service.resend_code(started.follow_up_id, "doc-1")

    assert len(channel.sent) == 2
    assert resent.follow_up_id == started.follow_up_id
    assert service.gate.is_unlocked(started.follow_up_id) is False
    with pytest.raises(Forbidden):
        service.resend_code(started.follow_up_id, "doc-2")


def test_list_for_doctor_flags_submitted_cases(tmp_path: Path) -> None:
    service, _, started, secret, _, _ = _started(tmp_path)

    assert service.list_for_doctor("doc-1")[0]["has_summary"] is False

    service.verify(started.follow_up_id, secret)
    service.submit(started.follow_up_id, {"outcome": "resolved"}, True)

    rows = service.list_for_doctor("doc-1")
    assert rows[0]["has_summary"] is True
    assert rows[0]["status"] == "ready_for_review"
    assert service.list_for_doctor("doc-2") == []


def test_verdict_is_stored_with_summary(tmp_path: Path) -> None:
    service, _, started, secret, _, _ = _started(tmp_path)
    service.verify(started.follow_up_id, secret)
    service.submit(started.follow_up_id, {"medical_attention": "hospital", "outcome": "improved"}, True)

    case = service.case_repo.get_by_id(started.follow_up_id)

    assert json.loads(case.verdict_json)["requires_escalation"] is True


def test_closing_twice_keeps_first_resolution(tmp_path: Path) -> None:
    service, _, started, secret, _, _ = _started(tmp_path)
    service.verify(started.follow_up_id, secret)
    service.submit(started.follow_up_id, {"outcome": "resolved"}, True)
    service.close(started.follow_up_id, "doc-1", "Dose reduced")

    case = service.close(started.follow_up_id, "doc-1", "Second pass")

    assert case.status == "closed"
    assert case.resolution == "Dose reduced"


def test_resend_code_refuses_closed_follow_up(tmp_path: Path) -> None:
    service, _, started, secret, channel, _ = _started(tmp_path)
    service.verify(started.follow_up_id, secret)
    service.submit(started.follow_up_id, {"outcome": "resolved"}, True)
    service.close(started.follow_up_id, "doc-1")

    with pytest.raises(ValidationError):
        service.resend_code(started.follow_up_id, "doc-1")
    assert len(channel.sent) == 1
    assert service.gate.get(started.follow_up_id).status == "closed"


def test_resend_code_returns_case_to_pending_verification(tmp_path: Path) -> None:
    service, _, started, secret, _, _ = _started(tmp_path)
    service.verify(started.follow_up_id, secret)
    service.submit(started.follow_up_id, {"outcome": "resolved"}, True)

    service.resend_code(started.follow_up_id, "doc-1")

    assert service.case_repo.get_by_id(started.follow_up_id).status == "pending_verification"
