from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from carefollow.application.services.case_assessor import CaseAssessor
from carefollow.application.services.case_summary import render_follow_up_summary
from carefollow.application.services.code_delivery import deliver_code, manual_code, reissue_code
from carefollow.application.services.prescription_service import PrescriptionService
from carefollow.application.services.verification_gate import VerificationGate
from carefollow.core.config import Settings
from carefollow.core.errors import Forbidden, GenerationError, NotFound, ValidationError
from carefollow.core.ids import new_uuid
from carefollow.core.time import now_utc_iso, to_iso
from carefollow.domain.models.answers import AssessmentVerdict
from carefollow.domain.models.case import (
    CASE_CLOSED,
    CASE_PENDING_VERIFICATION,
    CASE_READY_FOR_REVIEW,
    CASE_SUBMITTED,
    CASE_VERIFIED,
    KIND_FOLLOW_UP,
    CaseFile,
)
from carefollow.domain.models.verification import IssuedCode
from carefollow.domain.models.prescription import (
    PRESCRIPTION_COMPLETED,
    PRESCRIPTION_FOLLOW_UP_SENT,
    Prescription,
)
from carefollow.infrastructure.db.repos.case_repo import CaseFileRepo
from carefollow.infrastructure.generation.base import TextGenerator
from carefollow.infrastructure.messaging.channels import DeliveryChannel

logger = logging.getLogger(__name__)

DEFAULT_RESOLUTION = "Reviewed and closed"


@dataclass(slots=True)
class FollowUpStarted:
    follow_up_id: str
    case_reference: str
    patient_phone: str
    verification_link: str
    code_expires_at: str
    delivered: bool
    delivered_channels: list[str] = field(default_factory=list)
    code: str | None = None
    delivery_error: str | None = None


@dataclass(slots=True)
class FollowUpDrafts:
    follow_up_id: str
    case_reference: str
    prescription: dict[str, object]
    drafts: dict[str, str]
    personalized_questions: list[dict[str, object]]


@dataclass(slots=True)
class FollowUpSubmitted:
    follow_up_id: str
    case_reference: str
    status: str
    summary_ready: bool
    verdict: dict[str, object] | None = None


@dataclass(slots=True)
class FollowUpSummary:
    follow_up_id: str
    case_reference: str
    status: str
    prescription: dict[str, object]
    responses: dict[str, object]
    summary: str | None
    summary_error: str | None
    verdict: dict[str, object] | None
    submitted_at: str | None


class FollowUpService:
    """Prescription follow-up workflow: code issue, drafts, consent, summary."""

    def __init__(
        self,
        prescription_service: PrescriptionService,
        case_repo: CaseFileRepo,
        gate: VerificationGate,
        assessor: CaseAssessor,
        channel: DeliveryChannel,
        generator: TextGenerator,
        settings: Settings,
    ) -> None:
        self.prescription_service = prescription_service
        self.case_repo = case_repo
        self.gate = gate
        self.assessor = assessor
        self.channel = channel
        self.generator = generator
        self.settings = settings

    def start(self, prescription_id: str, doctor_id: str) -> FollowUpStarted:
        prescription = self.prescription_service.get(prescription_id)
        if prescription.doctor_id != doctor_id:
            raise Forbidden("This prescription does not belong to the requester")
        if not prescription.patient_phone:
            raise ValidationError("Prescription has no patient phone number")

        now = now_utc_iso()
        case = CaseFile(
            id=new_uuid(),
            kind=KIND_FOLLOW_UP,
            case_reference=prescription.case_reference,
            status=CASE_PENDING_VERIFICATION,
            created_at=now,
            updated_at=now,
            doctor_id=doctor_id,
            prescription_id=prescription.id,
            patient_phone=prescription.patient_phone,
            patient_name=prescription.patient_name,
            drug_name=prescription.medicine_name,
        )
        self.case_repo.insert(case)
        self.prescription_service.set_status(prescription.id, PRESCRIPTION_FOLLOW_UP_SENT)
        logger.info("Started follow-up %s for %s", case.id, prescription.case_reference)
        issued = self.gate.initiate(case.id, owner_id=doctor_id)
        return self._deliver(case, issued)

    def resend_code(self, follow_up_id: str, doctor_id: str) -> FollowUpStarted:
        case = self._require_case(follow_up_id)
        if case.doctor_id != doctor_id:
            raise Forbidden("This follow-up does not belong to the requester")
        issued = reissue_code(self.case_repo, self.gate, case)
        return self._deliver(case, issued)

    def verify(self, follow_up_id: str, code: str) -> None:
        case = self._require_case(follow_up_id)
        self.gate.verify(follow_up_id, code)
        if case.status == CASE_PENDING_VERIFICATION:
            self.case_repo.update_fields(case.id, {"status": CASE_VERIFIED, "updated_at": now_utc_iso()})

    def drafts(self, follow_up_id: str) -> FollowUpDrafts:
        """Draft statements and personalised questions for a verified patient.

        Drafts are generated once and cached on the case. A drafting failure
        propagates; a failure to personalise questions only drops them.
        """
        self.gate.require_unlocked(follow_up_id)
        case = self._require_case(follow_up_id)
        prescription = self.prescription_service.get(case.prescription_id or "")

        drafts = case.drafts
        if not drafts:
            drafts = self.generator.draft_statements(prescription)
            self.case_repo.update_fields(case.id, {"drafts": drafts, "updated_at": now_utc_iso()})

        questions = case.personalized_questions
        if not questions:
            try:
                questions = self.generator.personalized_questions(prescription)
            except GenerationError as exc:
                logger.warning("Personalised questions unavailable for %s: %s", case.id, exc)
                questions = []
            else:
                self.case_repo.update_fields(case.id, {"personalized_questions": questions})

        return FollowUpDrafts(
            follow_up_id=case.id,
            case_reference=case.case_reference,
            prescription=_prescription_payload(prescription),
            drafts=dict(drafts),
            personalized_questions=list(questions),
        )

    def submit(self, follow_up_id: str, responses: object, consent: object) -> FollowUpSubmitted:
        case = self._require_case(follow_up_id)
        record = self.gate.record_consent(follow_up_id, responses, consent)
        self.case_repo.update_fields(case.id, {"status": CASE_SUBMITTED, "updated_at": now_utc_iso()})

        # Consent is already stored; nothing below may undo it.
        verdict: AssessmentVerdict | None = None
        try:
            prescription = self.prescription_service.get(case.prescription_id or "")
            verdict = self.assessor.assess(record.answers)
            summary, summary_error = self._summarize(prescription, record.answers, verdict)
        except Exception as exc:
            logger.exception("Summary generation failed for follow-up %s", case.id)
            summary, summary_error = None, str(exc)

        status = CASE_READY_FOR_REVIEW if summary else CASE_SUBMITTED
        self.case_repo.update_fields(
            case.id,
            {
                "status": status,
                "summary": summary,
                "summary_error": summary_error,
                "verdict_json": json.dumps(verdict.to_dict()) if verdict else None,
                "updated_at": now_utc_iso(),
            },
        )
        return FollowUpSubmitted(
            follow_up_id=case.id,
            case_reference=case.case_reference,
            status=status,
            summary_ready=summary is not None,
            verdict=verdict.to_dict() if verdict else None,
        )

    def summary(self, follow_up_id: str, doctor_id: str) -> FollowUpSummary:
        case = self._require_case(follow_up_id)
        record = self.gate.require_disclosable(follow_up_id, doctor_id)
        prescription = self.prescription_service.get(case.prescription_id or "")
        return FollowUpSummary(
            follow_up_id=case.id,
            case_reference=case.case_reference,
            status=case.status,
            prescription=_prescription_payload(prescription),
            responses=record.answers.to_dict() if record.answers else {},
            summary=case.summary,
            summary_error=case.summary_error,
            verdict=json.loads(case.verdict_json) if case.verdict_json else None,
            submitted_at=to_iso(record.consented_at),
        )

    def close(self, follow_up_id: str, doctor_id: str, resolution: str | None = None) -> CaseFile:
        case = self._require_case(follow_up_id)
        self.gate.close(follow_up_id, doctor_id)
        if case.status == CASE_CLOSED:
            return case
        now = now_utc_iso()
        self.case_repo.update_fields(
            case.id,
            {
                "status": CASE_CLOSED,
                "resolution": (resolution or "").strip() or DEFAULT_RESOLUTION,
                "closed_at": now,
                "updated_at": now,
            },
        )
        if case.prescription_id:
            self.prescription_service.set_status(case.prescription_id, PRESCRIPTION_COMPLETED)
        return self._require_case(follow_up_id)

    def list_for_doctor(self, doctor_id: str, limit: int = 200) -> list[dict[str, object]]:
        rows: list[dict[str, object]] = []
        for case in self.case_repo.list_for_doctor(KIND_FOLLOW_UP, doctor_id, limit=limit):
            record = self.gate.get(case.id)
            rows.append(
                {
                    "id": case.id,
                    "case_reference": case.case_reference,
                    "prescription_id": case.prescription_id,
                    "patient_name": case.patient_name,
                    "medicine_name": case.drug_name,
                    "status": case.status,
                    "has_summary": bool(record and record.consent and case.summary),
                    "created_at": case.created_at,
                }
            )
        return rows

    def _deliver(self, case: CaseFile, issued: IssuedCode) -> FollowUpStarted:
        link = f"{self.settings.frontend_url.rstrip('/')}/verify/{case.id}"
        result = deliver_code(self.channel, case.patient_phone or "", issued, link, case.case_reference)
        if not result.delivered:
            logger.warning("Follow-up code for %s was not delivered; share it manually", case.case_reference)
        return FollowUpStarted(
            follow_up_id=case.id,
            case_reference=case.case_reference,
            patient_phone=case.patient_phone or "",
            verification_link=link,
            code_expires_at=to_iso(issued.expires_at) or "",
            delivered=result.delivered,
            delivered_channels=result.delivered_channels,
            code=manual_code(issued, result),
            delivery_error=result.error,
        )

    def _summarize(self, prescription: Prescription, answers, verdict: AssessmentVerdict) -> tuple[str, str | None]:
        try:
            return self.generator.doctor_summary(prescription, answers, verdict), None
        except GenerationError as exc:
            logger.warning("Falling back to template summary for %s: %s", prescription.case_reference, exc)
            return render_follow_up_summary(prescription, answers, verdict), str(exc)

    def _require_case(self, follow_up_id: str) -> CaseFile:
        case = self.case_repo.get_by_id(follow_up_id, kind=KIND_FOLLOW_UP)
        if case is None:
            raise NotFound(f"Follow-up not found: {follow_up_id}")
        return case


def _prescription_payload(prescription: Prescription) -> dict[str, object]:
    return {
        "id": prescription.id,
        "case_reference": prescription.case_reference,
        "medicine_name": prescription.medicine_name,
        "dosage": prescription.dosage,
        "duration": prescription.duration,
        "condition": prescription.condition,
        "patient_name": prescription.patient_name,
    }
