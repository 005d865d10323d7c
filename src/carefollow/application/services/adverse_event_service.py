from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from carefollow.application.services.case_assessor import CaseAssessor
from carefollow.application.services.case_summary import render_case_summary
from carefollow.application.services.code_delivery import deliver_code, manual_code
from carefollow.application.services.verification_gate import VerificationGate
from carefollow.core.config import Settings
from carefollow.core.errors import NotFound, ValidationError
from carefollow.core.ids import new_adverse_event_reference, new_uuid
from carefollow.core.time import now_utc_iso, to_iso
from carefollow.domain.catalog import QUESTIONS, URGENT_KEYWORDS, question_payloads
from carefollow.domain.models.answers import AssessmentVerdict
from carefollow.domain.models.case import (
    CASE_DATA_COLLECTED,
    CASE_FOLLOW_UP_SENT,
    CASE_REPORTED,
    KIND_ADVERSE_EVENT,
    CaseFile,
)
from carefollow.infrastructure.db.repos.case_repo import CaseFileRepo
from carefollow.infrastructure.db.repos.prescription_repo import PrescriptionRepo
from carefollow.infrastructure.messaging.channels import DeliveryChannel

logger = logging.getLogger(__name__)

ESTIMATED_TIME = "2-3 minutes"
_PREVIEW_CHARS = 100


@dataclass(slots=True)
class AdverseEventReport:
    event_description: str
    prescription_id: str | None = None
    patient_phone: str | None = None
    patient_name: str | None = None
    drug_name: str | None = None
    reporter_type: str | None = None
    doctor_id: str | None = None
    urgency_indicators: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AdverseEventReported:
    adverse_event_id: str
    case_reference: str
    status: str
    is_urgent: bool
    missing_fields: list[str]
    follow_up_triggered: bool
    verification_link: str | None = None
    delivered_channels: list[str] = field(default_factory=list)
    code: str | None = None
    code_expires_at: str | None = None


@dataclass(slots=True)
class AdverseEventSubmitted:
    adverse_event_id: str
    case_reference: str
    status: str
    verdict: dict[str, object] | None = None


def detect_urgency(description: str, indicators: list[str] | tuple[str, ...] = ()) -> bool:
    """True when the report text or an explicit indicator names an urgent keyword."""
    text = (description or "").lower()
    flagged = {str(item).strip().lower() for item in indicators}
    return any(keyword in text or keyword in flagged for keyword in URGENT_KEYWORDS)


class AdverseEventService:
    def __init__(
        self,
        case_repo: CaseFileRepo,
        prescription_repo: PrescriptionRepo,
        gate: VerificationGate,
        assessor: CaseAssessor,
        channel: DeliveryChannel,
        settings: Settings,
    ) -> None:
        self.case_repo = case_repo
        self.prescription_repo = prescription_repo
        self.gate = gate
        self.assessor = assessor
        self.channel = channel
        self.settings = settings

    def report(self, report: AdverseEventReport) -> AdverseEventReported:
        description = (report.event_description or "").strip()
        if not description:
            raise ValidationError("Event description is required")

        prescription = None
        if report.prescription_id:
            prescription = self.prescription_repo.get_by_id(report.prescription_id)
            if prescription is None:
                logger.warning("Adverse event references unknown prescription %s", report.prescription_id)

        patient_phone = report.patient_phone or (prescription.patient_phone if prescription else None)
        indicators = [str(i) for i in report.urgency_indicators]
        is_urgent = detect_urgency(description, indicators)

        now = now_utc_iso()
        case = CaseFile(
            id=new_uuid(),
            kind=KIND_ADVERSE_EVENT,
            case_reference=new_adverse_event_reference(),
            status=CASE_REPORTED,
            created_at=now,
            updated_at=now,
            doctor_id=report.doctor_id or (prescription.doctor_id if prescription else None),
            prescription_id=prescription.id if prescription else None,
            patient_phone=patient_phone,
            patient_name=report.patient_name or (prescription.patient_name if prescription else None),
            drug_name=report.drug_name or (prescription.medicine_name if prescription else None),
            initial_report=description,
            reporter_type=report.reporter_type or "patient",
            is_urgent=is_urgent,
            urgency_indicators=indicators,
        )
        self.case_repo.insert(case)
        if is_urgent:
            logger.warning("URGENT adverse event reported: %s", case.case_reference)
        else:
            logger.info("Adverse event reported: %s", case.case_reference)

        missing = self.assessor.missing_fields(self.assessor.case_values(None))
        outcome = AdverseEventReported(
            adverse_event_id=case.id,
            case_reference=case.case_reference,
            status=case.status,
            is_urgent=is_urgent,
            missing_fields=[m.label for m in missing],
            follow_up_triggered=False,
        )
        if patient_phone and missing:
            self._trigger_follow_up(case, outcome)
        return outcome

    def verify(self, adverse_event_id: str, code: str) -> None:
        self._require_case(adverse_event_id)
        self.gate.verify(adverse_event_id, code)

    def questions(self, adverse_event_id: str) -> dict[str, object]:
        self.gate.require_unlocked(adverse_event_id)
        case = self._require_case(adverse_event_id)
        return {
            "case_reference": case.case_reference,
            "drug_name": case.drug_name,
            "initial_report": case.initial_report,
            "questions": question_payloads(),
            "total_questions": len(QUESTIONS),
            "estimated_time": ESTIMATED_TIME,
        }

    def submit(self, adverse_event_id: str, responses: object, consent: object) -> AdverseEventSubmitted:
        case = self._require_case(adverse_event_id)
        record = self.gate.record_consent(adverse_event_id, responses, consent)
        self.case_repo.update_fields(case.id, {"status": CASE_DATA_COLLECTED, "updated_at": now_utc_iso()})

        verdict: AssessmentVerdict | None = None
        updates: dict[str, object] = {}
        unknown = self.assessor.unknown_values(record.answers)
        if unknown:
            logger.warning("Adverse event %s has values outside the catalog: %s", case.case_reference, ", ".join(unknown))

        try:
            verdict = self.assessor.assess(record.answers)
            updates["verdict_json"] = json.dumps(verdict.to_dict())
            updates["summary"] = render_case_summary(case, record.answers, verdict)
            updates["summary_error"] = None
        except Exception as exc:
            logger.exception("Assessment failed for adverse event %s", case.case_reference)
            updates["summary_error"] = str(exc)
        updates["updated_at"] = now_utc_iso()
        self.case_repo.update_fields(case.id, updates)

        if verdict is not None and verdict.requires_escalation:
            logger.warning("Adverse event %s requires expedited reporting", case.case_reference)

        return AdverseEventSubmitted(
            adverse_event_id=case.id,
            case_reference=case.case_reference,
            status=CASE_DATA_COLLECTED,
            verdict=verdict.to_dict() if verdict else None,
        )

    def case(self, adverse_event_id: str, doctor_id: str) -> dict[str, object]:
        case = self._require_case(adverse_event_id)
        record = self.gate.require_disclosable(adverse_event_id, doctor_id)
        verdict = AssessmentVerdict.from_dict(json.loads(case.verdict_json)) if case.verdict_json else None
        missing = self.assessor.missing_fields(self.assessor.case_values(record.answers, verdict))
        return {
            "id": case.id,
            "case_reference": case.case_reference,
            "status": case.status,
            "drug_name": case.drug_name,
            "patient_name": case.patient_name,
            "reporter_type": case.reporter_type,
            "initial_report": case.initial_report,
            "is_urgent": case.is_urgent,
            "urgency_indicators": list(case.urgency_indicators),
            "responses": record.answers.to_dict() if record.answers else {},
            "verdict": verdict.to_dict() if verdict else None,
            "summary": case.summary,
            "summary_error": case.summary_error,
            "missing_fields": [m.label for m in missing],
            "submitted_at": to_iso(record.consented_at),
            "created_at": case.created_at,
        }

    def list_for_doctor(self, doctor_id: str, limit: int = 200) -> list[dict[str, object]]:
        rows: list[dict[str, object]] = []
        for case in self.case_repo.list_for_doctor(KIND_ADVERSE_EVENT, doctor_id, limit=limit):
            record = self.gate.get(case.id)
            verdict = json.loads(case.verdict_json) if case.verdict_json else {}
            rows.append(
                {
                    "id": case.id,
                    "case_reference": case.case_reference,
                    "patient_name": case.patient_name,
                    "drug_name": case.drug_name,
                    "description": (case.initial_report or "")[:_PREVIEW_CHARS],
                    "status": case.status,
                    "is_urgent": case.is_urgent,
                    "severity": verdict.get("severity"),
                    "data_complete": bool(record and record.consent),
                    "created_at": case.created_at,
                }
            )
        return rows

    def _trigger_follow_up(self, case: CaseFile, outcome: AdverseEventReported) -> None:
        # A failed follow-up never blocks the report itself.
        try:
            issued = self.gate.initiate(case.id, owner_id=case.doctor_id)
            link = f"{self.settings.frontend_url.rstrip('/')}/adverse-event/{case.id}/follow-up"
            result = deliver_code(self.channel, case.patient_phone or "", issued, link, case.case_reference)
            self.case_repo.update_fields(case.id, {"status": CASE_FOLLOW_UP_SENT, "updated_at": now_utc_iso()})
        except Exception:
            logger.exception("Could not start follow-up for adverse event %s", case.case_reference)
            return

        outcome.status = CASE_FOLLOW_UP_SENT
        outcome.follow_up_triggered = True
        outcome.verification_link = link
        outcome.delivered_channels = result.delivered_channels
        outcome.code = manual_code(issued, result)
        outcome.code_expires_at = to_iso(issued.expires_at)

    def _require_case(self, adverse_event_id: str) -> CaseFile:
        case = self.case_repo.get_by_id(adverse_event_id, kind=KIND_ADVERSE_EVENT)
        if case is None:
            raise NotFound(f"Adverse event not found: {adverse_event_id}")
        return case
