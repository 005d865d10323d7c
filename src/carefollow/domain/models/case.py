from __future__ import annotations

from dataclasses import dataclass, field

KIND_FOLLOW_UP = "follow_up"
KIND_ADVERSE_EVENT = "adverse_event"

# Follow-up workflow
CASE_PENDING_VERIFICATION = "pending_verification"
CASE_VERIFIED = "verified"
CASE_SUBMITTED = "submitted"
CASE_READY_FOR_REVIEW = "ready_for_review"

# Adverse-event workflow
CASE_REPORTED = "reported"
CASE_FOLLOW_UP_SENT = "follow_up_sent"
CASE_DATA_COLLECTED = "data_collected"

CASE_CLOSED = "closed"


@dataclass(slots=True)
class CaseFile:
    id: str
    kind: str
    case_reference: str
    status: str
    created_at: str
    updated_at: str
    doctor_id: str | None = None
    prescription_id: str | None = None
    patient_phone: str | None = None
    patient_name: str | None = None
    drug_name: str | None = None
    initial_report: str | None = None
    reporter_type: str | None = None
    is_urgent: bool = False
    urgency_indicators: list[str] = field(default_factory=list)
    personalized_questions: list[dict[str, object]] = field(default_factory=list)
    drafts: dict[str, str] | None = None
    verdict_json: str | None = None
    summary: str | None = None
    summary_error: str | None = None
    resolution: str | None = None
    closed_at: str | None = None
