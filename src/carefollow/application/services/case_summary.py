from __future__ import annotations

from carefollow.domain.models.answers import AssessmentVerdict, StructuredAnswerSet
from carefollow.domain.models.case import CaseFile
from carefollow.domain.models.prescription import Prescription


def render_case_summary(
    case: CaseFile,
    answers: StructuredAnswerSet,
    verdict: AssessmentVerdict,
) -> str:
    """Plain-text adverse event summary for regulatory review."""
    lines = [
        f"Case ID: {case.case_reference}",
        f"Drug: {case.drug_name or 'Not specified'}",
        "",
        "INITIAL REPORT:",
        case.initial_report or "",
        "",
        "FOLLOW-UP DATA:",
        f"- Time to onset: {_text(answers.time_to_onset)}",
        f"- Symptoms: {', '.join(answers.symptoms) or 'Not provided'}",
    ]
    if answers.symptoms_notes:
        lines.append(f"  Notes: {answers.symptoms_notes}")
    lines.extend(
        [
            f"- Severity: {_text(answers.severity)}",
            f"- Medical attention: {_text(answers.medical_attention)}",
            f"- Action taken: {_text(answers.action_taken)}",
            f"- Outcome: {_text(answers.outcome)}",
            f"- Concomitant medications: {_text(answers.concomitant_meds)}",
        ]
    )
    if answers.concomitant_meds_notes:
        lines.append(f"  Details: {answers.concomitant_meds_notes}")
    lines.extend(_assessment_lines(verdict))
    return "\n".join(lines)


def render_follow_up_summary(
    prescription: Prescription,
    answers: StructuredAnswerSet,
    verdict: AssessmentVerdict,
) -> str:
    """Doctor summary built only from patient-confirmed responses."""
    statements = answers.statement_map()
    lines = [
        f"Case ID: {prescription.case_reference}",
        f"Medicine: {prescription.medicine_name}",
        f"Dosage: {prescription.dosage}",
        f"Duration: {prescription.duration}",
        f"Condition: {prescription.condition or 'Not specified'}",
        "",
        "PATIENT-VERIFIED RESPONSES:",
    ]
    if statements:
        lines.extend(f"- {_label(key)}: {value}" for key, value in statements.items())
    else:
        lines.append("- No free-text responses provided")

    structured = [(k, v) for k, v in answers.field_values().items() if v]
    if structured:
        lines.extend(["", "STRUCTURED ANSWERS:"])
        for key, value in structured:
            rendered = ", ".join(value) if isinstance(value, list) else str(value)
            lines.append(f"- {_label(key)}: {rendered}")
        lines.extend(_assessment_lines(verdict))
    return "\n".join(lines)


def _assessment_lines(verdict: AssessmentVerdict) -> list[str]:
    lines = [
        "",
        "ASSESSMENT:",
        f"- Overall severity: {_text(verdict.severity)}",
        f"- Seriousness: {verdict.seriousness}",
        f"- Requires expedited reporting: {'YES' if verdict.requires_escalation else 'No'}",
        "",
        "CAUSALITY INDICATORS:",
    ]
    if verdict.causality_indicators:
        lines.extend(f"- {c}" for c in verdict.causality_indicators)
    else:
        lines.append("- None identified")
    return lines


def _text(value: str | None) -> str:
    return value if value else "Not provided"


def _label(key: str) -> str:
    return key.replace("_", " ").strip().capitalize()
