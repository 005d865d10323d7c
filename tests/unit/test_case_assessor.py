from carefollow.application.services.case_assessor import (
    NO_CONFOUNDERS,
    POSITIVE_DECHALLENGE,
    RECHALLENGE,
    TEMPORAL_ASSOCIATION,
    CaseAssessor,
)
from carefollow.domain.models.answers import StructuredAnswerSet


def test_hospitalisation_with_ongoing_outcome_needs_escalation() -> None:
    answers = StructuredAnswerSet.from_payload(
        {
            "medical_attention": "hospital",
            "outcome": "improved",
            "time_to_onset": "hours",
            "action_taken": "stopped",
        }
    )

    verdict = CaseAssessor().assess(answers)

    assert verdict.seriousness == "serious"
    assert verdict.requires_escalation is True
    assert verdict.causality_indicators == (TEMPORAL_ASSOCIATION, POSITIVE_DECHALLENGE)


def test_resolved_mild_case_is_non_serious() -> None:
    answers = StructuredAnswerSet.from_payload(
        {
            "medical_attention": "none",
            "symptoms": ["rash"],
            "outcome": "resolved",
            "concomitant_meds": "none",
            "severity": "mild",
        }
    )

    verdict = CaseAssessor().assess(answers)

    assert verdict.seriousness == "non-serious"
    assert verdict.requires_escalation is False
    assert verdict.severity == "mild"
    assert verdict.causality_indicators == (NO_CONFOUNDERS,)


def test_serious_symptom_alone_marks_case_serious() -> None:
    answers = StructuredAnswerSet.from_payload({"symptoms": ["nausea", "swelling"]})

    verdict = CaseAssessor().assess(answers)

    assert verdict.is_serious
    assert verdict.requires_escalation is True


def test_serious_but_resolved_is_not_escalated() -> None:
    answers = StructuredAnswerSet.from_payload({"medical_attention": "emergency", "outcome": "resolved"})

    verdict = CaseAssessor().assess(answers)

    assert verdict.seriousness == "serious"
    assert verdict.requires_escalation is False


def test_rechallenge_indicator() -> None:
    answers = StructuredAnswerSet.from_payload({"action_taken": "restarted", "outcome": "resolved"})

    assert CaseAssessor().assess(answers).causality_indicators == (RECHALLENGE,)


def test_assessment_is_deterministic() -> None:
    answers = StructuredAnswerSet.from_payload(
        {"symptoms": ["breathing"], "time_to_onset": "immediate", "concomitant_meds": "none"}
    )
    assessor = CaseAssessor()

    assert assessor.assess(answers) == assessor.assess(answers)


def test_out_of_domain_values_trigger_no_rule() -> None:
    answers = StructuredAnswerSet.from_payload(
        {"medical_attention": "ambulance", "symptoms": ["fainting"], "time_to_onset": "soon"}
    )

    verdict = CaseAssessor().assess(answers)

    assert verdict.seriousness == "non-serious"
    assert verdict.causality_indicators == ()
    assert answers.medical_attention == "ambulance"


def test_empty_answers_report_every_mandatory_field_missing() -> None:
    assessor = CaseAssessor()

    missing = assessor.missing_fields(assessor.case_values(None))

    assert [m.field for m in missing] == [
        "time_to_onset",
        "symptoms",
        "severity",
        "seriousness",
        "action_taken",
        "outcome",
        "concomitant_meds",
    ]


def test_missing_fields_treats_empty_list_as_missing() -> None:
    missing = CaseAssessor.missing_fields(
        {
            "time_to_onset": "hours",
            "symptoms": [],
            "severity": "mild",
            "seriousness": "non-serious",
            "action_taken": "continued",
            "outcome": "resolved",
            "concomitant_meds": "",
        }
    )

    assert [m.field for m in missing] == ["symptoms", "concomitant_meds"]
    assert missing[0].label == "Symptoms experienced"


def test_complete_answers_have_no_missing_fields() -> None:
    assessor = CaseAssessor()
    answers = StructuredAnswerSet.from_payload(
        {
            "time_to_onset": "hours",
            "symptoms": ["rash"],
            "severity": "mild",
            "action_taken": "continued",
            "outcome": "resolved",
            "concomitant_meds": "none",
        }
    )

    verdict = assessor.assess(answers)

    assert assessor.missing_fields(assessor.case_values(answers, verdict)) == []


def test_unknown_values_are_listed() -> None:
    answers = StructuredAnswerSet.from_payload({"symptoms": ["rash", "fainting"], "outcome": "gone"})

    assert CaseAssessor.unknown_values(answers) == ["symptoms=fainting", "outcome=gone"]


def test_full_causality_indicators_keep_fixed_order() -> None:
    answers = StructuredAnswerSet.from_payload(
        {
            "medical_attention": "hospital",
            "symptoms": ["breathing"],
            "outcome": "improved",
            "action_taken": "stopped",
            "concomitant_meds": "none",
            "time_to_onset": "hours",
        }
    )

    verdict = CaseAssessor().assess(answers)

    assert verdict.seriousness == "serious"
    assert verdict.requires_escalation is True
    assert list(verdict.causality_indicators) == [
        "Temporal association (onset within hours)",
        "Positive dechallenge (improved after stopping)",
        "No confounders (no other medications)",
    ]


def test_late_onset_with_other_prescriptions_has_no_indicators() -> None:
    answers = StructuredAnswerSet.from_payload(
        {
            "medical_attention": "none",
            "symptoms": ["headache"],
            "outcome": "resolved",
            "action_taken": "continued",
            "concomitant_meds": "prescription",
            "time_to_onset": "week_plus",
        }
    )

    verdict = CaseAssessor().assess(answers)

    assert verdict.seriousness == "non-serious"
    assert verdict.requires_escalation is False
    assert verdict.causality_indicators == ()
