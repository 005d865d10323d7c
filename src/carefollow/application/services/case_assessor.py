from __future__ import annotations

from collections.abc import Mapping

from carefollow.domain.catalog import MANDATORY_FIELDS, MandatoryField, is_known_value
from carefollow.domain.models.answers import AssessmentVerdict, StructuredAnswerSet

SERIOUS = "serious"
NON_SERIOUS = "non-serious"

TEMPORAL_ASSOCIATION = "Temporal association (onset within hours)"
POSITIVE_DECHALLENGE = "Positive dechallenge (improved after stopping)"
RECHALLENGE = "Rechallenge performed"
NO_CONFOUNDERS = "No confounders (no other medications)"

_SERIOUS_ATTENTION = frozenset({"hospital", "emergency"})
_SERIOUS_SYMPTOMS = frozenset({"breathing", "swelling"})
_EARLY_ONSET = frozenset({"immediate", "hours"})
_DECHALLENGE_OUTCOMES = frozenset({"resolved", "improved"})


class CaseAssessor:
    """Rule-based seriousness and causality assessment.

    Stateless; the same answers always produce the same verdict. Values
    outside the catalog do not raise, they just fail to trigger a rule.
    """

    def assess(self, answers: StructuredAnswerSet) -> AssessmentVerdict:
        symptoms = answers.symptoms or ()
        is_serious = (
            answers.medical_attention in _SERIOUS_ATTENTION
            or any(s in _SERIOUS_SYMPTOMS for s in symptoms)
        )
        seriousness = SERIOUS if is_serious else NON_SERIOUS

        return AssessmentVerdict(
            severity=answers.severity,
            seriousness=seriousness,
            causality_indicators=self.causality_indicators(answers),
            requires_escalation=is_serious and answers.outcome != "resolved",
        )

    @staticmethod
    def causality_indicators(answers: StructuredAnswerSet) -> tuple[str, ...]:
        indicators: list[str] = []
        if answers.time_to_onset in _EARLY_ONSET:
            indicators.append(TEMPORAL_ASSOCIATION)
        if answers.action_taken == "stopped" and answers.outcome in _DECHALLENGE_OUTCOMES:
            indicators.append(POSITIVE_DECHALLENGE)
        if answers.action_taken == "restarted":
            indicators.append(RECHALLENGE)
        if answers.concomitant_meds == "none":
            indicators.append(NO_CONFOUNDERS)
        return tuple(indicators)

    @staticmethod
    def unknown_values(answers: StructuredAnswerSet) -> list[str]:
        """``field=value`` pairs that fall outside the question catalog."""
        unknown: list[str] = []
        for name, value in answers.field_values().items():
            values = value if isinstance(value, list) else [value]
            unknown.extend(f"{name}={v}" for v in values if v and not is_known_value(name, v))
        return unknown

    @staticmethod
    def missing_fields(values: Mapping[str, object]) -> list[MandatoryField]:
        """Mandatory fields that are unset, empty or an empty list."""
        missing: list[MandatoryField] = []
        for mandatory in MANDATORY_FIELDS:
            value = values.get(mandatory.field)
            if not value or (isinstance(value, (list, tuple)) and len(value) == 0):
                missing.append(mandatory)
        return missing

    def case_values(
        self,
        answers: StructuredAnswerSet | None,
        verdict: AssessmentVerdict | None = None,
    ) -> dict[str, object]:
        """Field values of a case as seen by ``missing_fields``."""
        values: dict[str, object] = dict(answers.field_values()) if answers else {}
        values["seriousness"] = verdict.seriousness if verdict else None
        return values
