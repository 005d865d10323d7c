"""Fixed question catalog for structured follow-up answers.

The option values here are the enumerated domains used for answer
validation, the patient-facing question form and the assessment rules.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Option:
    value: str
    label: str
    urgent: bool = False
    serious: bool = False


@dataclass(frozen=True, slots=True)
class Question:
    id: str
    question: str
    subtext: str
    type: str
    options: tuple[Option, ...]
    data_fields: tuple[str, ...]
    text_prompt: str | None = None

    @property
    def values(self) -> frozenset[str]:
        return frozenset(option.value for option in self.options)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": self.id,
            "question": self.question,
            "subtext": self.subtext,
            "type": self.type,
            "options": [_option_dict(o) for o in self.options],
            "data_fields": list(self.data_fields),
        }
        if self.text_prompt:
            payload["text_prompt"] = self.text_prompt
        return payload


def _option_dict(option: Option) -> dict[str, object]:
    payload: dict[str, object] = {"value": option.value, "label": option.label}
    if option.urgent:
        payload["urgent"] = True
    if option.serious:
        payload["serious"] = True
    return payload


TIME_TO_ONSET = Question(
    id="time_to_onset",
    question="When did the reaction start after taking the medicine?",
    subtext="This helps us understand if the medicine caused the reaction",
    type="single",
    options=(
        Option("immediate", "Within minutes"),
        Option("hours", "Within hours"),
        Option("next_day", "Next day"),
        Option("few_days", "After a few days"),
        Option("week_plus", "After a week or more"),
    ),
    data_fields=("Time-to-onset", "Causality assessment"),
)

SYMPTOMS = Question(
    id="symptoms",
    question="What symptoms did you experience?",
    subtext="Select all that apply",
    type="multi",
    options=(
        Option("nausea", "Nausea / Vomiting"),
        Option("dizziness", "Dizziness"),
        Option("rash", "Skin rash / Itching"),
        Option("headache", "Headache"),
        Option("breathing", "Breathing difficulty", urgent=True),
        Option("swelling", "Swelling", urgent=True),
        Option("stomach", "Stomach pain"),
        Option("fatigue", "Fatigue / Weakness"),
        Option("other", "Other"),
    ),
    data_fields=("Event description", "Seriousness indicators"),
    text_prompt="Describe your symptoms:",
)

SEVERITY = Question(
    id="severity",
    question="How severe was the reaction?",
    subtext="Rate the intensity at its worst",
    type="single",
    options=(
        Option("mild", "Mild - Noticeable but manageable"),
        Option("moderate", "Moderate - Affected daily activities"),
        Option("severe", "Severe - Could not do normal activities"),
    ),
    data_fields=("Severity grading",),
)

MEDICAL_ATTENTION = Question(
    id="medical_attention",
    question="Did you require medical attention?",
    subtext="This helps classify the seriousness",
    type="single",
    options=(
        Option("none", "No, managed at home"),
        Option("doctor", "Visited a doctor"),
        Option("emergency", "Emergency room visit", serious=True),
        Option("hospital", "Hospitalized", serious=True),
    ),
    data_fields=("Serious vs non-serious classification",),
)

ACTION_TAKEN = Question(
    id="action_taken",
    question="What action was taken with the medicine?",
    subtext="This helps us understand what worked",
    type="single",
    options=(
        Option("continued", "Continued taking it"),
        Option("reduced", "Reduced the dose"),
        Option("stopped", "Stopped taking it"),
        Option("restarted", "Stopped then restarted"),
    ),
    data_fields=("Dechallenge information",),
)

OUTCOME = Question(
    id="outcome",
    question="What happened to the symptoms after this action?",
    subtext="Current status of your symptoms",
    type="single",
    options=(
        Option("resolved", "Completely resolved"),
        Option("improved", "Improved but not fully"),
        Option("unchanged", "No change"),
        Option("worsened", "Got worse"),
        Option("unknown", "Not sure yet"),
    ),
    data_fields=("Outcome", "Causality support"),
)

CONCOMITANT_MEDS = Question(
    id="concomitant_meds",
    question="Were you taking any other medicines or supplements?",
    subtext="Including over-the-counter and herbal products",
    type="single",
    options=(
        Option("none", "No other medicines"),
        Option("prescription", "Yes, prescription medicines"),
        Option("otc", "Yes, over-the-counter"),
        Option("supplements", "Yes, supplements/herbal"),
        Option("multiple", "Multiple other medicines"),
    ),
    data_fields=("Confounder assessment", "Interaction assessment"),
    text_prompt="List the other medicines:",
)

QUESTIONS: tuple[Question, ...] = (
    TIME_TO_ONSET,
    SYMPTOMS,
    SEVERITY,
    MEDICAL_ATTENTION,
    ACTION_TAKEN,
    OUTCOME,
    CONCOMITANT_MEDS,
)

QUESTIONS_BY_ID: dict[str, Question] = {q.id: q for q in QUESTIONS}

SINGLE_VALUE_FIELDS: tuple[str, ...] = tuple(q.id for q in QUESTIONS if q.type == "single")
MULTI_VALUE_FIELDS: tuple[str, ...] = tuple(q.id for q in QUESTIONS if q.type == "multi")


@dataclass(frozen=True, slots=True)
class MandatoryField:
    field: str
    label: str


# "seriousness" is derived by assessment rather than asked directly.
MANDATORY_FIELDS: tuple[MandatoryField, ...] = (
    MandatoryField("time_to_onset", "Time of onset"),
    MandatoryField("symptoms", "Symptoms experienced"),
    MandatoryField("severity", "Severity"),
    MandatoryField("seriousness", "Seriousness (hospitalization)"),
    MandatoryField("action_taken", "Action taken with drug"),
    MandatoryField("outcome", "Outcome"),
    MandatoryField("concomitant_meds", "Other medications"),
)

URGENT_KEYWORDS: tuple[str, ...] = (
    "breathing",
    "swelling",
    "unconscious",
    "seizure",
    "chest pain",
    "anaphylaxis",
    "severe",
)


def question_payloads() -> list[dict[str, object]]:
    return [q.to_dict() for q in QUESTIONS]


def domain_for(field_name: str) -> frozenset[str]:
    question = QUESTIONS_BY_ID.get(field_name)
    return question.values if question else frozenset()


def is_known_value(field_name: str, value: object) -> bool:
    return isinstance(value, str) and value in domain_for(field_name)

