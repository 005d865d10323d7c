import json
from types import SimpleNamespace

import pytest

from carefollow.core.errors import ConfigurationError, GenerationError
from carefollow.domain.models.answers import AssessmentVerdict, StructuredAnswerSet
from carefollow.domain.models.prescription import Prescription
from carefollow.infrastructure.generation.openai_generator import OpenAIChatGenerator
from carefollow.infrastructure.generation.prompts import SAFETY_PREFIX


class _FakeCompletions:
    def __init__(self, replies: list[object]) -> None:
        self.replies = replies
        self.requests: list[dict] = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _generator(*replies: object) -> tuple[OpenAIChatGenerator, _FakeCompletions]:
    completions = _FakeCompletions(list(replies))
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIChatGenerator("key", model="test-model", client=client), completions


def _prescription() -> Prescription:
    return Prescription(
        id="rx-1",
        case_reference="CASE-ABCDEF12",
        doctor_id="doc-1",
        medicine_name="Amoxicillin",
        dosage="500mg",
        duration="7 days",
        patient_phone="9876543210",
        patient_name=None,
        patient_email=None,
        condition="Sinusitis",
        notes=None,
        status="active",
        created_at="2026-03-01T09:00:00+00:00",
        updated_at="2026-03-01T09:00:00+00:00",
    )


def test_personalized_questions_are_capped_and_prompted_safely() -> None:
    questions = [{"id": f"q{i}", "question": f"Question {i}?"} for i in range(9)]
    generator, completions = _generator("Here you go:\n" + json.dumps({"personalizedQuestions": questions}))

    result = generator.personalized_questions(_prescription())

    assert len(result) == 7
    request = completions.requests[0]
    assert request["model"] == "test-model"
    assert request["temperature"] == 0.3
    assert request["max_tokens"] == 2000
    assert request["messages"][0]["content"].startswith(SAFETY_PREFIX)


def test_draft_statements_keep_known_keys_only() -> None:
    reply = json.dumps({"medication_adherence": "I took it", "symptom_status": "Better", "extra": "ignored"})
    generator, completions = _generator(reply)

    drafts = generator.draft_statements(_prescription())

    assert drafts == {"medication_adherence": "I took it", "symptom_status": "Better"}
    assert completions.requests[0]["max_tokens"] == 500


def test_doctor_summary_uses_low_temperature() -> None:
    generator, completions = _generator("  Patient reports full recovery.  ")
    answers = StructuredAnswerSet.from_payload({"outcome": "resolved"})
    verdict = AssessmentVerdict(severity=None, seriousness="non-serious")

    summary = generator.doctor_summary(_prescription(), answers, verdict)

    assert summary == "Patient reports full recovery."
    assert completions.requests[0]["temperature"] == 0.2
    assert completions.requests[0]["max_tokens"] == 600


def test_unparseable_reply_raises_generation_error() -> None:
    generator, _ = _generator("no json here")

    with pytest.raises(GenerationError):
        generator.draft_statements(_prescription())


def test_transport_failure_raises_generation_error() -> None:
    generator, _ = _generator(RuntimeError("connection reset"))

    with pytest.raises(GenerationError, match="connection reset"):
        generator.doctor_summary(
            _prescription(),
            StructuredAnswerSet(),
            AssessmentVerdict(severity=None, seriousness="non-serious"),
        )


def test_missing_api_key_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        OpenAIChatGenerator(None).draft_statements(_prescription())
