from __future__ import annotations

from typing import Protocol

from carefollow.core.config import Settings
from carefollow.domain.models.answers import AssessmentVerdict, StructuredAnswerSet
from carefollow.domain.models.prescription import Prescription


class TextGenerator(Protocol):
    def personalized_questions(self, prescription: Prescription) -> list[dict[str, object]]: ...

    def draft_statements(self, prescription: Prescription) -> dict[str, str]: ...

    def doctor_summary(
        self,
        prescription: Prescription,
        answers: StructuredAnswerSet,
        verdict: AssessmentVerdict,
    ) -> str: ...


def build_generator(settings: Settings) -> TextGenerator:
    from carefollow.infrastructure.generation.openai_generator import OpenAIChatGenerator
    from carefollow.infrastructure.generation.template_generator import TemplateGenerator

    if not settings.llm_configured:
        return TemplateGenerator()
    return OpenAIChatGenerator(
        settings.llm_api_key,
        base_url=settings.llm_base_url,
        model=settings.llm_model,
        timeout=settings.llm_timeout_seconds,
    )
