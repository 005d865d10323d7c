from __future__ import annotations

import json
import logging
import re
from typing import Any

from carefollow.core.config import DEFAULT_LLM_MODEL, DEFAULT_LLM_TIMEOUT_SECONDS
from carefollow.core.errors import ConfigurationError, GenerationError
from carefollow.domain.models.answers import AssessmentVerdict, StructuredAnswerSet
from carefollow.domain.models.prescription import Prescription
from carefollow.infrastructure.generation.prompts import (
    DRAFT_KEYS,
    doctor_summary_prompt,
    draft_statements_prompt,
    personalized_questions_prompt,
)

logger = logging.getLogger(__name__)

MAX_PERSONALIZED_QUESTIONS = 7
_JSON_OBJECT_RE = re.compile(r"\{.*\}", flags=re.DOTALL)


class OpenAIChatGenerator:
    """Chat-completions generator for any OpenAI-compatible endpoint (OpenAI, Groq, ...)."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        model: str = DEFAULT_LLM_MODEL,
        timeout: float = DEFAULT_LLM_TIMEOUT_SECONDS,
        client: Any | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self._client = client

    def personalized_questions(self, prescription: Prescription) -> list[dict[str, object]]:
        payload = self._complete_json(personalized_questions_prompt(prescription), temperature=0.3, max_tokens=2000)
        questions = payload.get("personalized_questions") or payload.get("personalizedQuestions") or []
        if not isinstance(questions, list):
            raise GenerationError("Generated questions were not a list")
        if len(questions) < 5 or len(questions) > 8:
            logger.warning("Generated %d personalised questions, expected 5-8", len(questions))
        return [q for q in questions if isinstance(q, dict)][:MAX_PERSONALIZED_QUESTIONS]

    def draft_statements(self, prescription: Prescription) -> dict[str, str]:
        payload = self._complete_json(draft_statements_prompt(prescription), temperature=0.3, max_tokens=500)
        drafts = {key: str(payload[key]) for key in DRAFT_KEYS if payload.get(key)}
        if not drafts:
            raise GenerationError("Generated drafts contained none of the expected statements")
        return drafts

    def doctor_summary(
        self,
        prescription: Prescription,
        answers: StructuredAnswerSet,
        verdict: AssessmentVerdict,
    ) -> str:
        text = self._complete(doctor_summary_prompt(prescription, answers, verdict), temperature=0.2, max_tokens=600)
        if not text.strip():
            raise GenerationError("Generated summary was empty")
        return text.strip()

    def _complete_json(self, prompt: str, *, temperature: float, max_tokens: int) -> dict[str, Any]:
        text = self._complete(prompt, temperature=temperature, max_tokens=max_tokens)
        match = _JSON_OBJECT_RE.search(text)
        if not match:
            raise GenerationError("Failed to parse generated response as JSON")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise GenerationError(f"Failed to parse generated response as JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise GenerationError("Generated JSON was not an object")
        return parsed

    def _complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        client = self._get_client()
        try:
            completion = client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as exc:
            raise GenerationError(f"Text generation request failed: {exc}") from exc
        if not completion.choices:
            raise GenerationError("Text generation returned no choices")
        return completion.choices[0].message.content or ""

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("No LLM API key configured")
            from openai import OpenAI

            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url, timeout=self.timeout)
        return self._client
