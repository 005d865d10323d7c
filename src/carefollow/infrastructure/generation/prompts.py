from __future__ import annotations

from carefollow.domain.models.answers import AssessmentVerdict, StructuredAnswerSet
from carefollow.domain.models.prescription import Prescription

SAFETY_PREFIX = """
CRITICAL CONSTRAINTS - YOU MUST FOLLOW THESE:
1. Do NOT provide medical advice under any circumstances.
2. Do NOT infer medical outcomes or diagnoses.
3. Only reformat the information that is explicitly provided.
4. If you are unsure about anything, output nothing or ask for clarification.
5. You are a formatting assistant, NOT a medical professional.
6. Never add information that was not explicitly provided.
7. Never suggest treatments, medications, or medical actions.
""".strip()

DRAFT_KEYS = ("medication_adherence", "symptom_status", "side_effects", "completion_status")


def personalized_questions_prompt(prescription: Prescription) -> str:
    return f"""{SAFETY_PREFIX}

TASK: Generate 5-6 specific, clinically actionable follow-up questions for a patient.
The questions must help the doctor detect treatment failure, adverse reactions,
complications or a worsening condition.

PRESCRIPTION DETAILS:
- Condition/Diagnosis: {prescription.condition or 'Not specified'}
- Medication: {prescription.medicine_name} - {prescription.dosage or 'As directed'}
- Duration: {prescription.duration or 'Not specified'}
- Doctor Notes: {prescription.notes or 'None'}

REQUIREMENTS:
1. Questions must be specific to the condition and the prescribed medication.
2. 3-4 options per question.
3. Avoid generic questions such as "Did you take your medicine?".
4. One question each for: primary symptom, red flags, functional impact,
   medication response, recovery indicators.

OUTPUT FORMAT (JSON only, no markdown):
{{
  "personalized_questions": [
    {{
      "id": "q1_primary_symptom",
      "question": "...",
      "category": "primary_symptom|red_flags|functional|medication_response|recovery",
      "type": "single",
      "options": [{{"value": "option1", "label": "..."}}],
      "clinical_relevance": "...",
      "required": true
    }}
  ]
}}"""


def draft_statements_prompt(prescription: Prescription) -> str:
    keys = ",\n".join(f'  "{key}": "draft statement here"' for key in DRAFT_KEYS)
    return f"""{SAFETY_PREFIX}

TASK: Generate DRAFT statements for a patient follow-up form.
They are shown as EDITABLE defaults; the patient confirms or changes each one.

PRESCRIPTION METADATA:
- Medicine Name: {prescription.medicine_name}
- Dosage: {prescription.dosage}
- Duration: {prescription.duration}
- Condition (if provided): {prescription.condition or 'Not specified'}

GENERATE:
1. medication_adherence, e.g. "I took [medicine] [dosage] as prescribed"
2. symptom_status, e.g. "My symptoms have [improved/stayed the same/worsened]"
3. side_effects, e.g. "I experienced [no side effects / the following side effects: ...]"
4. completion_status, e.g. "I [completed/did not complete] the full course"

OUTPUT FORMAT (JSON only, no markdown):
{{
{keys}
}}"""


def doctor_summary_prompt(
    prescription: Prescription,
    answers: StructuredAnswerSet,
    verdict: AssessmentVerdict,
) -> str:
    statements = answers.statement_map()
    response_lines = "\n".join(f"- {k}: {v}" for k, v in statements.items()) or "- None provided"
    structured = "\n".join(
        f"- {k}: {', '.join(v) if isinstance(v, list) else v}"
        for k, v in answers.field_values().items()
        if v
    ) or "- None provided"
    return f"""{SAFETY_PREFIX}

TASK: Format the following PATIENT-VERIFIED follow-up data into a clean summary for the doctor.
Do not add interpretation, advice or inferred information. Only reformat what is provided.

PRESCRIPTION INFO:
- Medicine: {prescription.medicine_name}
- Dosage: {prescription.dosage}
- Duration: {prescription.duration}
- Condition: {prescription.condition or 'Not specified'}

PATIENT-VERIFIED RESPONSES:
{response_lines}

STRUCTURED ANSWERS:
{structured}

RULE-BASED ASSESSMENT (copy as given):
- Seriousness: {verdict.seriousness}
- Requires expedited reporting: {'YES' if verdict.requires_escalation else 'No'}
- Causality indicators: {', '.join(verdict.causality_indicators) or 'None'}

OUTPUT: A clean, formatted summary."""
