from __future__ import annotations

from carefollow.application.services.case_summary import render_follow_up_summary
from carefollow.domain.models.answers import AssessmentVerdict, StructuredAnswerSet
from carefollow.domain.models.prescription import Prescription


class TemplateGenerator:
    """Deterministic offline generator used when no LLM is configured."""

    def personalized_questions(self, prescription: Prescription) -> list[dict[str, object]]:
        condition = prescription.condition or "your condition"
        medicine = prescription.medicine_name
        return [
            {
                "id": "q1_primary_symptom",
                "question": f"How are the main symptoms of {condition} now compared to before treatment?",
                "category": "primary_symptom",
                "type": "single",
                "options": [
                    {"value": "much_better", "label": "Much better"},
                    {"value": "slightly_better", "label": "Slightly better"},
                    {"value": "same", "label": "About the same"},
                    {"value": "worse", "label": "Worse"},
                ],
                "required": True,
            },
            {
                "id": "q2_medication_response",
                "question": f"Have you noticed any unexpected effects since starting {medicine}?",
                "category": "medication_response",
                "type": "single",
                "options": [
                    {"value": "none", "label": "No unexpected effects"},
                    {"value": "mild", "label": "Mild effects"},
                    {"value": "troublesome", "label": "Effects that affect daily life"},
                ],
                "required": True,
            },
            {
                "id": "q3_functional",
                "question": "How well can you manage your normal daily activities?",
                "category": "functional",
                "type": "single",
                "options": [
                    {"value": "normal", "label": "As normal"},
                    {"value": "limited", "label": "Somewhat limited"},
                    {"value": "unable", "label": "Unable to manage most activities"},
                ],
                "required": True,
            },
        ]

    def draft_statements(self, prescription: Prescription) -> dict[str, str]:
        return {
            "medication_adherence": f"I took {prescription.medicine_name} {prescription.dosage} as prescribed",
            "symptom_status": "My symptoms have improved since starting treatment",
            "side_effects": "I experienced no side effects",
            "completion_status": f"I completed the full {prescription.duration} course",
        }

    def doctor_summary(
        self,
        prescription: Prescription,
        answers: StructuredAnswerSet,
        verdict: AssessmentVerdict,
    ) -> str:
        return render_follow_up_summary(prescription, answers, verdict)
