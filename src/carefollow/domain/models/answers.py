from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from carefollow.core.errors import InvalidAnswers
from carefollow.domain.catalog import MULTI_VALUE_FIELDS, SINGLE_VALUE_FIELDS

_NOTES_FIELDS = {
    "symptoms": "symptoms_notes",
    "concomitant_meds": "concomitant_meds_notes",
}


@dataclass(frozen=True, slots=True)
class StructuredAnswerSet:
    time_to_onset: str | None = None
    symptoms: tuple[str, ...] = ()
    severity: str | None = None
    medical_attention: str | None = None
    action_taken: str | None = None
    outcome: str | None = None
    concomitant_meds: str | None = None
    symptoms_notes: str | None = None
    concomitant_meds_notes: str | None = None
    # Free-text confirmations (draft statements, personalised questions).
    statements: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_payload(cls, payload: object) -> StructuredAnswerSet:
        """Parse submitted answers.

        Accepts either the form shape ``{"outcome": {"selected": "resolved"}}``
        or the flat shape ``{"outcome": "resolved"}``. Only the value types are
        checked here; values outside the catalog are kept as given.
        """
        if isinstance(payload, StructuredAnswerSet):
            return payload
        if not isinstance(payload, Mapping):
            raise InvalidAnswers("Answers must be an object keyed by question id")

        values: dict[str, object] = {}
        statements: list[tuple[str, str]] = []

        for raw_key, raw_value in payload.items():
            key = str(raw_key)
            if key in SINGLE_VALUE_FIELDS:
                selected, notes = _split_entry(key, raw_value)
                values[key] = _single_value(key, selected)
                if notes is not None and key in _NOTES_FIELDS:
                    values[_NOTES_FIELDS[key]] = notes
            elif key in MULTI_VALUE_FIELDS:
                selected, notes = _split_entry(key, raw_value)
                values[key] = _multi_value(key, selected)
                if notes is not None and key in _NOTES_FIELDS:
                    values[_NOTES_FIELDS[key]] = notes
            elif key in _NOTES_FIELDS.values():
                values[key] = _text_value(key, raw_value)
            else:
                text = _statement_text(key, raw_value)
                if text is not None:
                    statements.append((key, text))

        return cls(statements=tuple(statements), **values)  # type: ignore[arg-type]

    def statement_map(self) -> dict[str, str]:
        return dict(self.statements)

    def field_values(self) -> dict[str, object]:
        return {
            "time_to_onset": self.time_to_onset,
            "symptoms": list(self.symptoms),
            "severity": self.severity,
            "medical_attention": self.medical_attention,
            "action_taken": self.action_taken,
            "outcome": self.outcome,
            "concomitant_meds": self.concomitant_meds,
        }

    def to_dict(self) -> dict[str, object]:
        payload = self.field_values()
        payload["symptoms_notes"] = self.symptoms_notes
        payload["concomitant_meds_notes"] = self.concomitant_meds_notes
        payload["statements"] = self.statement_map()
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> StructuredAnswerSet:
        """Inverse of ``to_dict`` for stored answers."""
        statements = payload.get("statements") or {}
        return cls(
            time_to_onset=_opt_str(payload.get("time_to_onset")),
            symptoms=tuple(str(s) for s in (payload.get("symptoms") or [])),
            severity=_opt_str(payload.get("severity")),
            medical_attention=_opt_str(payload.get("medical_attention")),
            action_taken=_opt_str(payload.get("action_taken")),
            outcome=_opt_str(payload.get("outcome")),
            concomitant_meds=_opt_str(payload.get("concomitant_meds")),
            symptoms_notes=_opt_str(payload.get("symptoms_notes")),
            concomitant_meds_notes=_opt_str(payload.get("concomitant_meds_notes")),
            statements=tuple((str(k), str(v)) for k, v in dict(statements).items()),
        )


@dataclass(frozen=True, slots=True)
class AssessmentVerdict:
    severity: str | None
    seriousness: str
    causality_indicators: tuple[str, ...] = field(default_factory=tuple)
    requires_escalation: bool = False

    @property
    def is_serious(self) -> bool:
        return self.seriousness == "serious"

    def to_dict(self) -> dict[str, object]:
        return {
            "severity": self.severity,
            "seriousness": self.seriousness,
            "causality_indicators": list(self.causality_indicators),
            "requires_escalation": self.requires_escalation,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> AssessmentVerdict:
        return cls(
            severity=_opt_str(payload.get("severity")),
            seriousness=str(payload.get("seriousness") or "non-serious"),
            causality_indicators=tuple(str(c) for c in (payload.get("causality_indicators") or [])),
            requires_escalation=bool(payload.get("requires_escalation")),
        )


def _split_entry(key: str, raw_value: object) -> tuple[object, str | None]:
    if isinstance(raw_value, Mapping):
        notes = raw_value.get("notes")
        if notes is not None and not isinstance(notes, str):
            raise InvalidAnswers(f"Notes for '{key}' must be text")
        return raw_value.get("selected"), (notes or None)
    return raw_value, None


def _single_value(key: str, value: object) -> str | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidAnswers(f"Answer '{key}' must be a single text value")
    return value


def _multi_value(key: str, value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise InvalidAnswers(f"Answer '{key}' must be a list of values")
    if not all(isinstance(v, str) for v in value):
        raise InvalidAnswers(f"Answer '{key}' must only contain text values")
    return tuple(value)


def _text_value(key: str, value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidAnswers(f"Answer '{key}' must be text")
    return value or None


def _statement_text(key: str, value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        selected = value.get("selected")
        notes = value.get("notes")
        if isinstance(selected, (list, tuple)) and all(isinstance(s, str) for s in selected):
            selected = ", ".join(selected)
        if selected is not None and not isinstance(selected, str):
            raise InvalidAnswers(f"Answer '{key}' has an unsupported value")
        if notes is not None and not isinstance(notes, str):
            raise InvalidAnswers(f"Notes for '{key}' must be text")
        parts = [p for p in (selected, notes) if p]
        return "; ".join(parts) if parts else None
    raise InvalidAnswers(f"Answer '{key}' has an unsupported value")


def _opt_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text else None
