from __future__ import annotations

import argparse
import json
from pathlib import Path

from rich.panel import Panel

from carefollow.application.services.case_assessor import CaseAssessor
from carefollow.cli.context import CLIContext
from carefollow.core.errors import ValidationError
from carefollow.domain.models.answers import StructuredAnswerSet


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("assess", help="Assess a JSON file of structured answers")
    parser.add_argument("file", help="JSON object keyed by question id")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    path = Path(args.file).expanduser().resolve()
    if not path.exists() or not path.is_file():
        raise ValidationError(f"Answers file not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Answers file is not valid JSON: {exc}") from exc

    assessor = CaseAssessor()
    answers = StructuredAnswerSet.from_payload(payload)
    verdict = assessor.assess(answers)
    missing = assessor.missing_fields(assessor.case_values(answers, verdict))

    lines = [
        f"Severity: {verdict.severity or 'Not provided'}",
        f"Seriousness: {verdict.seriousness}",
        f"Requires expedited reporting: {'[red]YES[/red]' if verdict.requires_escalation else 'No'}",
        "",
        "Causality indicators:",
    ]
    lines.extend(f"  - {c}" for c in verdict.causality_indicators or ("None identified",))
    if missing:
        lines.extend(["", "Missing fields:"])
        lines.extend(f"  - {m.label}" for m in missing)

    ctx.console.print(Panel.fit("\n".join(lines), title="Assessment"))
    return 0
