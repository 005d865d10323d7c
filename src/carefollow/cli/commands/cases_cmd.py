from __future__ import annotations

import argparse

from rich.panel import Panel
from rich.table import Table

from carefollow.application.services.verification_gate import build_gate
from carefollow.cli.commands._common import require_initialized_project
from carefollow.cli.context import CLIContext
from carefollow.core.errors import NotFound
from carefollow.domain.models.case import KIND_ADVERSE_EVENT, KIND_FOLLOW_UP
from carefollow.infrastructure.db.repos.case_repo import CaseFileRepo
from carefollow.infrastructure.db.repos.verification_repo import SqliteVerificationStore


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("cases", help="Follow-up and adverse event case files")
    cases_subparsers = parser.add_subparsers(dest="cases_command", required=True)

    list_parser = cases_subparsers.add_parser("list", help="List case files")
    list_parser.add_argument("--kind", choices=[KIND_FOLLOW_UP, KIND_ADVERSE_EVENT])
    list_parser.add_argument("--limit", type=int, default=100)
    list_parser.set_defaults(handler=run_list)

    show_parser = cases_subparsers.add_parser("show", help="Show one case file")
    show_parser.add_argument("case_id")
    show_parser.add_argument(
        "--doctor",
        help="Owning doctor id; the summary is only shown to the owner after patient consent",
    )
    show_parser.set_defaults(handler=run_show)


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    cases = CaseFileRepo(ctx.paths.db_path).list_cases(kind=args.kind, limit=args.limit)

    out = Table(title=f"Cases ({len(cases)})")
    out.add_column("ID")
    out.add_column("Kind")
    out.add_column("Reference")
    out.add_column("Status")
    out.add_column("Drug")
    out.add_column("Urgent")
    out.add_column("Created")

    for c in cases:
        out.add_row(
            c.id,
            c.kind,
            c.case_reference,
            c.status,
            c.drug_name or "",
            "[red]yes[/red]" if c.is_urgent else "",
            c.created_at,
        )

    ctx.console.print(out)
    return 0


def run_show(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    case = CaseFileRepo(ctx.paths.db_path).get_by_id(args.case_id)
    if case is None:
        raise NotFound(f"Case not found: {args.case_id}")

    gate = build_gate(SqliteVerificationStore(ctx.paths.db_path), ctx.settings)
    record = gate.get(case.id)

    lines = [
        f"Reference: {case.case_reference}",
        f"Kind: {case.kind}",
        f"Status: {case.status}",
        f"Doctor: {case.doctor_id or '-'}",
        f"Drug: {case.drug_name or '-'}",
        f"Urgent: {'yes' if case.is_urgent else 'no'}",
        f"Verified: {'yes' if record and record.verified else 'no'}",
        f"Consent: {'yes' if record and record.consent else 'no'}",
        f"Created: {case.created_at}",
    ]
    if case.closed_at:
        lines.append(f"Closed: {case.closed_at} ({case.resolution or ''})")
    ctx.console.print(Panel.fit("\n".join(lines), title=f"Case {case.id}"))

    if args.doctor:
        gate.require_disclosable(case.id, args.doctor)
        ctx.console.print(Panel(case.summary or "[yellow]No summary recorded[/yellow]", title="Summary"))
    return 0
