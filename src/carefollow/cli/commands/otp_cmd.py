from __future__ import annotations

import argparse

from rich.panel import Panel

from carefollow.application.services.code_delivery import reissue_code
from carefollow.application.services.verification_gate import VerificationGate, build_gate
from carefollow.cli.commands._common import require_initialized_project
from carefollow.cli.context import CLIContext
from carefollow.core.errors import NotFound
from carefollow.infrastructure.db.repos.case_repo import CaseFileRepo
from carefollow.infrastructure.db.repos.verification_repo import SqliteVerificationStore


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("otp", help="Support tools for one-time verification codes")
    otp_subparsers = parser.add_subparsers(dest="otp_command", required=True)

    issue_parser = otp_subparsers.add_parser("issue", help="Issue a fresh code for a case (manual sharing)")
    issue_parser.add_argument("case_id")
    issue_parser.set_defaults(handler=run_issue)

    verify_parser = otp_subparsers.add_parser("verify", help="Check a code on behalf of a patient")
    verify_parser.add_argument("case_id")
    verify_parser.add_argument("code")
    verify_parser.set_defaults(handler=run_verify)


def _gate(ctx: CLIContext) -> VerificationGate:
    return build_gate(SqliteVerificationStore(ctx.paths.db_path), ctx.settings)


def run_issue(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    case_repo = CaseFileRepo(ctx.paths.db_path)
    case = case_repo.get_by_id(args.case_id)
    if case is None:
        raise NotFound(f"Case not found: {args.case_id}")

    issued = reissue_code(case_repo, _gate(ctx), case)
    ctx.console.print(
        Panel.fit(
            "\n".join(
                [
                    f"Case: {case.case_reference}",
                    f"Code: [bold]{issued.secret}[/bold]",
                    f"Expires: {issued.expires_at.isoformat()}",
                ]
            ),
            title="Verification Code Issued",
        )
    )
    return 0


def run_verify(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    record = _gate(ctx).verify(args.case_id, args.code)
    ctx.console.print(f"[green]Verified[/green] {record.id} (attempts used: {record.attempts})")
    return 0
