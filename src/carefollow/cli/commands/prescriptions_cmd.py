from __future__ import annotations

import argparse

from rich.panel import Panel
from rich.table import Table

from carefollow.application.services.prescription_service import PrescriptionInput, PrescriptionService
from carefollow.cli.commands._common import require_initialized_project
from carefollow.cli.context import CLIContext
from carefollow.infrastructure.db.repos.prescription_repo import PrescriptionRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("prescriptions", help="Prescription records")
    rx_subparsers = parser.add_subparsers(dest="prescriptions_command", required=True)

    list_parser = rx_subparsers.add_parser("list", help="List prescriptions")
    list_parser.add_argument("--doctor", help="Only prescriptions written by this doctor id")
    list_parser.add_argument("--limit", type=int, default=100)
    list_parser.set_defaults(handler=run_list)

    add_parser = rx_subparsers.add_parser("add", help="Record a prescription")
    add_parser.add_argument("--doctor", required=True)
    add_parser.add_argument("--medicine", required=True)
    add_parser.add_argument("--dosage", required=True)
    add_parser.add_argument("--duration", required=True)
    add_parser.add_argument("--phone", required=True)
    add_parser.add_argument("--patient-name")
    add_parser.add_argument("--condition")
    add_parser.set_defaults(handler=run_add)


def _service(ctx: CLIContext) -> PrescriptionService:
    return PrescriptionService(PrescriptionRepo(ctx.paths.db_path))


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    service = _service(ctx)
    rows = service.list_for_doctor(args.doctor, limit=args.limit) if args.doctor else service.list_all(limit=args.limit)

    out = Table(title=f"Prescriptions ({len(rows)})")
    out.add_column("ID")
    out.add_column("Case")
    out.add_column("Doctor")
    out.add_column("Medicine")
    out.add_column("Dosage")
    out.add_column("Patient")
    out.add_column("Status")
    out.add_column("Created")

    for p in rows:
        out.add_row(
            p.id,
            p.case_reference,
            p.doctor_id,
            p.medicine_name,
            p.dosage,
            p.patient_name or "",
            p.status,
            p.created_at,
        )

    ctx.console.print(out)
    return 0


def run_add(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    prescription = _service(ctx).create(
        PrescriptionInput(
            doctor_id=args.doctor,
            medicine_name=args.medicine,
            dosage=args.dosage,
            duration=args.duration,
            patient_phone=args.phone,
            patient_name=args.patient_name,
            condition=args.condition,
        )
    )
    ctx.console.print(
        Panel.fit(
            "\n".join(
                [
                    f"ID: {prescription.id}",
                    f"Case: {prescription.case_reference}",
                    f"Medicine: {prescription.medicine_name} {prescription.dosage}",
                    f"Duration: {prescription.duration}",
                ]
            ),
            title="Prescription Recorded",
        )
    )
    return 0
