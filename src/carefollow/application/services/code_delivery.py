from __future__ import annotations

import logging

from carefollow.application.services.verification_gate import VerificationGate
from carefollow.core.errors import ValidationError
from carefollow.core.time import now_utc_iso
from carefollow.domain.models.case import CASE_CLOSED, CASE_PENDING_VERIFICATION, CaseFile
from carefollow.domain.models.verification import IssuedCode
from carefollow.infrastructure.db.repos.case_repo import CaseFileRepo
from carefollow.infrastructure.messaging.channels import DeliveryChannel, DeliveryResult

logger = logging.getLogger(__name__)


def reissue_code(case_repo: CaseFileRepo, gate: VerificationGate, case: CaseFile) -> IssuedCode:
    """Start a fresh verification round for an open case.

    The case file goes back to pending verification so it agrees with the
    re-initiated gate record.
    """
    if case.status == CASE_CLOSED:
        raise ValidationError(f"Case is already closed: {case.case_reference}")
    issued = gate.initiate(case.id, owner_id=case.doctor_id)
    case_repo.update_fields(case.id, {"status": CASE_PENDING_VERIFICATION, "updated_at": now_utc_iso()})
    case.status = CASE_PENDING_VERIFICATION
    return issued


def deliver_code(
    channel: DeliveryChannel,
    destination: str,
    issued: IssuedCode,
    link: str,
    case_reference: str,
) -> DeliveryResult:
    """Send an issued code; a failing provider never invalidates the code."""
    try:
        return channel.send(destination, issued.secret, link, case_reference)
    except Exception as exc:
        logger.warning("Code delivery for %s failed: %s", case_reference, exc)
        return DeliveryResult(delivered=False, channel=getattr(channel, "name", "unknown"), error=str(exc))


def manual_code(issued: IssuedCode, result: DeliveryResult) -> str | None:
    """The secret itself, only when it has to be shared by hand."""
    return None if result.delivered else issued.secret
