from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from carefollow.domain.models.answers import StructuredAnswerSet

STATUS_INITIATED = "initiated"
STATUS_VERIFIED = "verified"
STATUS_SUBMITTED = "submitted"
STATUS_CLOSED = "closed"


@dataclass(slots=True)
class VerificationRecord:
    id: str
    secret: str
    secret_expires_at: datetime
    status: str = STATUS_INITIATED
    owner_id: str | None = None
    verified: bool = False
    verified_at: datetime | None = None
    attempts: int = 0
    consent: bool = False
    consented_at: datetime | None = None
    answers: StructuredAnswerSet | None = None


@dataclass(slots=True)
class IssuedCode:
    record_id: str
    secret: str
    expires_at: datetime
