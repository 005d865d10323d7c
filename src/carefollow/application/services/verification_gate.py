from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Mapping
from datetime import timedelta
from typing import Protocol

from carefollow.core.config import (
    DEFAULT_OTP_LENGTH,
    DEFAULT_OTP_MAX_ATTEMPTS,
    DEFAULT_OTP_TTL_MINUTES,
    Settings,
)
from carefollow.core.errors import (
    AttemptsExceeded,
    ConsentRequired,
    Expired,
    Forbidden,
    InvalidCode,
    NotFound,
    PendingConsent,
    Unauthorized,
)
from carefollow.core.time import Clock, now_utc
from carefollow.domain.models.answers import StructuredAnswerSet
from carefollow.domain.models.verification import (
    STATUS_CLOSED,
    STATUS_INITIATED,
    STATUS_SUBMITTED,
    STATUS_VERIFIED,
    IssuedCode,
    VerificationRecord,
)

logger = logging.getLogger(__name__)

_DIGITS = "0123456789"


class VerificationStore(Protocol):
    def get(self, record_id: str) -> VerificationRecord | None: ...

    def set(self, record: VerificationRecord) -> None: ...

    def update(self, record_id: str, **fields: object) -> None: ...


class VerificationGate:
    """One-time-code verification and consent gating for a single record.

    Every operation is a read of one record followed by at most a couple of
    writes. There is no locking: two concurrent ``verify`` calls can both see
    ``attempts < max_attempts`` and so allow one extra attempt.
    """

    def __init__(
        self,
        store: VerificationStore,
        *,
        code_length: int = DEFAULT_OTP_LENGTH,
        ttl: timedelta = timedelta(minutes=DEFAULT_OTP_TTL_MINUTES),
        max_attempts: int = DEFAULT_OTP_MAX_ATTEMPTS,
        clock: Clock = now_utc,
    ) -> None:
        if code_length < 1:
            raise ValueError("code_length must be positive")
        self.store = store
        self.code_length = code_length
        self.ttl = ttl
        self.max_attempts = max_attempts
        self.clock = clock

    def generate_secret(self) -> str:
        return "".join(secrets.choice(_DIGITS) for _ in range(self.code_length))

    def initiate(self, record_id: str, owner_id: str | None = None) -> IssuedCode:
        """Issue a fresh code and put the record back into ``initiated``.

        Stored answers survive re-initiation; consent is cleared so they are
        not disclosed again until a new submission.
        """
        secret = self.generate_secret()
        expires_at = self.clock() + self.ttl
        existing = self.store.get(record_id)

        if existing is None:
            record = VerificationRecord(
                id=record_id,
                secret=secret,
                secret_expires_at=expires_at,
                owner_id=owner_id,
            )
        else:
            record = existing
            record.secret = secret
            record.secret_expires_at = expires_at
            record.status = STATUS_INITIATED
            record.verified = False
            record.verified_at = None
            record.attempts = 0
            record.consent = False
            record.consented_at = None
            if owner_id is not None:
                record.owner_id = owner_id

        self.store.set(record)
        logger.info("Issued verification code for %s (expires %s)", record_id, expires_at.isoformat())
        return IssuedCode(record_id=record_id, secret=secret, expires_at=expires_at)

    def verify(self, record_id: str, candidate_secret: str) -> VerificationRecord:
        record = self._require(record_id)

        if record.verified is True:
            return record

        now = self.clock()
        if now > record.secret_expires_at:
            raise Expired("Verification code has expired. Please request a new one.")

        if record.attempts >= self.max_attempts:
            raise AttemptsExceeded("Maximum verification attempts exceeded. Please request a new code.")

        # Counted before comparing, including for the attempt that succeeds.
        record.attempts += 1
        self.store.update(record_id, attempts=record.attempts)

        if not _secrets_match(record.secret, candidate_secret):
            logger.info("Invalid verification code for %s (attempt %d)", record_id, record.attempts)
            raise InvalidCode("Invalid verification code. Please try again.")

        record.verified = True
        record.verified_at = now
        record.status = STATUS_VERIFIED
        self.store.update(record_id, verified=True, verified_at=now, status=STATUS_VERIFIED)
        return record

    def get(self, record_id: str) -> VerificationRecord | None:
        return self.store.get(record_id)

    def is_unlocked(self, record_id: str) -> bool:
        record = self.store.get(record_id)
        if record is None:
            return False
        return record.verified is True

    def require_unlocked(self, record_id: str) -> VerificationRecord:
        record = self._require(record_id)
        if record.verified is not True:
            raise Unauthorized("Identity verification required")
        return record

    def record_consent(
        self,
        record_id: str,
        answers: StructuredAnswerSet | Mapping[str, object],
        consent_flag: object,
    ) -> VerificationRecord:
        record = self.require_unlocked(record_id)

        if consent_flag is not True:
            raise ConsentRequired("Explicit consent is required to share responses with the doctor")

        if record.consent is True:
            raise Unauthorized("Responses were already submitted. Verify again to resubmit.")

        answer_set = StructuredAnswerSet.from_payload(answers)

        now = self.clock()
        record.answers = answer_set
        record.consent = True
        record.consented_at = now
        record.status = STATUS_SUBMITTED
        self.store.update(
            record_id,
            answers=answer_set,
            consent=True,
            consented_at=now,
            status=STATUS_SUBMITTED,
        )
        return record

    def is_disclosable(self, record_id: str, requester_id: str | None) -> bool:
        self.require_disclosable(record_id, requester_id)
        return True

    def require_disclosable(self, record_id: str, requester_id: str | None) -> VerificationRecord:
        record = self._require(record_id)
        if not requester_id or record.owner_id != requester_id:
            raise Forbidden("This case does not belong to the requester")
        if record.consent is not True:
            raise PendingConsent("The patient has not yet submitted their responses")
        return record

    def close(self, record_id: str, requester_id: str | None) -> VerificationRecord:
        record = self._require(record_id)
        if not requester_id or record.owner_id != requester_id:
            raise Forbidden("Only the owning doctor can close this case")
        if record.status == STATUS_CLOSED:
            return record
        if record.status != STATUS_SUBMITTED:
            raise PendingConsent("Only submitted cases can be closed")
        record.status = STATUS_CLOSED
        self.store.update(record_id, status=STATUS_CLOSED)
        return record

    def _require(self, record_id: str) -> VerificationRecord:
        record = self.store.get(record_id)
        if record is None:
            raise NotFound(f"Record not found: {record_id}")
        return record


def _secrets_match(expected: str, candidate: object) -> bool:
    if not isinstance(candidate, str):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))


def build_gate(store: VerificationStore, settings: Settings, clock: Clock = now_utc) -> VerificationGate:
    return VerificationGate(
        store,
        code_length=settings.otp_length,
        ttl=timedelta(minutes=settings.otp_ttl_minutes),
        max_attempts=settings.otp_max_attempts,
        clock=clock,
    )
