from __future__ import annotations

import dataclasses

from carefollow.domain.models.verification import VerificationRecord


class InMemoryVerificationStore:
    """Dict-backed record store with copy-on-read semantics."""

    def __init__(self) -> None:
        self._records: dict[str, VerificationRecord] = {}

    def get(self, record_id: str) -> VerificationRecord | None:
        record = self._records.get(record_id)
        return dataclasses.replace(record) if record is not None else None

    def set(self, record: VerificationRecord) -> None:
        self._records[record.id] = dataclasses.replace(record)

    def update(self, record_id: str, **fields: object) -> None:
        record = self._records.get(record_id)
        if record is None:
            return
        for name, value in fields.items():
            if not hasattr(record, name):
                raise ValueError(f"Unknown verification record field: {name}")
            setattr(record, name, value)
