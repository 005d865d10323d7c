from __future__ import annotations

import time
import uuid


def new_uuid() -> str:
    """Generate a new UUID4 as a string."""
    return str(uuid.uuid4())


def new_case_reference() -> str:
    """Short human-facing reference for a prescription case."""
    return f"CASE-{uuid.uuid4().hex[:8].upper()}"


def new_adverse_event_reference(now_ms: int | None = None) -> str:
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"AE-{stamp}"
