from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from carefollow.application.services.adverse_event_service import (
    AdverseEventReport,
    AdverseEventService,
)
from carefollow.application.services.case_assessor import CaseAssessor
from carefollow.application.services.follow_up_service import FollowUpService
from carefollow.application.services.prescription_service import (
    PrescriptionInput,
    PrescriptionService,
)
from carefollow.application.services.project_service import ProjectService
from carefollow.application.services.verification_gate import VerificationGate, build_gate
from carefollow.core.config import AppPaths, Settings, load_settings
from carefollow.core.errors import (
    AttemptsExceeded,
    CareFollowError,
    ConfigurationError,
    ConsentRequired,
    DeliveryError,
    Expired,
    Forbidden,
    GenerationError,
    InvalidAnswers,
    InvalidCode,
    NotFound,
    PendingConsent,
    Unauthorized,
    ValidationError,
)
from carefollow.core.time import Clock, now_utc, now_utc_iso
from carefollow.domain.models.answers import StructuredAnswerSet
from carefollow.infrastructure.db.repos.case_repo import CaseFileRepo
from carefollow.infrastructure.db.repos.prescription_repo import PrescriptionRepo
from carefollow.infrastructure.db.repos.verification_repo import SqliteVerificationStore
from carefollow.infrastructure.generation.base import TextGenerator, build_generator
from carefollow.infrastructure.messaging.channels import DeliveryChannel, build_delivery_channel

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[CareFollowError], int], ...] = (
    (NotFound, 404),
    (Expired, 410),
    (AttemptsExceeded, 429),
    (InvalidCode, 400),
    (ConsentRequired, 400),
    (InvalidAnswers, 400),
    (ValidationError, 400),
    (Unauthorized, 403),
    (PendingConsent, 403),
    (Forbidden, 403),
    (GenerationError, 502),
    (DeliveryError, 502),
    (ConfigurationError, 503),
)


class PrescriptionCreateRequest(BaseModel):
    doctor_id: str
    medicine_name: str
    dosage: str
    duration: str
    patient_phone: str
    patient_name: str | None = None
    patient_email: str | None = None
    condition: str | None = None
    notes: str | None = None


class PrescriptionPatchRequest(BaseModel):
    patient_phone: str | None = None
    patient_email: str | None = None
    patient_name: str | None = None


class FollowUpStartRequest(BaseModel):
    prescription_id: str
    doctor_id: str


class DoctorRequest(BaseModel):
    doctor_id: str


class CloseRequest(BaseModel):
    doctor_id: str
    resolution: str | None = None


class VerifyCodeRequest(BaseModel):
    code: str


# Left untyped so the gate sees exactly what the client sent.
class SubmitRequest(BaseModel):
    responses: Any = None
    consent: Any = None


class AdverseEventCreateRequest(BaseModel):
    event_description: str = ""
    prescription_id: str | None = None
    patient_phone: str | None = None
    patient_name: str | None = None
    drug_name: str | None = None
    reporter_type: str | None = None
    doctor_id: str | None = None
    urgency_indicators: list[str] = []


class AssessRequest(BaseModel):
    responses: Any = None


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return _jsonable(asdict(value))
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, Path):
        return str(value)
    return value


def _http_error(exc: CareFollowError) -> HTTPException:
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.warning("Request failed with %s: %s", exc.kind, exc)
    return HTTPException(status_code=status_code, detail={"error": exc.kind, "message": str(exc)})


def create_app(
    paths: AppPaths,
    settings: Settings | None = None,
    channel: DeliveryChannel | None = None,
    generator: TextGenerator | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    app = FastAPI(title="carefollow", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    project_service = ProjectService(paths)
    project_service.init_project()

    app_settings = settings or load_settings()
    delivery_channel = channel or build_delivery_channel(app_settings)
    text_generator = generator or build_generator(app_settings)
    app_clock = clock or now_utc
    assessor = CaseAssessor()

    def get_prescription_repo() -> PrescriptionRepo:
        return PrescriptionRepo(paths.db_path)

    def get_case_repo() -> CaseFileRepo:
        return CaseFileRepo(paths.db_path)

    def get_gate() -> VerificationGate:
        return build_gate(SqliteVerificationStore(paths.db_path), app_settings, clock=app_clock)

    def get_prescription_service() -> PrescriptionService:
        return PrescriptionService(get_prescription_repo())

    def get_follow_up_service() -> FollowUpService:
        return FollowUpService(
            prescription_service=get_prescription_service(),
            case_repo=get_case_repo(),
            gate=get_gate(),
            assessor=assessor,
            channel=delivery_channel,
            generator=text_generator,
            settings=app_settings,
        )

    def get_adverse_event_service() -> AdverseEventService:
        return AdverseEventService(
            case_repo=get_case_repo(),
            prescription_repo=get_prescription_repo(),
            gate=get_gate(),
            assessor=assessor,
            channel=delivery_channel,
            settings=app_settings,
        )

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {
            "ok": True,
            "time": now_utc_iso(),
            "delivery_channel": getattr(delivery_channel, "name", "unknown"),
            "llm_configured": app_settings.llm_configured,
        }

    @app.post("/api/init")
    def init_project() -> dict[str, Any]:
        result = project_service.init_project()
        return {"ok": True, "db_path": str(result.db_path), "paths_created": [str(p) for p in result.paths_created]}

    # Prescriptions

    @app.post("/api/prescriptions")
    def create_prescription(req: PrescriptionCreateRequest) -> dict[str, Any]:
        try:
            prescription = get_prescription_service().create(PrescriptionInput(**req.model_dump()))
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "prescription": _jsonable(prescription)}

    @app.get("/api/prescriptions")
    def list_prescriptions(
        doctor_id: str | None = Query(default=None),
        limit: int = Query(default=200, ge=1, le=1000),
    ) -> dict[str, Any]:
        service = get_prescription_service()
        rows = service.list_for_doctor(doctor_id, limit=limit) if doctor_id else service.list_all(limit=limit)
        return {"ok": True, "count": len(rows), "prescriptions": _jsonable(rows)}

    @app.get("/api/prescriptions/{prescription_id}")
    def get_prescription(prescription_id: str) -> dict[str, Any]:
        try:
            prescription = get_prescription_service().get(prescription_id)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "prescription": _jsonable(prescription)}

    @app.patch("/api/prescriptions/{prescription_id}")
    def patch_prescription(prescription_id: str, req: PrescriptionPatchRequest) -> dict[str, Any]:
        try:
            prescription = get_prescription_service().update_patient_details(
                prescription_id,
                patient_phone=req.patient_phone,
                patient_email=req.patient_email,
                patient_name=req.patient_name,
            )
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "prescription": _jsonable(prescription)}

    # Follow-ups

    @app.post("/api/follow-ups")
    def start_follow_up(req: FollowUpStartRequest) -> dict[str, Any]:
        try:
            outcome = get_follow_up_service().start(req.prescription_id, req.doctor_id)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "follow_up": _jsonable(outcome)}

    @app.get("/api/follow-ups/doctor/{doctor_id}")
    def list_follow_ups(doctor_id: str, limit: int = Query(default=200, ge=1, le=1000)) -> dict[str, Any]:
        rows = get_follow_up_service().list_for_doctor(doctor_id, limit=limit)
        return {"ok": True, "count": len(rows), "follow_ups": rows}

    @app.post("/api/follow-ups/{follow_up_id}/resend")
    def resend_follow_up_code(follow_up_id: str, req: DoctorRequest) -> dict[str, Any]:
        try:
            outcome = get_follow_up_service().resend_code(follow_up_id, req.doctor_id)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "follow_up": _jsonable(outcome)}

    @app.post("/api/follow-ups/{follow_up_id}/verify")
    def verify_follow_up(follow_up_id: str, req: VerifyCodeRequest) -> dict[str, Any]:
        try:
            get_follow_up_service().verify(follow_up_id, req.code)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "verified": True}

    @app.get("/api/follow-ups/{follow_up_id}/drafts")
    def follow_up_drafts(follow_up_id: str) -> dict[str, Any]:
        try:
            drafts = get_follow_up_service().drafts(follow_up_id)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, **_jsonable(drafts)}

    @app.post("/api/follow-ups/{follow_up_id}/submit")
    def submit_follow_up(follow_up_id: str, req: SubmitRequest) -> dict[str, Any]:
        try:
            outcome = get_follow_up_service().submit(follow_up_id, req.responses, req.consent)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, **_jsonable(outcome)}

    @app.get("/api/follow-ups/{follow_up_id}/summary")
    def follow_up_summary(follow_up_id: str, doctor_id: str | None = Query(default=None)) -> dict[str, Any]:
        try:
            summary = get_follow_up_service().summary(follow_up_id, doctor_id)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, **_jsonable(summary)}

    @app.post("/api/follow-ups/{follow_up_id}/close")
    def close_follow_up(follow_up_id: str, req: CloseRequest) -> dict[str, Any]:
        try:
            case = get_follow_up_service().close(follow_up_id, req.doctor_id, req.resolution)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "status": case.status, "resolution": case.resolution, "closed_at": case.closed_at}

    # Adverse events

    @app.post("/api/adverse-events")
    def report_adverse_event(req: AdverseEventCreateRequest) -> dict[str, Any]:
        try:
            outcome = get_adverse_event_service().report(AdverseEventReport(**req.model_dump()))
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "adverse_event": _jsonable(outcome)}

    @app.get("/api/adverse-events/doctor/{doctor_id}")
    def list_adverse_events(doctor_id: str, limit: int = Query(default=200, ge=1, le=1000)) -> dict[str, Any]:
        rows = get_adverse_event_service().list_for_doctor(doctor_id, limit=limit)
        return {"ok": True, "count": len(rows), "adverse_events": rows}

    @app.post("/api/adverse-events/{adverse_event_id}/verify")
    def verify_adverse_event(adverse_event_id: str, req: VerifyCodeRequest) -> dict[str, Any]:
        try:
            get_adverse_event_service().verify(adverse_event_id, req.code)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "verified": True}

    @app.get("/api/adverse-events/{adverse_event_id}/questions")
    def adverse_event_questions(adverse_event_id: str) -> dict[str, Any]:
        try:
            payload = get_adverse_event_service().questions(adverse_event_id)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, **payload}

    @app.post("/api/adverse-events/{adverse_event_id}/submit")
    def submit_adverse_event(adverse_event_id: str, req: SubmitRequest) -> dict[str, Any]:
        try:
            outcome = get_adverse_event_service().submit(adverse_event_id, req.responses, req.consent)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, **_jsonable(outcome)}

    @app.get("/api/adverse-events/{adverse_event_id}")
    def get_adverse_event(adverse_event_id: str, doctor_id: str | None = Query(default=None)) -> dict[str, Any]:
        try:
            case = get_adverse_event_service().case(adverse_event_id, doctor_id)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "case": case}

    @app.post("/api/assess")
    def assess_answers(req: AssessRequest) -> dict[str, Any]:
        try:
            answers = StructuredAnswerSet.from_payload(req.responses)
        except CareFollowError as exc:
            raise _http_error(exc) from exc
        verdict = assessor.assess(answers)
        missing = assessor.missing_fields(assessor.case_values(answers, verdict))
        return {
            "ok": True,
            "verdict": verdict.to_dict(),
            "missing_fields": [m.label for m in missing],
        }

    return app
