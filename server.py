"""
Niraiva Web Server

FastAPI-based service tier for the Niraiva patient and doctor portal.

Handlers that only make blocking Supabase calls are plain functions, which
FastAPI runs in its threadpool. Handlers that await the role resolver or
the parsing backend are coroutines and push their blocking calls through
``run_in_threadpool``.
"""

import os
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Union

from fastapi import FastAPI, HTTPException, Query, Depends, File, UploadFile, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field, EmailStr
import structlog

# Setup paths
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.logging_config import configure_logging
from src.errors import PortalError, NotFoundError, AccessDeniedError
from src.models import (
    UserProfile,
    DoctorNote,
    PersonalRecord,
    PersonalRecordType,
    UserRole,
    ParameterStatus,
    Severity,
)
from knowledge.vitals import is_primary_chronic_condition
from src.engines import (
    reconcile,
    build_timeline,
    group_by_date,
    build_parameter_trend,
    project_pathway,
    project_tracked_pathways,
)
from src.exporters import export_json, export_markdown, export_fhir
from src.auth import (
    get_current_user,
    get_doctor_user,
    get_linked_patient_user,
    get_role_resolver,
    AuthenticatedUser,
    RoleResolver,
    post_login_redirect,
    enforce_patient_access,
    revoke_consent,
)
from src.db.client import create_auth_client, get_config, is_configured as db_configured, SupabaseClient
from src.db.repositories import (
    ProfileRepository,
    RoleRepository,
    ReportRepository,
    SnapshotRepository,
    HealthParameterRepository,
    ConditionRepository,
    MedicationRepository,
    DoctorNoteRepository,
    ConsentRepository,
    TimelineRepository,
    PersonalRecordRepository,
    DoctorPatientRepository,
    DocumentStorage,
)
from src.parsing import ParsingClient, get_client as get_parsing_client_instance

configure_logging()
logger = structlog.get_logger(__name__)


# Create FastAPI app
app = FastAPI(
    title="Niraiva",
    description="Niraiva - Patient and Doctor Health Portal API",
    version="0.1.0",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.environ.get("FRONTEND_URL", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    """Translate domain errors into JSON error responses."""
    logger.info("portal_error", path=request.url.path, status=exc.status_code, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# =============================================================================
# DEPENDENCIES
# =============================================================================


def _require_db() -> None:
    if not db_configured():
        raise HTTPException(status_code=503, detail="Database not configured")


def _repo(cls):
    # Queries are scoped to the caller explicitly; the service key is used
    # when available so Row Level Security does not hide the caller's rows.
    _require_db()
    return cls(use_admin=bool(get_config().service_key))


def get_auth_client() -> SupabaseClient:
    """A fresh client per request, so no session is shared between callers."""
    _require_db()
    return create_auth_client()


def get_profile_repo() -> ProfileRepository:
    return _repo(ProfileRepository)


def get_role_repo() -> RoleRepository:
    return _repo(RoleRepository)


def get_report_repo() -> ReportRepository:
    return _repo(ReportRepository)


def get_snapshot_repo() -> SnapshotRepository:
    return _repo(SnapshotRepository)


def get_parameter_repo() -> HealthParameterRepository:
    return _repo(HealthParameterRepository)


def get_condition_repo() -> ConditionRepository:
    return _repo(ConditionRepository)


def get_medication_repo() -> MedicationRepository:
    return _repo(MedicationRepository)


def get_note_repo() -> DoctorNoteRepository:
    return _repo(DoctorNoteRepository)


def get_consent_repo() -> ConsentRepository:
    return _repo(ConsentRepository)


def get_timeline_repo() -> TimelineRepository:
    return _repo(TimelineRepository)


def get_personal_record_repo() -> PersonalRecordRepository:
    return _repo(PersonalRecordRepository)


def get_doctor_patient_repo() -> DoctorPatientRepository:
    return _repo(DoctorPatientRepository)


def get_document_storage() -> DocumentStorage:
    return _repo(DocumentStorage)


def get_parsing_client() -> ParsingClient:
    return get_parsing_client_instance()


# =============================================================================
# HEALTH
# =============================================================================


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "database_configured": db_configured()}


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

class SignUpRequest(BaseModel):
    """Request model for user signup."""
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    dob: Optional[date] = None


class LoginRequest(BaseModel):
    """Request model for user login."""
    email: EmailStr
    password: str


class CallbackRequest(BaseModel):
    """OAuth callback carrying the authorization code."""
    code: str
    code_verifier: Optional[str] = Field(None, description="PKCE verifier issued with the provider URL")


class RefreshRequest(BaseModel):
    refresh_token: str


class AuthResponse(BaseModel):
    """Response model for auth endpoints."""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user: dict
    redirect_to: str = "/dashboard"


def _ensure_account(
    user_id: str,
    email: Optional[str],
    profiles: ProfileRepository,
    roles: RoleRepository,
    **profile_fields,
) -> None:
    """Make sure profile and role rows exist; failures are logged only."""
    try:
        profiles.ensure(user_id, email=email, **profile_fields)
        roles.ensure(user_id)
    except Exception as e:
        logger.warning("account_rows_not_created", user_id=user_id, error=str(e))


async def _session_response(auth_response, resolver: RoleResolver) -> AuthResponse:
    user = auth_response.user
    info = await resolver.resolve(str(user.id))
    session = auth_response.session
    return AuthResponse(
        access_token=session.access_token if session else None,
        refresh_token=session.refresh_token if session else None,
        user={
            "id": str(user.id),
            "email": user.email,
            "role": info.role.value,
            "patient_id": info.patient_id,
        },
        redirect_to=post_login_redirect(info.role),
    )


@app.post("/api/auth/signup", response_model=AuthResponse)
async def signup(
    request: SignUpRequest,
    client: SupabaseClient = Depends(get_auth_client),
    profiles: ProfileRepository = Depends(get_profile_repo),
    roles: RoleRepository = Depends(get_role_repo),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    """
    Create a new patient account.

    Tokens are absent when the project requires email confirmation.
    """
    metadata = {
        "first_name": request.first_name,
        "last_name": request.last_name,
        "full_name": " ".join(p for p in (request.first_name, request.last_name) if p) or None,
        "dob": request.dob.isoformat() if request.dob else None,
    }
    metadata = {k: v for k, v in metadata.items() if v}

    try:
        auth_response = await run_in_threadpool(client.sign_up, request.email, request.password, metadata)
    except Exception as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not auth_response.user:
        raise HTTPException(status_code=400, detail="Signup failed")

    user_id = str(auth_response.user.id)
    await run_in_threadpool(_ensure_account, user_id, request.email, profiles, roles, **metadata)
    logger.info("user_signed_up", user_id=user_id)
    return await _session_response(auth_response, resolver)


@app.post("/api/auth/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    client: SupabaseClient = Depends(get_auth_client),
    profiles: ProfileRepository = Depends(get_profile_repo),
    roles: RoleRepository = Depends(get_role_repo),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    """
    Log in an existing user.

    Returns tokens, the resolved role and where to send the user next.
    """
    try:
        auth_response = await run_in_threadpool(client.sign_in, request.email, request.password)
    except Exception as e:
        raise HTTPException(status_code=401, detail=str(e))

    if not auth_response.user or not auth_response.session:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    await run_in_threadpool(_ensure_account, str(auth_response.user.id), request.email, profiles, roles)
    return await _session_response(auth_response, resolver)


@app.get("/api/auth/oauth/google")
def oauth_google(
    redirect_to: Optional[str] = Query(None, description="Where the provider sends the browser back to"),
    client: SupabaseClient = Depends(get_auth_client),
):
    """
    Start Google sign-in.

    Returns the provider URL and the code verifier the caller sends back
    to the callback endpoint together with the authorization code.
    """
    target = redirect_to or f"{get_config().frontend_url.rstrip('/')}/auth/callback"
    try:
        url, code_verifier = client.sign_in_with_oauth("google", target)
    except Exception as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"url": url, "code_verifier": code_verifier}


@app.post("/api/auth/callback", response_model=AuthResponse)
async def oauth_callback(
    request: CallbackRequest,
    client: SupabaseClient = Depends(get_auth_client),
    profiles: ProfileRepository = Depends(get_profile_repo),
    roles: RoleRepository = Depends(get_role_repo),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    """Complete an OAuth sign-in."""
    try:
        auth_response = await run_in_threadpool(
            client.exchange_code_for_session, request.code, request.code_verifier
        )
    except Exception as e:
        raise HTTPException(status_code=401, detail=str(e))

    if not auth_response.user or not auth_response.session:
        raise HTTPException(status_code=401, detail="OAuth sign-in failed")

    metadata = getattr(auth_response.user, "user_metadata", None) or {}
    full_name = metadata.get("full_name") or metadata.get("name")
    fields = {"full_name": full_name} if full_name else {}
    await run_in_threadpool(
        _ensure_account, str(auth_response.user.id), auth_response.user.email, profiles, roles, **fields
    )
    return await _session_response(auth_response, resolver)


@app.post("/api/auth/refresh", response_model=AuthResponse)
async def refresh(
    request: RefreshRequest,
    client: SupabaseClient = Depends(get_auth_client),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    """Exchange a refresh token for a new session."""
    try:
        auth_response = await run_in_threadpool(client.refresh_session, request.refresh_token)
    except Exception as e:
        raise HTTPException(status_code=401, detail=str(e))

    if not auth_response.user or not auth_response.session:
        raise HTTPException(status_code=401, detail="Session expired")
    return await _session_response(auth_response, resolver)


@app.post("/api/auth/logout")
def logout(
    user: AuthenticatedUser = Depends(get_current_user),
    client: SupabaseClient = Depends(get_auth_client),
):
    """Log out the current user by revoking the sessions behind their token."""
    try:
        client.sign_out(user.token or "")
    except Exception as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("user_logged_out", user_id=user.id)
    return {"status": "logged_out"}


@app.get("/api/auth/me")
def get_me(
    user: AuthenticatedUser = Depends(get_current_user),
    profiles: ProfileRepository = Depends(get_profile_repo),
):
    """Get the current user with their role and display name."""
    row = profiles.get(user.id)
    profile = UserProfile.from_db(row) if row else UserProfile(user_id=user.id, email=user.email)
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "patient_id": user.patient_id,
        "display_name": profile.display_name,
        "redirect_to": post_login_redirect(UserRole.parse(user.role)),
    }


# =============================================================================
# PROFILE ENDPOINTS
# =============================================================================

class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    dob: Optional[date] = None
    gender: Optional[str] = None
    phone: Optional[str] = None


class AllergyRequest(BaseModel):
    allergy: str = Field(..., min_length=1)


def _profile_payload(profile: UserProfile) -> dict:
    return {
        **profile.model_dump(mode="json"),
        "display_name": profile.display_name,
        "age": profile.age,
    }


@app.get("/api/profile")
def get_profile(
    user: AuthenticatedUser = Depends(get_current_user),
    profiles: ProfileRepository = Depends(get_profile_repo),
):
    """Get the caller's profile, creating an empty one on first visit."""
    row = profiles.ensure(user.id, email=user.email)
    return _profile_payload(UserProfile.from_db(row or {"user_id": user.id, "email": user.email}))


@app.patch("/api/profile")
def update_profile(
    request: ProfileUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    profiles: ProfileRepository = Depends(get_profile_repo),
):
    """Update the caller's profile."""
    updates = request.model_dump(mode="json", exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    row = profiles.update(user.id, **updates)
    if not row:
        raise NotFoundError("Profile not found")
    return _profile_payload(UserProfile.from_db(row))


@app.post("/api/profile/allergies")
def add_allergy(
    request: AllergyRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    profiles: ProfileRepository = Depends(get_profile_repo),
):
    return {"allergies": profiles.add_allergy(user.id, request.allergy)}


@app.delete("/api/profile/allergies")
def remove_allergy(
    allergy: str = Query(..., min_length=1),
    user: AuthenticatedUser = Depends(get_current_user),
    profiles: ProfileRepository = Depends(get_profile_repo),
):
    return {"allergies": profiles.remove_allergy(user.id, allergy)}


# =============================================================================
# REPORT ENDPOINTS
# =============================================================================

@app.get("/api/reports")
def list_reports(
    user: AuthenticatedUser = Depends(get_current_user),
    reports: ReportRepository = Depends(get_report_repo),
):
    """List the caller's uploaded reports, newest first."""
    return {"reports": reports.list_for_user(user.id)}


@app.post("/api/reports")
async def upload_report(
    file: UploadFile = File(...),
    user: AuthenticatedUser = Depends(get_current_user),
    parser: ParsingClient = Depends(get_parsing_client),
):
    """
    Upload a report for parsing.

    The parsing backend stores the parsed report; its response is relayed.
    """
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    return await parser.upload_report(user.token or "", file.filename or "report", content, file.content_type)


@app.delete("/api/reports/{report_id}")
def delete_report(
    report_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    reports: ReportRepository = Depends(get_report_repo),
):
    """Delete one of the caller's reports."""
    if not reports.delete(report_id, user.id):
        raise NotFoundError("Report not found")
    logger.info("report_deleted", user_id=user.id, report_id=report_id)
    return {"status": "deleted", "report_id": report_id}


# =============================================================================
# HEALTH RECORD ENDPOINTS
# =============================================================================

class HealthParameterRequest(BaseModel):
    """One reading entered from the dashboard."""
    name: str = Field(..., min_length=1)
    value: Union[float, str]
    unit: Optional[str] = None
    status: ParameterStatus = ParameterStatus.NORMAL
    measured_at: Optional[datetime] = None


class ConditionRequest(BaseModel):
    name: str = Field(..., min_length=1)
    severity: Optional[Severity] = None
    current_status: Optional[str] = None
    diagnosed_date: Optional[date] = None


class MedicationRequest(BaseModel):
    name: str = Field(..., min_length=1)
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    start_date: Optional[date] = None


@app.get("/api/health-parameters")
def list_health_parameters(
    user: AuthenticatedUser = Depends(get_current_user),
    parameters: HealthParameterRepository = Depends(get_parameter_repo),
):
    """Readings the caller has recorded, newest first."""
    return {"parameters": parameters.list_for_user(user.id)}


@app.post("/api/health-parameters", status_code=201)
def add_health_parameter(
    request: HealthParameterRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    parameters: HealthParameterRepository = Depends(get_parameter_repo),
):
    row = parameters.add(
        user.id,
        request.name,
        request.value,
        unit=request.unit,
        status=request.status.value,
        measured_at=request.measured_at.isoformat() if request.measured_at else None,
    )
    if not row:
        raise HTTPException(status_code=400, detail="Reading could not be saved")
    return row


@app.get("/api/conditions")
def list_conditions(
    user: AuthenticatedUser = Depends(get_current_user),
    conditions: ConditionRepository = Depends(get_condition_repo),
):
    return {"conditions": conditions.list_for_user(user.id)}


@app.post("/api/conditions", status_code=201)
def add_condition(
    request: ConditionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    conditions: ConditionRepository = Depends(get_condition_repo),
):
    row = conditions.add(user.id, request)
    if not row:
        raise HTTPException(status_code=400, detail="Condition could not be saved")
    return row


@app.delete("/api/conditions/{condition_id}")
def delete_condition(
    condition_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    conditions: ConditionRepository = Depends(get_condition_repo),
):
    if not conditions.delete(condition_id, user.id):
        raise NotFoundError("Condition not found")
    return {"status": "deleted", "condition_id": condition_id}


@app.get("/api/medications")
def list_medications(
    user: AuthenticatedUser = Depends(get_current_user),
    medications: MedicationRepository = Depends(get_medication_repo),
):
    return {"medications": medications.list_for_user(user.id)}


@app.post("/api/medications", status_code=201)
def add_medication(
    request: MedicationRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    medications: MedicationRepository = Depends(get_medication_repo),
):
    row = medications.add(user.id, request)
    if not row:
        raise HTTPException(status_code=400, detail="Medication could not be saved")
    return row


@app.delete("/api/medications/{medication_id}")
def delete_medication(
    medication_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    medications: MedicationRepository = Depends(get_medication_repo),
):
    if not medications.delete(medication_id, user.id):
        raise NotFoundError("Medication not found")
    return {"status": "deleted", "medication_id": medication_id}


# =============================================================================
# DASHBOARD ENDPOINTS
# =============================================================================

def _reconciled_view(user_id: str, reports: ReportRepository, snapshots: SnapshotRepository):
    return reconcile(reports.list_for_user(user_id), snapshots.get(user_id))


@app.get("/api/dashboard")
def get_dashboard(
    user: AuthenticatedUser = Depends(get_current_user),
    reports: ReportRepository = Depends(get_report_repo),
    snapshots: SnapshotRepository = Depends(get_snapshot_repo),
):
    """Reconciled profile, vitals, conditions and medications for the caller."""
    return _reconciled_view(user.id, reports, snapshots).to_dict()


@app.get("/api/dashboard/export/{format}")
def export_dashboard(
    format: str,
    user: AuthenticatedUser = Depends(get_current_user),
    reports: ReportRepository = Depends(get_report_repo),
    snapshots: SnapshotRepository = Depends(get_snapshot_repo),
):
    """
    Export the caller's reconciled view.

    Formats: json, markdown, fhir
    """
    if format not in ("json", "markdown", "fhir"):
        raise HTTPException(status_code=400, detail="Invalid format. Use: json, markdown, or fhir")

    view = _reconciled_view(user.id, reports, snapshots)
    if format == "json":
        return Response(content=export_json(view), media_type="application/json")
    if format == "markdown":
        return PlainTextResponse(content=export_markdown(view), media_type="text/markdown")
    return JSONResponse(content=export_fhir(view, patient_id=user.record_id), media_type="application/fhir+json")


@app.get("/api/dashboard/pathways")
def get_pathways(
    user: AuthenticatedUser = Depends(get_current_user),
    reports: ReportRepository = Depends(get_report_repo),
    snapshots: SnapshotRepository = Depends(get_snapshot_repo),
):
    """Care pathways for each tracked condition in the caller's record."""
    view = _reconciled_view(user.id, reports, snapshots)
    return {"pathways": [p.model_dump(mode="json") for p in project_tracked_pathways(view)]}


@app.get("/api/dashboard/pathways/{condition}")
def get_pathway(
    condition: str,
    user: AuthenticatedUser = Depends(get_current_user),
    reports: ReportRepository = Depends(get_report_repo),
    snapshots: SnapshotRepository = Depends(get_snapshot_repo),
):
    """The caller's record projected onto one condition's care pathway."""
    projection = project_pathway(condition, _reconciled_view(user.id, reports, snapshots))
    if projection is None:
        raise NotFoundError(f"No care pathway for {condition}")
    return projection.model_dump(mode="json")


# =============================================================================
# TIMELINE ENDPOINTS
# =============================================================================

@app.get("/api/timeline")
def get_timeline(
    authority: Optional[str] = Query(None, pattern="^(clinical|personal)$"),
    event_type: Optional[str] = None,
    grouped: bool = False,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_linked_patient_user),
    timeline: TimelineRepository = Depends(get_timeline_repo),
):
    """Unified clinical and personal timeline, newest first."""
    events = build_timeline(
        timeline.list_for_patient(user.record_id, limit=limit, offset=offset),
        authority=authority,
        event_type=event_type,
    )
    if grouped:
        return {"groups": group_by_date(events)}
    return {"events": events}


@app.get("/api/timeline/parameters/{name}")
def get_parameter_trend(
    name: str,
    user: AuthenticatedUser = Depends(get_current_user),
    parameters: HealthParameterRepository = Depends(get_parameter_repo),
):
    """Readings of one parameter over time, with the latest direction of change."""
    return build_parameter_trend(parameters.list_for_user(user.id), name).model_dump(mode="json")


# =============================================================================
# PERSONAL RECORD ENDPOINTS
# =============================================================================

class PersonalRecordRequest(BaseModel):
    type: PersonalRecordType
    data: dict = Field(default_factory=dict)
    file_url: Optional[str] = None


@app.get("/api/personal-records")
def list_personal_records(
    user: AuthenticatedUser = Depends(get_linked_patient_user),
    records: PersonalRecordRepository = Depends(get_personal_record_repo),
):
    rows = records.list_for_patient(user.record_id)
    return {"records": [PersonalRecord.model_validate(r).model_dump(mode="json") for r in rows]}


@app.post("/api/personal-records", status_code=201)
def create_personal_record(
    request: PersonalRecordRequest,
    user: AuthenticatedUser = Depends(get_linked_patient_user),
    records: PersonalRecordRepository = Depends(get_personal_record_repo),
):
    """Add a personal record; it also appears on the timeline as personal."""
    record = records.create(user.record_id, request.type.value, request.data, request.file_url)
    if not record:
        raise HTTPException(status_code=400, detail="Record could not be created")
    return PersonalRecord.model_validate(record).model_dump(mode="json")


@app.delete("/api/personal-records/{record_id}")
def delete_personal_record(
    record_id: str,
    user: AuthenticatedUser = Depends(get_linked_patient_user),
    records: PersonalRecordRepository = Depends(get_personal_record_repo),
):
    record = records.get(record_id)
    if not record:
        raise NotFoundError("Record not found")
    if record.get("patient_id") != user.record_id:
        raise AccessDeniedError("Not authorized to delete this record")
    records.delete(record_id)
    return {"status": "deleted", "record_id": record_id}


# =============================================================================
# CONSENT ENDPOINTS
# =============================================================================

class ConsentRequest(BaseModel):
    granted_to: str
    scopes: list[str] = Field(default_factory=list)
    purpose: str = ""
    expires_in_days: Optional[int] = Field(None, ge=1, le=365)


@app.get("/api/consents")
def list_consents(
    user: AuthenticatedUser = Depends(get_linked_patient_user),
    consents: ConsentRepository = Depends(get_consent_repo),
):
    return {"consents": consents.list_for_patient(user.record_id)}


@app.post("/api/consents", status_code=201)
def grant_consent(
    request: ConsentRequest,
    user: AuthenticatedUser = Depends(get_linked_patient_user),
    consents: ConsentRepository = Depends(get_consent_repo),
):
    """Grant a clinician access to the caller's record."""
    consent = consents.grant(
        user.record_id,
        request.granted_to,
        request.scopes,
        request.purpose,
        request.expires_in_days,
    )
    logger.info("consent_granted", patient_id=user.record_id, granted_to=request.granted_to, scopes=request.scopes)
    return consent


@app.post("/api/consents/{consent_id}/revoke")
def revoke(
    consent_id: str,
    user: AuthenticatedUser = Depends(get_linked_patient_user),
    consents: ConsentRepository = Depends(get_consent_repo),
):
    return revoke_consent(consents, consent_id, user.record_id)


# =============================================================================
# DOCTOR ENDPOINTS
# =============================================================================

class NoteRequest(BaseModel):
    content: str = Field(..., min_length=1)


class LinkPatientRequest(BaseModel):
    patient_user_id: str = Field(..., min_length=1)


class SnapshotUpdate(BaseModel):
    """Latest vitals a clinician records for a patient."""
    systolic_bp: Optional[float] = Field(None, gt=0)
    diastolic_bp: Optional[float] = Field(None, gt=0)
    heart_rate: Optional[float] = Field(None, gt=0)
    spo2: Optional[float] = Field(None, gt=0, le=100)
    temperature: Optional[float] = Field(None, gt=0)
    hba1c: Optional[float] = Field(None, gt=0)
    ldl: Optional[float] = Field(None, gt=0)
    vitamin_b12: Optional[float] = Field(None, gt=0)
    chronic_conditions: Optional[list[str]] = None


def _patient_record_id(patient_user_id: str, roles: RoleRepository) -> str:
    row = roles.get(patient_user_id) or {}
    return row.get("patient_id") or patient_user_id


@app.get("/api/doctor/patients")
def list_doctor_patients(
    doctor: AuthenticatedUser = Depends(get_doctor_user),
    links: DoctorPatientRepository = Depends(get_doctor_patient_repo),
):
    """Patients linked to the calling doctor."""
    patients = []
    for row in links.list_patients(doctor.id):
        profile_row = row.get("user_profiles") or {"user_id": row["patient_user_id"]}
        profile = UserProfile.from_db({"user_id": row["patient_user_id"], **profile_row})
        patients.append({
            "patient_user_id": row["patient_user_id"],
            "display_name": profile.display_name,
            "age": profile.age,
            "gender": profile.gender,
        })
    return {"patients": patients}


@app.post("/api/doctor/patients")
def link_patient(
    request: LinkPatientRequest,
    doctor: AuthenticatedUser = Depends(get_doctor_user),
    profiles: ProfileRepository = Depends(get_profile_repo),
    links: DoctorPatientRepository = Depends(get_doctor_patient_repo),
):
    """Add an existing patient to the calling doctor's list."""
    if not profiles.get(request.patient_user_id):
        raise NotFoundError("Patient not found")
    if links.is_linked(doctor.id, request.patient_user_id):
        return {"status": "already_linked", "patient_user_id": request.patient_user_id}
    links.link(doctor.id, request.patient_user_id)
    logger.info("patient_linked", doctor_id=doctor.id, patient_user_id=request.patient_user_id)
    return {"status": "linked", "patient_user_id": request.patient_user_id}


@app.get("/api/doctor/patients/{patient_user_id}")
def get_doctor_patient(
    patient_user_id: str,
    doctor: AuthenticatedUser = Depends(get_doctor_user),
    roles: RoleRepository = Depends(get_role_repo),
    consents: ConsentRepository = Depends(get_consent_repo),
    profiles: ProfileRepository = Depends(get_profile_repo),
    reports: ReportRepository = Depends(get_report_repo),
    snapshots: SnapshotRepository = Depends(get_snapshot_repo),
):
    """A patient's profile, reconciled view, care pathways and reports; requires consent."""
    enforce_patient_access(doctor, _patient_record_id(patient_user_id, roles), consents)

    row = profiles.get(patient_user_id)
    if not row:
        raise NotFoundError("Patient not found")

    report_rows = reports.list_for_user(patient_user_id)
    view = reconcile(report_rows, snapshots.get(patient_user_id))
    return {
        "profile": _profile_payload(UserProfile.from_db(row)),
        "health": view.to_dict(),
        "tracked_conditions": [c.name for c in view.conditions if is_primary_chronic_condition(c.name)],
        "pathways": [p.model_dump(mode="json") for p in project_tracked_pathways(view)],
        "reports": report_rows,
    }


@app.put("/api/doctor/patients/{patient_user_id}/snapshot")
def update_patient_snapshot(
    patient_user_id: str,
    request: SnapshotUpdate,
    doctor: AuthenticatedUser = Depends(get_doctor_user),
    roles: RoleRepository = Depends(get_role_repo),
    consents: ConsentRepository = Depends(get_consent_repo),
    snapshots: SnapshotRepository = Depends(get_snapshot_repo),
):
    """Record a patient's latest vitals; they take precedence on every dashboard."""
    enforce_patient_access(doctor, _patient_record_id(patient_user_id, roles), consents)
    values = request.model_dump(exclude_unset=True)
    if not values:
        raise HTTPException(status_code=400, detail="No vitals to record")
    row = snapshots.upsert(patient_user_id, **values)
    logger.info("snapshot_updated", doctor_id=doctor.id, patient_user_id=patient_user_id, fields=sorted(values))
    return row


@app.get("/api/doctor/patients/{patient_user_id}/notes")
def list_notes(
    patient_user_id: str,
    doctor: AuthenticatedUser = Depends(get_doctor_user),
    roles: RoleRepository = Depends(get_role_repo),
    consents: ConsentRepository = Depends(get_consent_repo),
    notes: DoctorNoteRepository = Depends(get_note_repo),
):
    enforce_patient_access(doctor, _patient_record_id(patient_user_id, roles), consents)
    return {"notes": [DoctorNote.from_db(n).model_dump() for n in notes.list_for_patient(patient_user_id)]}


@app.post("/api/doctor/patients/{patient_user_id}/notes", status_code=201)
def create_note(
    patient_user_id: str,
    request: NoteRequest,
    doctor: AuthenticatedUser = Depends(get_doctor_user),
    roles: RoleRepository = Depends(get_role_repo),
    consents: ConsentRepository = Depends(get_consent_repo),
    notes: DoctorNoteRepository = Depends(get_note_repo),
):
    enforce_patient_access(doctor, _patient_record_id(patient_user_id, roles), consents)
    row = notes.create(doctor.id, patient_user_id, request.content)
    if not row:
        raise HTTPException(status_code=400, detail="Note could not be saved")
    return DoctorNote.from_db(row).model_dump()


@app.post("/api/doctor/patients/{patient_user_id}/reports")
async def upload_patient_report(
    patient_user_id: str,
    file: UploadFile = File(...),
    doctor: AuthenticatedUser = Depends(get_doctor_user),
    roles: RoleRepository = Depends(get_role_repo),
    consents: ConsentRepository = Depends(get_consent_repo),
    storage: DocumentStorage = Depends(get_document_storage),
    parser: ParsingClient = Depends(get_parsing_client),
):
    """Store a document for a patient, then have the backend parse it."""
    record_id = await run_in_threadpool(_patient_record_id, patient_user_id, roles)
    await run_in_threadpool(enforce_patient_access, doctor, record_id, consents)

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")

    path = await run_in_threadpool(
        storage.upload, patient_user_id, file.filename or "document", content, file.content_type
    )
    result = await parser.process_doctor_report(doctor.token or "", patient_user_id, path)
    return {"file_path": path, "result": result}


@app.get("/api/doctor/patients/{patient_user_id}/documents")
def get_document_url(
    patient_user_id: str,
    path: str = Query(..., min_length=1),
    doctor: AuthenticatedUser = Depends(get_doctor_user),
    roles: RoleRepository = Depends(get_role_repo),
    consents: ConsentRepository = Depends(get_consent_repo),
    storage: DocumentStorage = Depends(get_document_storage),
):
    """Short-lived URL for one of the patient's original documents."""
    enforce_patient_access(doctor, _patient_record_id(patient_user_id, roles), consents)
    if not path.startswith(f"patient_{patient_user_id}/") or ".." in path:
        raise AccessDeniedError("Document does not belong to this patient")
    url = storage.signed_url(path)
    if not url:
        raise NotFoundError("Document not found")
    return {"url": url}


def run_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the server."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
