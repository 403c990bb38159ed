import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import configure_logging
from .holidays import load_holidays
from .persistence import get_persistence
from .schemas import (
    CATEGORY_DETAILS,
    ApiErrorDetail,
    ApiErrorPayload,
    ApiErrorResponse,
    AppUser,
    BackupCreateRequest,
    BackupCreateResponse,
    BackupInfo,
    BackupListResponse,
    BackupRestoreRequest,
    BackupRestoreResponse,
    CategoryResponse,
    EmailCheckResponse,
    Event,
    EventMutationResponse,
    EventPayload,
    EventResponse,
    HealthResponse,
    LoginRequest,
    MessageResponse,
    RecurrenceRule,
    RecurrenceRulePayload,
    RegisterRequest,
    RuleMutationResponse,
    UserMutationResponse,
    UserResponse,
    UserUpdate,
)

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Calendar Scheduler API",
    version="0.1.0",
    description="CSV-backed events, recurrence rules, users and backups.",
)

persistence = get_persistence()


def build_error_response(details: list[ApiErrorDetail], message: str = "Invalid request payload") -> JSONResponse:
    payload = ApiErrorResponse(
        error=ApiErrorPayload(code="VALIDATION_ERROR", message=message, details=details)
    )
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=payload.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details: list[ApiErrorDetail] = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []) if item != "body")
        details.append(ApiErrorDetail(field=loc or "body", message=err.get("msg", "validation error")))
    return build_error_response(details)


@app.exception_handler(ValueError)
async def value_error_exception_handler(request: Request, exc: ValueError) -> JSONResponse:
    return build_error_response([ApiErrorDetail(field="body", message=str(exc))], message=str(exc))


@app.exception_handler(OSError)
async def storage_error_exception_handler(request: Request, exc: OSError) -> JSONResponse:
    logger.error("storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": f"Storage error: {exc}"},
    )


def _event_response(event: Event) -> EventResponse:
    return EventResponse(
        id=event.id,
        userId=event.userId,
        title=event.title,
        description=event.description,
        startDateTime=event.startDateTime,
        endDateTime=event.endDateTime,
        category=event.category,
    )


def _user_response(user: AppUser) -> UserResponse:
    return UserResponse(id=user.id, name=user.name, email=user.email)


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/api/categories", response_model=list[CategoryResponse])
async def list_categories() -> list[CategoryResponse]:
    return [CategoryResponse(id=cat.value, name=name, colorHex=color) for cat, (name, color) in CATEGORY_DETAILS.items()]


@app.get("/api/holidays", response_model=list[EventResponse])
async def list_holidays() -> list[EventResponse]:
    return [_event_response(e) for e in load_holidays()]


# ── Events ────────────────────────────────────────────────────


@app.get("/api/events", response_model=list[EventResponse])
def list_events() -> list[EventResponse]:
    return [_event_response(e) for e in persistence.load_events()]


@app.get("/api/events/user/{user_id}", response_model=list[EventResponse])
def list_user_events(user_id: int) -> list[EventResponse]:
    return [_event_response(e) for e in persistence.events_by_user(user_id)]


@app.get("/api/events/category/{category}", response_model=list[EventResponse])
def list_category_events(category: str) -> list[EventResponse]:
    return [_event_response(e) for e in persistence.events_by_category(category)]


@app.get("/api/events/{event_id}", response_model=EventResponse)
def get_event(event_id: int) -> EventResponse:
    event = persistence.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail=f"event not found: {event_id}")
    return _event_response(event)


@app.post("/api/events", response_model=EventMutationResponse, status_code=201)
def create_event(payload: EventPayload) -> EventMutationResponse:
    event = payload.to_event()
    if event.recurrentInterval:
        created = persistence.generate_and_save_recurring_events(event)
    else:
        created = [persistence.save_event(event)]
    return EventMutationResponse(
        success=True,
        message="Event created successfully",
        event=_event_response(created[0]),
        events=[_event_response(e) for e in created],
    )


@app.put("/api/events/{event_id}", response_model=EventMutationResponse)
def update_event(event_id: int, payload: EventPayload) -> EventMutationResponse:
    event = payload.to_event()
    if not persistence.update_event(event_id, event):
        raise HTTPException(status_code=404, detail=f"event not found: {event_id}")
    return EventMutationResponse(success=True, message="Event updated successfully", event=_event_response(event))


@app.delete("/api/events/{event_id}", response_model=MessageResponse)
def delete_event(event_id: int) -> MessageResponse:
    if not persistence.delete_event(event_id):
        raise HTTPException(status_code=404, detail=f"event not found: {event_id}")
    return MessageResponse(success=True, message="Event deleted successfully")


# ── Recurrence rules ──────────────────────────────────────────


@app.get("/api/recurrent", response_model=list[RecurrenceRule])
def list_rules() -> list[RecurrenceRule]:
    return persistence.load_recurrent_rules()


@app.get("/api/recurrent/{event_id}", response_model=RecurrenceRule)
def get_rule(event_id: int) -> RecurrenceRule:
    rule = persistence.get_recurrent_rule(event_id)
    if rule is None:
        raise HTTPException(status_code=404, detail=f"recurrent rule not found: {event_id}")
    return rule


@app.post("/api/recurrent", response_model=RuleMutationResponse, status_code=201)
def create_rule(payload: RecurrenceRulePayload) -> RuleMutationResponse:
    rule = persistence.save_recurrent_rule(payload.to_rule())
    return RuleMutationResponse(success=True, message="Recurrent rule created successfully", rule=rule)


@app.put("/api/recurrent/{event_id}", response_model=RuleMutationResponse)
def upsert_rule(event_id: int, payload: RecurrenceRulePayload) -> RuleMutationResponse:
    rule = persistence.upsert_recurrent_rule(event_id, payload.to_rule(event_id))
    if rule is None:
        raise HTTPException(status_code=404, detail=f"recurrent rule not found: {event_id}")
    return RuleMutationResponse(success=True, message="Recurrent rule updated successfully", rule=rule)


@app.delete("/api/recurrent/{event_id}", response_model=MessageResponse)
def delete_rule(event_id: int) -> MessageResponse:
    if not persistence.delete_recurrent_rule(event_id):
        raise HTTPException(status_code=404, detail=f"recurrent rule not found: {event_id}")
    return MessageResponse(success=True, message="Recurrent rule deleted successfully")


# ── Users ─────────────────────────────────────────────────────


@app.get("/api/users", response_model=list[UserResponse])
def list_users() -> list[UserResponse]:
    return [_user_response(u) for u in persistence.load_users()]


@app.post("/api/users/register", response_model=UserMutationResponse, status_code=201)
def register_user(payload: RegisterRequest) -> UserMutationResponse:
    user = persistence.save_user(AppUser(name=payload.name or "", email=payload.email, password=payload.password))
    return UserMutationResponse(success=True, message="User registered successfully", user=_user_response(user))


@app.post("/api/users/login", response_model=UserMutationResponse)
def login_user(payload: LoginRequest) -> UserMutationResponse:
    user = persistence.validate_user(payload.email, payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return UserMutationResponse(success=True, message="Login successful", user=_user_response(user))


@app.get("/api/users/check-email", response_model=EmailCheckResponse)
def check_email(email: str = Query(...)) -> EmailCheckResponse:
    return EmailCheckResponse(exists=persistence.email_exists(email))


@app.get("/api/users/{user_id}", response_model=UserResponse)
def get_user(user_id: int) -> UserResponse:
    user = persistence.get_user_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return _user_response(user)


@app.put("/api/users/{user_id}", response_model=UserMutationResponse)
def update_user(user_id: int, payload: UserUpdate) -> UserMutationResponse:
    user = persistence.update_user(
        AppUser(id=user_id, name=payload.name or "", email=payload.email, password=payload.password)
    )
    return UserMutationResponse(success=True, message="User updated successfully", user=_user_response(user))


@app.delete("/api/users/{user_id}", response_model=MessageResponse)
def delete_user(user_id: int) -> MessageResponse:
    persistence.delete_user(user_id)
    return MessageResponse(
        success=True,
        message="User and all associated events and recurrent rules deleted successfully",
    )


# ── Backup ────────────────────────────────────────────────────


@app.post("/api/backup/create", response_model=BackupCreateResponse)
def create_backup(payload: Optional[BackupCreateRequest] = None) -> BackupCreateResponse:
    path = persistence.backup_all(payload.backupName if payload else None)
    return BackupCreateResponse(
        success=True,
        message="Backup created successfully",
        backupPath=path,
        backupName=Path(path).name,
    )


@app.post("/api/backup/restore", response_model=BackupRestoreResponse)
def restore_backup(payload: BackupRestoreRequest) -> BackupRestoreResponse:
    counts = persistence.restore_all(payload.backupName, payload.append)
    message = "Backup restored successfully"
    if payload.append:
        message += " (append mode: duplicate ids are possible)"
    return BackupRestoreResponse(success=True, message=message, append=payload.append, counts=counts)


@app.get("/api/backup/list", response_model=BackupListResponse)
def list_backups() -> BackupListResponse:
    return BackupListResponse(backups=[BackupInfo(**b) for b in persistence.list_backups()])


@app.delete("/api/backup/{backup_name}", response_model=MessageResponse)
def delete_backup(backup_name: str) -> MessageResponse:
    if not persistence.delete_backup(backup_name):
        raise HTTPException(status_code=404, detail="Backup file not found")
    return MessageResponse(success=True, message="Backup deleted successfully")
