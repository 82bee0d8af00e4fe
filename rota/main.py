from __future__ import annotations

import logging
import os
import secrets
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rota import weeks
from rota.db import get_db
from rota.editor import CommitReport, EditBuffer
from rota.migration import MigrationError, migration_status, run_migration
from rota.models import MigrationRun, Profile, SessionRecord, StaffMember
from rota.security import hash_password, verify_password
from rota.shifts import DAY_NAMES, format_hours
from rota.store import CommitFailure, ScheduleStore, ScheduleWriteError, StaffNotFoundError, WeekRow

logger = logging.getLogger(__name__)

app = FastAPI(title="Terminal Rota")

SESSION_COOKIE_NAME = "session_id"
SESSION_MAX_AGE_SECONDS = 14 * 24 * 60 * 60
DEFAULT_TERMINALS = "2,3,4,5,6,7,8"


@app.middleware("http")
async def disable_cache_for_auth_and_api(request: Request, call_next):
    response = await call_next(request)
    path = request.url.path
    if path.startswith("/api/") or path.startswith("/auth/"):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


Role = Literal["manager", "staff"]


class AuthPayload(BaseModel):
    email: str
    password: str


class ProfileCreatePayload(BaseModel):
    email: str
    temporary_password: str
    role: Role = "staff"


class ProfilePatchPayload(BaseModel):
    role: Role | None = None
    temporary_password: str | None = None
    is_active: bool | None = None


class ProfileOut(BaseModel):
    id: int
    email: str
    role: Role
    is_active: bool
    created_at: datetime

    @classmethod
    def from_orm_profile(cls, profile: Profile) -> "ProfileOut":
        return cls(
            id=profile.id,
            email=profile.email,
            role=profile.role,
            is_active=profile.is_active,
            created_at=profile.created_at,
        )


class StaffCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    role: str | None = None


class StaffPatchPayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    role: str | None = None
    terminal: int | None = None


class StaffOut(BaseModel):
    id: int
    name: str
    role: str | None = None
    terminal: int
    display_order: int | None = None


class OrderPayload(BaseModel):
    staff_ids: list[int]


class ShiftsPayload(BaseModel):
    shifts: list[str | None] = Field(min_length=7, max_length=7)


class ShiftEditPayload(BaseModel):
    staff_id: int
    day: int = Field(ge=0, le=6)
    value: str | None = None


class NavigatePayload(BaseModel):
    direction: Literal["previous", "next", "current"] | None = None
    week: date | None = None

    @model_validator(mode="after")
    def validate_target(self) -> NavigatePayload:
        if (self.direction is None) == (self.week is None):
            raise ValueError("Provide exactly one of direction or week")
        return self


class DayOut(BaseModel):
    name: str
    day: date


class WeekRowOut(BaseModel):
    staff_id: int
    name: str
    role: str | None = None
    display_order: int | None = None
    shifts: list[str]
    published_shifts: list[str]
    hours: float
    hours_label: str
    dirty: bool


class WeekOut(BaseModel):
    terminal: int
    week_start: date
    week_number: int
    is_current_week: bool
    days: list[DayOut]
    staff: list[WeekRowOut]
    has_unsaved_changes: bool


class EditorOut(WeekOut):
    pending_weeks: list[date]


class CommitFailureOut(BaseModel):
    staff_id: int | None = None
    week_start: date | None = None
    message: str


class CommitReportOut(BaseModel):
    ok: bool
    weeks: list[date]
    rows_written: int
    failures: list[CommitFailureOut]


class MigrationWeekOut(BaseModel):
    weekStartingDate: date
    staffCount: int


class MigrationRunOut(BaseModel):
    id: int
    createdAt: datetime
    currentWeekStart: date
    nextWeekStart: date
    staffCount: int
    nextWeekDataCount: int
    rowErrors: int


class MigrationStatusOut(BaseModel):
    currentWeekStart: date
    nextWeekStart: date
    staffCount: int
    nextWeekDataCount: int
    weeks: list[MigrationWeekOut]
    runs: list[MigrationRunOut]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def ensure_valid_email(email: str) -> str:
    normalized = normalize_email(email)
    if "@" not in normalized or normalized.startswith("@") or normalized.endswith("@"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A valid email is required")
    return normalized


def ensure_password_strength(password: str) -> None:
    if len(password) < 10:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password must be at least 10 characters")


def request_is_https(request: Request) -> bool:
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    if forwarded_proto:
        first_proto = forwarded_proto.split(",")[0].strip().lower()
        if first_proto:
            return first_proto == "https"
    return request.url.scheme == "https"


def set_session_cookie(response: Response, request: Request, session_id: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        max_age=SESSION_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
        secure=request_is_https(request),
        path="/",
    )


def clear_session_cookie(response: Response, request: Request) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        samesite="lax",
        secure=request_is_https(request),
        path="/",
    )


def create_session(db: Session, profile_id: int) -> str:
    while True:
        session_id = secrets.token_urlsafe(32)
        existing = db.get(SessionRecord, session_id)
        if existing is None:
            break
    db.add(
        SessionRecord(
            session_id=session_id,
            profile_id=profile_id,
            expires_at=utcnow() + timedelta(seconds=SESSION_MAX_AGE_SECONDS),
        )
    )
    db.commit()
    return session_id


def delete_session_if_exists(db: Session, session_id: str) -> None:
    session = db.get(SessionRecord, session_id)
    if session is not None:
        db.delete(session)
        db.commit()
    discard_edit_buffers(session_id)


def get_session_profile(db: Session, session_id: str | None) -> Profile | None:
    if not session_id:
        return None
    session = db.get(SessionRecord, session_id)
    if session is None:
        return None
    expires_at = session.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= utcnow():
        db.delete(session)
        db.commit()
        discard_edit_buffers(session_id)
        return None
    profile = db.get(Profile, session.profile_id)
    if profile is None or not profile.is_active:
        db.delete(session)
        db.commit()
        discard_edit_buffers(session_id)
        return None
    return profile


def get_current_profile(request: Request, db: Session = Depends(get_db)) -> Profile:
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    profile = get_session_profile(db, session_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return profile


def get_manager_profile(current_profile: Profile = Depends(get_current_profile)) -> Profile:
    if current_profile.role != "manager":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Manager access required")
    return current_profile


def ensure_active_manager_remains(db: Session, target: Profile, patch: ProfilePatchPayload) -> None:
    next_role = patch.role if patch.role is not None else target.role
    next_is_active = patch.is_active if patch.is_active is not None else target.is_active
    if target.role != "manager" or target.is_active is False:
        return
    if next_role == "manager" and next_is_active:
        return
    active_managers = db.scalar(
        select(func.count(Profile.id)).where(Profile.role == "manager", Profile.is_active.is_(True))
    ) or 0
    if active_managers <= 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one active manager must remain")


def configured_terminals() -> list[int]:
    raw = os.getenv("ROTA_TERMINALS", DEFAULT_TERMINALS)
    return [int(part) for part in raw.split(",") if part.strip()]


def ensure_terminal(terminal: int) -> int:
    if terminal not in configured_terminals():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Terminal not found")
    return terminal


def get_store(db: Session = Depends(get_db)) -> ScheduleStore:
    return ScheduleStore(db)


def get_terminal_staff(store: ScheduleStore, terminal: int, staff_id: int) -> StaffMember:
    try:
        member = store.get_staff(staff_id)
    except StaffNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    if member.terminal != terminal:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return member


def serialize_staff(member: StaffMember) -> StaffOut:
    return StaffOut(
        id=member.id,
        name=member.name,
        role=member.role,
        terminal=member.terminal,
        display_order=member.display_order,
    )


def serialize_row(row: WeekRow) -> WeekRowOut:
    hours = row.hours
    return WeekRowOut(
        staff_id=row.staff_id,
        name=row.name,
        role=row.role,
        display_order=row.display_order,
        shifts=list(row.shifts),
        published_shifts=list(row.published),
        hours=hours,
        hours_label=format_hours(hours),
        dirty=row.dirty,
    )


def serialize_week(terminal: int, week_start: date, rows: list[WeekRow]) -> WeekOut:
    return WeekOut(
        terminal=terminal,
        week_start=week_start,
        week_number=weeks.week_number(week_start),
        is_current_week=weeks.is_current_week(week_start),
        days=[DayOut(name=name, day=day) for name, day in zip(DAY_NAMES, weeks.week_dates(week_start))],
        staff=[serialize_row(row) for row in rows],
        has_unsaved_changes=any(row.dirty for row in rows),
    )


def serialize_editor(buffer: EditBuffer) -> EditorOut:
    week = serialize_week(buffer.terminal, buffer.week_start, buffer.rows)
    return EditorOut(**week.model_dump(), pending_weeks=buffer.pending_weeks)


def serialize_failure(failure: CommitFailure) -> CommitFailureOut:
    return CommitFailureOut(staff_id=failure.staff_id, week_start=failure.week_start, message=failure.message)


def serialize_report(report: CommitReport) -> CommitReportOut:
    return CommitReportOut(
        ok=report.ok,
        weeks=report.weeks,
        rows_written=report.rows_written,
        failures=[serialize_failure(failure) for failure in report.failures],
    )


def serialize_migration_run(run: MigrationRun) -> MigrationRunOut:
    return MigrationRunOut(
        id=run.id,
        createdAt=run.created_at,
        currentWeekStart=run.current_week_start,
        nextWeekStart=run.next_week_start,
        staffCount=run.staff_count,
        nextWeekDataCount=run.next_week_data_count,
        rowErrors=run.row_errors,
    )


# Edit buffers live in memory per login session and terminal.
_EDIT_BUFFERS: dict[tuple[str, int], EditBuffer] = {}
_EDIT_BUFFERS_LOCK = threading.Lock()


def get_edit_buffer(request: Request, terminal: int, store: ScheduleStore) -> EditBuffer:
    session_id = request.cookies.get(SESSION_COOKIE_NAME, "")
    key = (session_id, terminal)
    with _EDIT_BUFFERS_LOCK:
        buffer = _EDIT_BUFFERS.get(key)
        if buffer is None:
            buffer = EditBuffer(terminal)
            _EDIT_BUFFERS[key] = buffer
            buffer.open(store)
        else:
            # Re-read unless the manager has edits in flight.
            buffer.refresh(store)
    return buffer


def discard_edit_buffers(session_id: str) -> None:
    with _EDIT_BUFFERS_LOCK:
        for key in [key for key in _EDIT_BUFFERS if key[0] == session_id]:
            del _EDIT_BUFFERS[key]


def write_failed(exc: ScheduleWriteError) -> HTTPException:
    logger.error("Shift write failed for staff %s week %s: %s", exc.staff_id, exc.week_start, exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Could not save shifts: {exc.message}")


@app.post("/auth/bootstrap", response_model=ProfileOut, status_code=status.HTTP_201_CREATED)
def auth_bootstrap(
    payload: AuthPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    bootstrap_token: str | None = Header(default=None, alias="X-Bootstrap-Token"),
) -> ProfileOut:
    configured_token = os.getenv("BOOTSTRAP_TOKEN", "")
    if not configured_token:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bootstrap token is not configured")
    if bootstrap_token != configured_token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid bootstrap token")
    existing_profiles = db.scalar(select(func.count(Profile.id))) or 0
    if existing_profiles > 0:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Bootstrap is only allowed before the first user exists")
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.password)
    profile = Profile(
        email=email,
        password_hash=hash_password(payload.password),
        role="manager",
        is_active=True,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    session_id = create_session(db, profile.id)
    set_session_cookie(response, request, session_id)
    return ProfileOut.from_orm_profile(profile)


@app.get("/auth/bootstrap/status")
def auth_bootstrap_status(db: Session = Depends(get_db)) -> dict[str, bool]:
    if not os.getenv("BOOTSTRAP_TOKEN", ""):
        return {"enabled": False}
    existing_profiles = db.scalar(select(func.count(Profile.id))) or 0
    return {"enabled": existing_profiles == 0}


@app.post("/auth/login", response_model=ProfileOut)
def auth_login(
    payload: AuthPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> ProfileOut:
    email = ensure_valid_email(payload.email)
    profile = db.scalar(select(Profile).where(Profile.email == email))
    if profile is None or not verify_password(payload.password, profile.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not profile.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled")
    session_id = create_session(db, profile.id)
    set_session_cookie(response, request, session_id)
    return ProfileOut.from_orm_profile(profile)


@app.post("/auth/logout")
def auth_logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if session_id:
        delete_session_if_exists(db, session_id)
    clear_session_cookie(response, request)
    return {"ok": True}


@app.get("/auth/me", response_model=ProfileOut)
def auth_me(current_profile: Profile = Depends(get_current_profile)) -> ProfileOut:
    return ProfileOut.from_orm_profile(current_profile)


@app.get("/api/admin/users", response_model=list[ProfileOut])
def admin_list_users(
    _: Profile = Depends(get_manager_profile),
    db: Session = Depends(get_db),
) -> list[ProfileOut]:
    profiles = db.scalars(select(Profile).order_by(Profile.created_at.asc(), Profile.id.asc())).all()
    return [ProfileOut.from_orm_profile(profile) for profile in profiles]


@app.post("/api/admin/users", response_model=ProfileOut, status_code=status.HTTP_201_CREATED)
def admin_create_user(
    payload: ProfileCreatePayload,
    _: Profile = Depends(get_manager_profile),
    db: Session = Depends(get_db),
) -> ProfileOut:
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.temporary_password)
    existing = db.scalar(select(Profile).where(Profile.email == email))
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")
    profile = Profile(
        email=email,
        password_hash=hash_password(payload.temporary_password),
        role=payload.role,
        is_active=True,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return ProfileOut.from_orm_profile(profile)


@app.patch("/api/admin/users/{user_id}", response_model=ProfileOut)
def admin_patch_user(
    user_id: int,
    payload: ProfilePatchPayload,
    _: Profile = Depends(get_manager_profile),
    db: Session = Depends(get_db),
) -> ProfileOut:
    profile = db.get(Profile, user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if payload.role is None and payload.temporary_password is None and payload.is_active is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates were provided")
    ensure_active_manager_remains(db, profile, payload)
    if payload.temporary_password:
        ensure_password_strength(payload.temporary_password)
        profile.password_hash = hash_password(payload.temporary_password)
    if payload.role is not None:
        profile.role = payload.role
    if payload.is_active is not None:
        profile.is_active = payload.is_active
    if payload.is_active is False:
        for session in profile.sessions:
            discard_edit_buffers(session.session_id)
        profile.sessions.clear()
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return ProfileOut.from_orm_profile(profile)


@app.get("/api/terminals")
def list_terminals(_: Profile = Depends(get_current_profile)) -> dict[str, list[int]]:
    return {"terminals": configured_terminals()}


@app.get("/api/terminals/{terminal}/week", response_model=WeekOut)
def get_week(
    terminal: int,
    week: date | None = Query(default=None),
    current_profile: Profile = Depends(get_current_profile),
    store: ScheduleStore = Depends(get_store),
) -> WeekOut:
    ensure_terminal(terminal)
    week_start = weeks.week_start_of(week or weeks.today())
    rows = store.load_week(terminal, week_start, manager_view=current_profile.role == "manager")
    return serialize_week(terminal, week_start, rows)


@app.get("/api/terminals/{terminal}/staff", response_model=list[StaffOut])
def list_staff(
    terminal: int,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> list[StaffOut]:
    ensure_terminal(terminal)
    return [serialize_staff(member) for member in store.list_staff(terminal)]


@app.post("/api/terminals/{terminal}/staff", response_model=StaffOut, status_code=status.HTTP_201_CREATED)
def add_staff(
    terminal: int,
    payload: StaffCreatePayload,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> StaffOut:
    ensure_terminal(terminal)
    if not payload.name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A staff name is required")
    return serialize_staff(store.add_staff(payload.name, terminal, role=payload.role))


@app.patch("/api/staff/{staff_id}", response_model=StaffOut)
def patch_staff(
    staff_id: int,
    payload: StaffPatchPayload,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> StaffOut:
    if payload.name is None and payload.role is None and payload.terminal is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates were provided")
    if payload.terminal is not None:
        ensure_terminal(payload.terminal)
    try:
        member = store.update_staff(staff_id, name=payload.name, role=payload.role, terminal=payload.terminal)
    except StaffNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return serialize_staff(member)


@app.delete("/api/staff/{staff_id}")
def delete_staff(
    staff_id: int,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> dict[str, bool]:
    try:
        store.remove_staff(staff_id)
    except StaffNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return {"ok": True}


@app.put("/api/terminals/{terminal}/order", response_model=CommitReportOut)
def reorder_staff(
    terminal: int,
    payload: OrderPayload,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> CommitReportOut:
    ensure_terminal(terminal)
    if len(payload.staff_ids) != len(set(payload.staff_ids)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Staff ids must be unique")
    known = {member.id for member in store.list_staff(terminal)}
    unknown = [staff_id for staff_id in payload.staff_ids if staff_id not in known]
    if unknown:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown staff ids for terminal {terminal}: {unknown}")
    failures = store.reorder(terminal, payload.staff_ids)
    report = CommitReport(rows_written=len(payload.staff_ids) - len(failures), failures=failures)
    return serialize_report(report)


@app.put("/api/terminals/{terminal}/weeks/{week}/staff/{staff_id}/draft")
def save_staff_draft(
    terminal: int,
    week: date,
    staff_id: int,
    payload: ShiftsPayload,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> dict[str, bool | str]:
    ensure_terminal(terminal)
    get_terminal_staff(store, terminal, staff_id)
    week_start = weeks.week_start_of(week)
    try:
        store.save_draft(staff_id, week_start, payload.shifts)
    except ScheduleWriteError as exc:
        raise write_failed(exc)
    return {"ok": True, "week_start": week_start.isoformat()}


@app.post("/api/terminals/{terminal}/weeks/{week}/staff/{staff_id}/publish")
def publish_staff_week(
    terminal: int,
    week: date,
    staff_id: int,
    payload: ShiftsPayload,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> dict[str, bool | str]:
    ensure_terminal(terminal)
    get_terminal_staff(store, terminal, staff_id)
    week_start = weeks.week_start_of(week)
    try:
        store.publish(staff_id, week_start, payload.shifts)
    except ScheduleWriteError as exc:
        raise write_failed(exc)
    return {"ok": True, "week_start": week_start.isoformat()}


@app.delete("/api/terminals/{terminal}/weeks/{week}")
def clear_week(
    terminal: int,
    week: date,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> dict[str, bool | int | str]:
    ensure_terminal(terminal)
    week_start = weeks.week_start_of(week)
    try:
        cleared = store.clear_week(terminal, week_start)
    except ScheduleWriteError as exc:
        raise write_failed(exc)
    return {"ok": True, "week_start": week_start.isoformat(), "cleared": cleared}


@app.get("/api/terminals/{terminal}/editor", response_model=EditorOut)
def get_editor(
    terminal: int,
    request: Request,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> EditorOut:
    ensure_terminal(terminal)
    return serialize_editor(get_edit_buffer(request, terminal, store))


@app.post("/api/terminals/{terminal}/editor/navigate", response_model=EditorOut)
def navigate_editor(
    terminal: int,
    payload: NavigatePayload,
    request: Request,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> EditorOut:
    ensure_terminal(terminal)
    buffer = get_edit_buffer(request, terminal, store)
    if payload.direction == "previous":
        buffer.previous_week(store)
    elif payload.direction == "next":
        buffer.next_week(store)
    elif payload.direction == "current":
        buffer.current_week(store)
    else:
        buffer.navigate(store, payload.week)
    return serialize_editor(buffer)


@app.put("/api/terminals/{terminal}/editor/shifts", response_model=EditorOut)
def edit_shift(
    terminal: int,
    payload: ShiftEditPayload,
    request: Request,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> EditorOut:
    ensure_terminal(terminal)
    buffer = get_edit_buffer(request, terminal, store)
    try:
        buffer.set_shift(payload.staff_id, payload.day, payload.value)
    except StaffNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return serialize_editor(buffer)


@app.post("/api/terminals/{terminal}/editor/refresh", response_model=EditorOut)
def refresh_editor(
    terminal: int,
    request: Request,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> EditorOut:
    ensure_terminal(terminal)
    buffer = get_edit_buffer(request, terminal, store)
    buffer.refresh(store)
    return serialize_editor(buffer)


@app.post("/api/terminals/{terminal}/editor/save", response_model=CommitReportOut)
def save_editor(
    terminal: int,
    request: Request,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> CommitReportOut:
    ensure_terminal(terminal)
    buffer = get_edit_buffer(request, terminal, store)
    return serialize_report(buffer.save_all(store))


@app.post("/api/terminals/{terminal}/editor/publish", response_model=CommitReportOut)
def publish_editor(
    terminal: int,
    request: Request,
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> CommitReportOut:
    ensure_terminal(terminal)
    buffer = get_edit_buffer(request, terminal, store)
    return serialize_report(buffer.publish_all(store))


def authorize_migration(request: Request, db: Session, migration_token: str | None) -> None:
    configured_token = os.getenv("MIGRATION_TOKEN", "")
    if configured_token and migration_token and secrets.compare_digest(migration_token, configured_token):
        return
    profile = get_session_profile(db, request.cookies.get(SESSION_COOKIE_NAME))
    if profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    if profile.role != "manager":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Manager access required")


@app.post("/api/migration/run")
def migration_run(
    request: Request,
    db: Session = Depends(get_db),
    migration_token: str | None = Header(default=None, alias="X-Migration-Token"),
) -> JSONResponse:
    authorize_migration(request, db, migration_token)
    try:
        result = run_migration(db)
    except MigrationError as exc:
        logger.error("Migration error: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(exc)},
        )
    return JSONResponse(content=result.as_payload())


@app.get("/api/migration/status", response_model=MigrationStatusOut)
def migration_state(
    _: Profile = Depends(get_manager_profile),
    db: Session = Depends(get_db),
) -> MigrationStatusOut:
    state = migration_status(db)
    return MigrationStatusOut(
        currentWeekStart=state.current_week_start,
        nextWeekStart=state.next_week_start,
        staffCount=state.staff_count,
        nextWeekDataCount=state.next_week_data_count,
        weeks=[MigrationWeekOut(weekStartingDate=week.week_starting_date, staffCount=week.staff_count) for week in state.weeks],
        runs=[serialize_migration_run(run) for run in state.runs],
    )


@app.post("/api/migration/purge-orphans")
def purge_orphans(
    _: Profile = Depends(get_manager_profile),
    store: ScheduleStore = Depends(get_store),
) -> dict[str, bool | int]:
    return {"ok": True, "deleted": store.purge_orphans()}


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "env": os.getenv("ENVIRONMENT", "local")}
