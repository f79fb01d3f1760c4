from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator
from datetime import date, datetime, timezone
from typing import Any

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket

from presence_board.core.config import settings
from presence_board.core.errors import DomainError, NotFoundError, StorageError, ValidationError
from presence_board.core.security import create_access_token, hash_password, verify_password
from presence_board.core.startup import on_startup
from presence_board.core.statuses import get_profile
from presence_board.db.repository import Repository
from presence_board.db.session import SessionLocal
from presence_board.services.attendance import AttendanceEngine
from presence_board.services.auth import ROLES, get_current_user, require_roles
from presence_board.services.bootstrap import seed_directory
from presence_board.services.hub import BroadcastHub
from presence_board.services.presence import Location, PresenceEngine
from presence_board.services.queries import (
    export_monthly_attendance_csv,
    get_departments_with_employees,
    get_employee_with_status,
)
from presence_board.services.serializers import (
    attendance_out,
    department_out,
    employee_out,
    status_out,
    user_out,
)

log = logging.getLogger("uvicorn.error")

EMPLOYEE_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "firstNameJa": "first_name_ja",
    "lastNameJa": "last_name_ja",
    "email": "email",
    "position": "position",
    "positionJa": "position_ja",
    "departmentId": "department_id",
    "profileImageUrl": "profile_image_url",
    "isActive": "is_active",
}
EMPLOYEE_REQUIRED = ("firstName", "lastName", "firstNameJa", "lastNameJa", "email", "position", "positionJa", "departmentId")

ATTENDANCE_FIELDS = {
    "clockInTime": "clock_in_time",
    "clockOutTime": "clock_out_time",
    "clockInLocation": "clock_in_location",
    "clockInLatitude": "clock_in_latitude",
    "clockInLongitude": "clock_in_longitude",
    "clockOutLocation": "clock_out_location",
    "clockOutLatitude": "clock_out_latitude",
    "clockOutLongitude": "clock_out_longitude",
    "status": "status",
    "workHours": "work_hours",
    "modificationReason": "modification_reason",
}


# payload helpers


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def _float(value: Any, name: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")


def _ts(value: Any, name: str) -> datetime | None:
    if value is None:
        return None
    try:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid {name}")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=settings.tz)
    return ts.astimezone(timezone.utc)


def _date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD")


def _location(payload: dict[str, Any], prefix: str = "") -> Location:
    def key(suffix: str) -> str:
        return f"{prefix}{suffix}" if prefix else suffix.lower()

    return Location(
        name=payload.get(key("Location")) or None,
        latitude=_float(payload.get(key("Latitude")), key("Latitude")),
        longitude=_float(payload.get(key("Longitude")), key("Longitude")),
    )


def _employee_fields(payload: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase employee keys to columns, rejecting wrongly typed values."""
    fields: dict[str, Any] = {}
    for key, column in EMPLOYEE_FIELDS.items():
        if key not in payload:
            continue
        value = payload[key]
        if key == "departmentId":
            value = _int(value, key)
        elif key == "isActive":
            if not isinstance(value, bool):
                raise ValidationError("isActive must be true or false")
        elif key == "profileImageUrl":
            if value is not None and not isinstance(value, str):
                raise ValidationError("profileImageUrl must be a string or null")
            value = value or None
        else:
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{key} must be a non-empty string")
            value = value.strip()
        fields[column] = value
    return fields


def _status_value(payload: dict[str, Any]) -> str:
    status = payload.get("status")
    if not isinstance(status, str) or not status.strip():
        raise ValidationError("status is required")
    return status.strip()


# handlers


async def health(_: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def login(request: Request) -> JSONResponse:
    payload = await _json_body(request)
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    if not username or not password:
        raise HTTPException(status_code=400, detail="username and password are required")

    with SessionLocal() as db:
        user = Repository(db).get_user_by_username(username)
        if not user or not user.is_active:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        if not verify_password(password, user.password_hash):
            raise HTTPException(status_code=401, detail="Invalid credentials")

        token = create_access_token(subject=str(user.id), role=user.role)
        return JSONResponse({"token": token, "tokenType": "bearer", "user": user_out(user)})


async def me(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        user = get_current_user(request, db)
        return JSONResponse(user_out(user))


async def logout(request: Request) -> JSONResponse:
    # tokens are stateless; the client drops its copy
    with SessionLocal() as db:
        get_current_user(request, db)
    return JSONResponse({"ok": True})


async def register(request: Request) -> JSONResponse:
    payload = await _json_body(request)
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    role = (payload.get("role") or "user").strip()
    if not username or not password:
        raise HTTPException(status_code=400, detail="username and password are required")
    if role not in ROLES:
        raise ValidationError("role must be 'admin' or 'user'")

    with SessionLocal() as db:
        require_roles(request, db, "admin")
        repo = Repository(db)
        if repo.get_user_by_username(username):
            raise HTTPException(status_code=409, detail="User already exists")

        user = repo.create_user(
            username=username,
            password_hash=hash_password(password),
            role=role,
            full_name=payload.get("fullName"),
            is_active=True,
        )
        return JSONResponse(user_out(user), status_code=201)


async def statuses(request: Request) -> JSONResponse:
    return JSONResponse(request.app.state.presence.profile.describe())


async def list_departments(request: Request) -> JSONResponse:
    active_only = request.query_params.get("activeOnly") == "true"
    with SessionLocal() as db:
        get_current_user(request, db)
        return JSONResponse(get_departments_with_employees(Repository(db), active_only=active_only))


async def create_department(request: Request) -> JSONResponse:
    payload = await _json_body(request)
    name = (payload.get("name") or "").strip()
    name_ja = (payload.get("nameJa") or "").strip()
    if not name or not name_ja:
        raise ValidationError("name and nameJa are required")

    with SessionLocal() as db:
        require_roles(request, db, "admin")
        department = Repository(db).create_department(
            name=name,
            name_ja=name_ja,
            icon=(payload.get("icon") or "building").strip(),
        )
        return JSONResponse(department_out(department), status_code=201)


async def list_employees(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        get_current_user(request, db)
        return JSONResponse([employee_out(e) for e in Repository(db).get_employees()])


async def create_employee(request: Request) -> JSONResponse:
    payload = await _json_body(request)
    missing = [k for k in EMPLOYEE_REQUIRED if payload.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}")

    fields = _employee_fields(payload)
    fields.setdefault("is_active", True)

    with SessionLocal() as db:
        require_roles(request, db, "admin")
        repo = Repository(db)
        if repo.get_department(fields["department_id"]) is None:
            raise ValidationError("departmentId does not exist")
        if repo.get_employee_by_email(fields["email"]):
            raise HTTPException(status_code=409, detail="email already exists")

        employee = repo.create_employee(**fields)
        return JSONResponse(employee_out(employee), status_code=201)


async def get_employee(request: Request) -> JSONResponse:
    employee_id = request.path_params["employee_id"]
    with SessionLocal() as db:
        get_current_user(request, db)
        return JSONResponse(get_employee_with_status(Repository(db), employee_id))


async def update_employee(request: Request) -> JSONResponse:
    employee_id = request.path_params["employee_id"]
    payload = await _json_body(request)
    unknown = [k for k in payload if k not in EMPLOYEE_FIELDS]
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}")
    fields = _employee_fields(payload)

    with SessionLocal() as db:
        require_roles(request, db, "admin")
        repo = Repository(db)
        employee = repo.get_employee(employee_id)
        if employee is None:
            raise NotFoundError("Employee not found")
        if "department_id" in fields:
            if repo.get_department(fields["department_id"]) is None:
                raise ValidationError("departmentId does not exist")
        if "email" in fields and fields["email"] != employee.email and repo.get_employee_by_email(fields["email"]):
            raise HTTPException(status_code=409, detail="email already exists")

        employee = repo.update_employee(employee, fields)
        return JSONResponse(employee_out(employee))


async def get_employee_status(request: Request) -> JSONResponse:
    employee_id = request.path_params["employee_id"]
    with SessionLocal() as db:
        get_current_user(request, db)
        row = request.app.state.presence.get_status(Repository(db), employee_id)
        return JSONResponse(status_out(row))


async def set_employee_status(request: Request) -> JSONResponse:
    employee_id = request.path_params["employee_id"]
    payload = await _json_body(request)
    status = _status_value(payload)
    comment = payload.get("comment")
    if comment is not None and not isinstance(comment, str):
        raise ValidationError("comment must be a string")

    with SessionLocal() as db:
        get_current_user(request, db)
        row = await request.app.state.presence.set_status(
            Repository(db), employee_id, status, comment, _location(payload)
        )
        return JSONResponse(status_out(row))


async def list_employee_statuses(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        get_current_user(request, db)
        rows = request.app.state.presence.get_all_statuses(Repository(db))
        return JSONResponse([status_out(r) for r in rows])


async def clock_in(request: Request) -> JSONResponse:
    payload = await _json_body(request)
    employee_id = _int(payload.get("employeeId"), "employeeId")
    status = _status_value(payload)

    with SessionLocal() as db:
        get_current_user(request, db)
        record = await request.app.state.attendance.clock_in(
            Repository(db), employee_id, status, _location(payload, "clockIn")
        )
        return JSONResponse(attendance_out(record))


async def clock_out(request: Request) -> JSONResponse:
    payload = await _json_body(request)
    employee_id = _int(payload.get("employeeId"), "employeeId")

    with SessionLocal() as db:
        get_current_user(request, db)
        record = await request.app.state.attendance.clock_out(
            Repository(db), employee_id, _location(payload, "clockOut")
        )
        return JSONResponse(attendance_out(record))


async def employee_attendance(request: Request) -> JSONResponse:
    employee_id = request.path_params["employee_id"]
    year = request.query_params.get("year")
    month = request.query_params.get("month")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    engine: AttendanceEngine = request.app.state.attendance

    with SessionLocal() as db:
        get_current_user(request, db)
        repo = Repository(db)
        if year and month:
            records = engine.get_monthly_attendance(repo, employee_id, _int(year, "year"), _int(month, "month"))
            return JSONResponse([attendance_out(r) for r in records])
        if start and end:
            records = engine.get_attendance_range(repo, employee_id, _date(start, "start"), _date(end, "end"))
            return JSONResponse([attendance_out(r) for r in records])

        today = engine.get_today(repo, employee_id)
        return JSONResponse(attendance_out(today) if today else None)


async def update_attendance(request: Request) -> JSONResponse:
    record_id = request.path_params["record_id"]
    payload = await _json_body(request)
    payload.pop("isModified", None)

    fields: dict[str, Any] = {}
    for key, value in payload.items():
        name = ATTENDANCE_FIELDS.get(key, key)
        if name in ("clock_in_time", "clock_out_time"):
            value = _ts(value, key)
        elif name == "work_hours" and value is not None:
            value = _int(value, key)
        elif name.endswith(("_latitude", "_longitude")):
            value = _float(value, key)
        fields[name] = value

    with SessionLocal() as db:
        require_roles(request, db, "admin")
        record = request.app.state.attendance.update_record(Repository(db), record_id, fields)
        return JSONResponse(attendance_out(record))


async def export_attendance(request: Request) -> Response:
    employee_id = request.path_params["employee_id"]
    year = _int(request.query_params.get("year"), "year")
    month = _int(request.query_params.get("month"), "month")

    with SessionLocal() as db:
        require_roles(request, db, "admin")
        repo = Repository(db)
        if repo.get_employee(employee_id) is None:
            raise NotFoundError("Employee not found")
        body = export_monthly_attendance_csv(request.app.state.attendance, repo, employee_id, year, month)

    return Response(
        body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="attendance-{year}-{month}.csv"'},
    )


async def dev_seed(request: Request) -> JSONResponse:
    if settings.environment != "dev":
        raise HTTPException(status_code=404, detail="Not found")

    with SessionLocal() as db:
        require_roles(request, db, "admin")
        out = seed_directory(Repository(db))
        return JSONResponse({"ok": True, **out})


async def ws_events(websocket: WebSocket) -> None:
    hub: BroadcastHub = websocket.app.state.hub
    subscriber = await hub.subscribe(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        await hub.unsubscribe(subscriber)


async def domain_error(request: Request, exc: DomainError) -> JSONResponse:
    if isinstance(exc, StorageError):
        log.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse({"message": "Internal server error", "code": exc.code}, status_code=500)
    return JSONResponse({"message": str(exc), "code": exc.code}, status_code=exc.status_code)


@contextlib.asynccontextmanager
async def lifespan(app: Starlette) -> AsyncIterator[None]:
    on_startup()
    hub = BroadcastHub()
    presence = PresenceEngine(hub, get_profile(settings.status_profile))
    app.state.hub = hub
    app.state.presence = presence
    app.state.attendance = AttendanceEngine(hub, presence, settings.tz)
    log.info("%s started with status profile %s", settings.app_name, settings.status_profile)
    try:
        yield
    finally:
        await hub.close()


routes = [
    Route("/v1/health", endpoint=health, methods=["GET"]),
    Route("/v1/auth/login", endpoint=login, methods=["POST"]),
    Route("/v1/auth/me", endpoint=me, methods=["GET"]),
    Route("/v1/auth/logout", endpoint=logout, methods=["POST"]),
    Route("/v1/auth/register", endpoint=register, methods=["POST"]),
    Route("/v1/statuses", endpoint=statuses, methods=["GET"]),
    Route("/v1/dev/seed", endpoint=dev_seed, methods=["POST"]),
    Route("/v1/departments", endpoint=list_departments, methods=["GET"]),
    Route("/v1/departments", endpoint=create_department, methods=["POST"]),
    Route("/v1/employees", endpoint=list_employees, methods=["GET"]),
    Route("/v1/employees", endpoint=create_employee, methods=["POST"]),
    Route("/v1/employees/{employee_id:int}", endpoint=get_employee, methods=["GET"]),
    Route("/v1/employees/{employee_id:int}", endpoint=update_employee, methods=["PATCH"]),
    Route("/v1/employees/{employee_id:int}/status", endpoint=get_employee_status, methods=["GET"]),
    Route("/v1/employees/{employee_id:int}/status", endpoint=set_employee_status, methods=["POST"]),
    Route("/v1/employees/{employee_id:int}/attendance", endpoint=employee_attendance, methods=["GET"]),
    Route("/v1/employees/{employee_id:int}/attendance/export", endpoint=export_attendance, methods=["GET"]),
    Route("/v1/employee-statuses", endpoint=list_employee_statuses, methods=["GET"]),
    Route("/v1/attendance/clock-in", endpoint=clock_in, methods=["POST"]),
    Route("/v1/attendance/clock-out", endpoint=clock_out, methods=["POST"]),
    Route("/v1/attendance/{record_id:int}", endpoint=update_attendance, methods=["PUT"]),
    WebSocketRoute("/ws", endpoint=ws_events),
]


app = Starlette(
    debug=settings.environment == "dev",
    routes=routes,
    middleware=[
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    ],
    exception_handlers={DomainError: domain_error},
    lifespan=lifespan,
)
